"""Browse a GitHub repository as a lazily loaded tree and batch-download a selection."""
