"""Persistence helpers: audit trail and recent-repositories store."""
