"""Application configuration loaded from environment. No tokens are hardcoded."""

from __future__ import annotations

from pathlib import Path

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from project root (parent of repo_explorer) so it loads regardless of cwd
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Settings loaded from environment variables. Sensitive fields use SecretStr (no leak in logs)."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Optional: GitHub token for higher API rate limit (5000/h vs 60/h).
    GITHUB_TOKEN: SecretStr = SecretStr("")
    GITHUB_API_BASE: str = "https://api.github.com"
    # Per-request timeout applied by the GitHub client, in seconds.
    REQUEST_TIMEOUT: float = 30.0

    # Depth of the bulk recursive fetch made the first time the root is expanded.
    INITIAL_LOAD_DEPTH: int = 3

    MAX_CONCURRENT_DOWNLOADS: int = 3
    MAX_RECENT_REPOSITORIES: int = 5
    # Destination root for downloads when the request does not name one. Empty = cwd.
    DOWNLOAD_DIR: str = ""

    # Paths: recents store and audit log. Defaults = project root when not set in env.
    RECENTS_PATH: str = ""
    AUDIT_LOG_PATH: str = ""
    # Logging: set LOG_FORMAT=json for JSON structured logs.
    LOG_FORMAT: str = ""

    @model_validator(mode="after")
    def _set_default_paths(self) -> "Settings":
        """When RECENTS_PATH, AUDIT_LOG_PATH or DOWNLOAD_DIR are empty, fill in defaults."""
        if not (self.RECENTS_PATH or "").strip():
            object.__setattr__(self, "RECENTS_PATH", str(_PROJECT_ROOT / "recents.json"))
        if not (self.AUDIT_LOG_PATH or "").strip():
            object.__setattr__(self, "AUDIT_LOG_PATH", str(_PROJECT_ROOT / "AUDIT.jsonl"))
        if not (self.DOWNLOAD_DIR or "").strip():
            object.__setattr__(self, "DOWNLOAD_DIR", str(Path.cwd()))
        return self

    def github_token(self) -> str | None:
        """Stripped token value, or None when unset."""
        return (self.GITHUB_TOKEN.get_secret_value() or "").strip() or None


def get_settings() -> Settings:
    """Return application settings (env-based)."""
    return Settings()


def get_env_file_path() -> Path:
    """Return path to .env file used for loading (for logging)."""
    return _ENV_FILE
