"""Recent repositories, persisted as one JSON document."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field, ValidationError

from repo_explorer.models.content import RepositoryIdentity

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECENT_REPOSITORIES = 5


class StoredRepository(BaseModel):
    owner: str
    name: str
    branch: str | None = None

    @classmethod
    def from_identity(cls, repository: RepositoryIdentity) -> "StoredRepository":
        return cls(owner=repository.owner, name=repository.name, branch=repository.branch)

    def to_identity(self) -> RepositoryIdentity:
        return RepositoryIdentity(owner=self.owner, name=self.name, branch=self.branch)


class RecentsDocument(BaseModel):
    """On-disk shape of the recents file."""

    recent_repositories: List[StoredRepository] = Field(default_factory=list)
    last_repository: StoredRepository | None = None


class RecentsStore:
    """Most-recent-first list of repositories plus the last one opened.

    A missing or unreadable file reads as empty; the next write replaces it.
    """

    def __init__(self, path: str | Path, max_recent: int = DEFAULT_MAX_RECENT_REPOSITORIES) -> None:
        self._path = Path(path)
        self._max_recent = max(1, max_recent)

    def _load(self) -> RecentsDocument:
        if not self._path.is_file():
            return RecentsDocument()
        try:
            return RecentsDocument.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable recents file %s: %s", self._path, e)
            return RecentsDocument()

    def _save(self, document: RecentsDocument) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(document.model_dump_json(indent=2), encoding="utf-8")

    def get_recent_repositories(self) -> List[RepositoryIdentity]:
        return [r.to_identity() for r in self._load().recent_repositories]

    def add_recent_repository(self, repository: RepositoryIdentity) -> None:
        """Move repository to the front (deduplicated, capped) and make it the last one."""
        document = self._load()
        stored = StoredRepository.from_identity(repository)
        recent = [r for r in document.recent_repositories if r != stored]
        recent.insert(0, stored)
        document.recent_repositories = recent[: self._max_recent]
        document.last_repository = stored
        self._save(document)

    def get_last_repository(self) -> RepositoryIdentity | None:
        last = self._load().last_repository
        return last.to_identity() if last else None

    def set_last_repository(self, repository: RepositoryIdentity) -> None:
        document = self._load()
        document.last_repository = StoredRepository.from_identity(repository)
        self._save(document)

    def clear(self) -> None:
        self._save(RecentsDocument())
