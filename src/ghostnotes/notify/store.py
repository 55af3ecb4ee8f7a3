from __future__ import annotations

import json
import logging
from hashlib import sha256
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from ghostnotes.config.settings import Settings
from ghostnotes.core.env import resolve_project_path
from ghostnotes.domain.models import NotifiedSet

"""
Per-user storage for the proximity-notification history (`NotifiedSet`).

Stores are keyed by user id. The file store hashes the id (SHA-256) into the file
name, so ids that contain path separators or share a prefix can never collide or
read each other's history.
"""

logger = logging.getLogger(__name__)


class NotifiedSetCorrupt(ValueError):
    """A stored record exists but cannot be decoded."""


class NotifiedSetStore(Protocol):
    def load(self, user_id: str) -> NotifiedSet | None: ...

    def save(self, user_id: str, notified: NotifiedSet) -> None: ...


class MemoryNotifiedSetStore:
    """Process-local store; history survives notifier remounts but not restarts."""

    def __init__(self) -> None:
        self._records: dict[str, dict] = {}

    def load(self, user_id: str) -> NotifiedSet | None:
        raw = self._records.get(user_id)
        if raw is None:
            return None
        return NotifiedSet.model_validate(raw)

    def save(self, user_id: str, notified: NotifiedSet) -> None:
        # Store a detached copy so callers cannot mutate persisted state.
        self._records[user_id] = notified.model_dump(mode="json")


class FileNotifiedSetStore:
    """A filesystem-backed store: one JSON document per user."""

    def __init__(self, base_dir: Path):
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _user_path(self, user_id: str) -> Path:
        digest = sha256(f"notified:{user_id}".encode("utf-8")).hexdigest()
        return self._base_dir / f"{digest}.json"

    def load(self, user_id: str) -> NotifiedSet | None:
        """Return the stored record, None if absent.

        Raises:
            NotifiedSetCorrupt: If the file exists but is not a valid record.
        """
        path = self._user_path(user_id)
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return NotifiedSet.model_validate(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
            raise NotifiedSetCorrupt(f"corrupt notified set for user file {path.name}") from exc

    def save(self, user_id: str, notified: NotifiedSet) -> None:
        """Write the record via a temporary file + atomic replace."""
        path = self._user_path(user_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(notified.model_dump(mode="json"), ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)


def build_store(settings: Settings) -> NotifiedSetStore:
    if settings.store.backend == "memory":
        return MemoryNotifiedSetStore()
    base_dir = resolve_project_path(settings.store.dir)
    logger.debug("Using notified-set store at %s", base_dir)
    return FileNotifiedSetStore(base_dir)
