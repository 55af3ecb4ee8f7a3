"""
Note list loader.

In the app, notes come from a geohash-bounded spatial query. The CLI and offline tools
read the same shape from a local JSON file (a list of note objects) and validate it into
typed `Note` models so the reveal/notify code can assume a consistent shape.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import TypeAdapter

from ghostnotes.core.env import resolve_project_path
from ghostnotes.domain.models import Note


_NOTES_ADAPTER = TypeAdapter(list[Note])


def load_notes(path: str | Path) -> list[Note]:
    """Load and validate a notes JSON file."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    if isinstance(payload, dict) and "notes" in payload:
        payload = payload["notes"]
    return _NOTES_ADAPTER.validate_python(payload)
