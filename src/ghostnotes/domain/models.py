"""
Domain models (Pydantic).

These types are the contract between the reveal engine and its collaborators:
- notes handed in by the spatial query service (`Note`)
- the per-session reveal snapshot handed to the UI (`RevealState`)
- proximity notifications handed to a dispatcher (`NotificationIntent`)
- the per-user persisted notification history (`NotifiedSet`)
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ghostnotes.core.geo import Coordinate


class Note(BaseModel):
    """The subset of a stored note the reveal engine needs (read-only input)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    reveal_radius_m: float | None = Field(default=None, gt=0, alias="revealRadiusM")
    reveal_angle_deg: float | None = Field(default=None, ge=0, le=180, alias="revealAngleDeg")
    teaser: str | None = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.lat, longitude=self.lng)


class RevealStatus(str, Enum):
    HIDDEN = "hidden"
    IN_RANGE = "in_range"
    ALIGNING = "aligning"
    REVEALED = "revealed"


class SensorBlock(str, Enum):
    """Which sensor, if any, the gate is waiting on."""

    NONE = "none"
    LOCATION = "location"
    ORIENTATION = "orientation"


class RevealState(BaseModel):
    """Snapshot of a reveal gate after the latest sensor tick."""

    note_id: str
    status: RevealStatus = RevealStatus.HIDDEN
    within_radius: bool = False
    alignment_progress: float = Field(0.0, ge=0, le=100)
    revealed: bool = False
    blocked_on: SensorBlock = SensorBlock.NONE
    distance_m: float | None = None
    bearing_deg: float | None = None


class NotificationIntent(BaseModel):
    """A decision that the user should be told about a nearby note."""

    note_id: str
    title: str
    body: str


class NotifiedSet(BaseModel):
    """Per-user history of proximity notifications."""

    note_ids: list[str] = Field(default_factory=list)
    last_notified_ms: float | None = None

    @field_validator("note_ids")
    @classmethod
    def _dedupe(cls, ids: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for i in ids:
            if isinstance(i, str) and i:
                seen.setdefault(i, None)
        return list(seen)

    def contains(self, note_id: str) -> bool:
        return note_id in self.note_ids

    def mark(self, note_id: str, at_ms: float) -> "NotifiedSet":
        """Return a copy with `note_id` recorded and the timestamp updated."""
        ids = self.note_ids if note_id in self.note_ids else [*self.note_ids, note_id]
        return NotifiedSet(note_ids=ids, last_notified_ms=at_ms)
