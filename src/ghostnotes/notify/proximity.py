"""
Proximity notifications ("a note is nearby").

Runs in the background on every location or notes update. For the current user it:
- skips notes already in the user's `NotifiedSet`,
- emits at most one notification per cooldown window (the cooldown is per user,
  not per note, so several notes coming into range at once produce one alert),
- records the note and timestamp and writes the set back before moving on.

History is fail-open: an unreadable record means "nothing notified yet", and a failed
write only loses persistence. Dispatch is fire-and-forget.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable

from ghostnotes.config.settings import Settings
from ghostnotes.core.geo import Coordinate, distance_m
from ghostnotes.core.rate_limit import cooldown_elapsed
from ghostnotes.core.sensors import normalize_location
from ghostnotes.domain.models import Note, NotificationIntent, NotifiedSet
from ghostnotes.notify.dispatch import NotificationDispatcher
from ghostnotes.notify.store import NotifiedSetStore

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Note nearby"
DEFAULT_BODY = "You are near a note"


def _now_ms() -> float:
    return time.time() * 1000.0


class ProximityNotifier:
    def __init__(
        self,
        store: NotifiedSetStore,
        dispatcher: NotificationDispatcher | None,
        *,
        title: str = DEFAULT_TITLE,
        default_body: str = DEFAULT_BODY,
        settings: Settings | None = None,
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._title = title
        self._default_body = default_body
        self._settings = settings
        self._user_id: str | None = None
        self._notified = NotifiedSet()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: NotifiedSetStore,
        dispatcher: NotificationDispatcher | None,
    ) -> "ProximityNotifier":
        cfg = settings.proximity
        return cls(store, dispatcher, title=cfg.title, default_body=cfg.default_body, settings=settings)

    @property
    def current_user(self) -> str | None:
        return self._user_id

    def notified_for(self, user_id: str) -> NotifiedSet:
        """The notified set the next evaluation for `user_id` would start from."""
        self._ensure_session(user_id)
        return self._notified

    def _ensure_session(self, user_id: str) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        self._notified = self._load(user_id)

    def _load(self, user_id: str) -> NotifiedSet:
        try:
            loaded = self._store.load(user_id)
        except Exception as exc:
            logger.warning("Could not read notified set for user %s; starting empty: %s", user_id, str(exc))
            return NotifiedSet()
        return loaded if loaded is not None else NotifiedSet()

    def _persist(self, user_id: str) -> None:
        try:
            self._store.save(user_id, self._notified)
        except Exception as exc:
            logger.warning("Could not persist notified set for user %s: %s", user_id, str(exc))

    def _intent_for(self, note: Note) -> NotificationIntent:
        body = note.teaser.strip() if note.teaser and note.teaser.strip() else self._default_body
        return NotificationIntent(note_id=note.id, title=self._title, body=body)

    def evaluate(
        self,
        user_id: str,
        notes: Iterable[Note],
        location: Coordinate | None,
        radius_m: float,
        cooldown_ms: float,
    ) -> list[NotificationIntent]:
        """Decide which notes to announce now; dispatches and returns the intents."""
        self._ensure_session(user_id)

        coord = normalize_location(location)
        if coord is None:
            return []
        dispatcher = self._dispatcher
        if dispatcher is None or not dispatcher.available:
            return []

        intents: list[NotificationIntent] = []
        for note in notes:
            if self._notified.contains(note.id):
                continue
            d = distance_m(coord, note.coordinate)
            if not d <= radius_m:
                continue
            now = _now_ms()
            if not cooldown_elapsed(self._notified.last_notified_ms, now, cooldown_ms):
                # Cooldown is global to the user: nothing else can fire this pass.
                break

            intent = self._intent_for(note)
            self._notified = self._notified.mark(note.id, now)
            self._persist(user_id)
            intents.append(intent)
            logger.info("Proximity notification for note %s (user=%s, distance=%.1fm)", note.id, user_id, d)

            try:
                dispatcher.dispatch(user_id, intent)
            except Exception as exc:
                logger.warning("Notification dispatch failed for note %s: %s", note.id, str(exc))

        return intents

    def evaluate_with_settings(
        self, user_id: str, notes: Iterable[Note], location: Coordinate | None
    ) -> list[NotificationIntent]:
        """`evaluate` using the configured proximity radius and cooldown."""
        if self._settings is None:
            raise RuntimeError("ProximityNotifier was created without settings")
        cfg = self._settings.proximity
        return self.evaluate(user_id, notes, location, cfg.radius_m, cfg.cooldown_ms)
