"""
Reveal gate: decides when the active target note is revealed.

The gate walks a small state machine on every location/heading update:

    hidden -> in_range -> aligning -> revealed

- `in_range` once the user is within the note's reveal radius.
- `aligning` once (if sightline is required) the device heading points within the
  reveal angle of the bearing to the note. While aligning, a fixed-period ticker
  accrues progress (10% every 200ms by default, so about 2s to reveal).
- Leaving `aligning` for any reason cancels the ticker and discards progress.
- `revealed` is terminal for the target and fires `on_reveal` exactly once.

Sensor gaps are reported through `blocked_on` rather than by pretending the user is
far away: no location means "unknown distance", no heading means the caller should ask
for motion-sensor permission.

All resources the gate acquires (the progress ticker, stream subscriptions) are owned
by the gate and released by `close()` / the context manager, whatever path led there.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Callable

from ghostnotes.config.settings import Settings
from ghostnotes.core.geo import Coordinate, angular_difference_deg, bearing_deg, distance_m
from ghostnotes.core.sensors import Broadcast, normalize_heading, normalize_location
from ghostnotes.core.timers import Scheduler, TickerHandle
from ghostnotes.domain.models import Note, RevealState, RevealStatus, SensorBlock

logger = logging.getLogger(__name__)

DEFAULT_REVEAL_RADIUS_M = 35.0
DEFAULT_REVEAL_ANGLE_DEG = 20.0
DEFAULT_TICK_INTERVAL_S = 0.2
DEFAULT_PROGRESS_STEP = 10.0


class RevealGate:
    def __init__(
        self,
        note: Note,
        *,
        scheduler: Scheduler,
        on_reveal: Callable[[Note], None] | None = None,
        radius_m: float | None = None,
        angle_deg: float | None = None,
        require_sightline: bool = True,
        tick_interval_s: float = DEFAULT_TICK_INTERVAL_S,
        progress_step: float = DEFAULT_PROGRESS_STEP,
    ):
        if tick_interval_s <= 0:
            raise ValueError("tick_interval_s must be > 0")
        if not 0 < progress_step <= 100:
            raise ValueError("progress_step must be in (0, 100]")
        self._scheduler = scheduler
        self._on_reveal = on_reveal
        self._default_radius_m = float(radius_m) if radius_m is not None else DEFAULT_REVEAL_RADIUS_M
        self._default_angle_deg = float(angle_deg) if angle_deg is not None else DEFAULT_REVEAL_ANGLE_DEG
        self._require_sightline = bool(require_sightline)
        self._tick_interval_s = float(tick_interval_s)
        self._progress_step = float(progress_step)

        self._resources = ExitStack()
        self._ticker: TickerHandle | None = None
        self._closed = False

        self._location: Coordinate | None = None
        self._heading: float | None = None
        self._reset_target(note)
        self._evaluate()

    @classmethod
    def from_settings(
        cls,
        note: Note,
        settings: Settings,
        *,
        scheduler: Scheduler,
        on_reveal: Callable[[Note], None] | None = None,
    ) -> "RevealGate":
        cfg = settings.reveal
        return cls(
            note,
            scheduler=scheduler,
            on_reveal=on_reveal,
            radius_m=cfg.radius_m,
            angle_deg=cfg.angle_deg,
            require_sightline=cfg.require_sightline,
            tick_interval_s=cfg.tick_interval_ms / 1000.0,
            progress_step=cfg.progress_step,
        )

    # -- lifecycle -----------------------------------------------------------

    def __enter__(self) -> "RevealGate":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the ticker and every stream subscription. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._stop_ticker()
        self._resources.close()
        logger.debug("Reveal gate for note %s closed", self._note.id)

    def listen(
        self,
        *,
        location_stream: Broadcast | None = None,
        orientation_stream: Broadcast | None = None,
    ) -> None:
        """Subscribe to sensor streams; subscriptions are released on `close()`."""
        if self._closed:
            raise RuntimeError("reveal gate is closed")
        if location_stream is not None:
            self._resources.callback(location_stream.subscribe(self.update_location))
        if orientation_stream is not None:
            self._resources.callback(orientation_stream.subscribe(self.update_heading))

    # -- inputs --------------------------------------------------------------

    @property
    def note(self) -> Note:
        return self._note

    @property
    def radius_m(self) -> float:
        return self._note.reveal_radius_m or self._default_radius_m

    @property
    def angle_deg(self) -> float:
        if self._note.reveal_angle_deg is not None:
            return self._note.reveal_angle_deg
        return self._default_angle_deg

    def set_target(self, note: Note) -> None:
        """Switch to a different note; all progress for the old one is dropped."""
        if self._closed:
            return
        if note.id == self._note.id and note == self._note:
            return
        self._stop_ticker()
        logger.debug("Reveal gate retargeted %s -> %s", self._note.id, note.id)
        self._reset_target(note)
        self._evaluate()

    def update_location(self, reading) -> None:
        if self._closed:
            return
        self._location = normalize_location(reading)
        self._evaluate()

    def update_heading(self, heading: float | None) -> None:
        """Feed the latest compass heading; None means unavailable or not permitted."""
        if self._closed:
            return
        self._heading = normalize_heading(heading)
        self._evaluate()

    # -- output --------------------------------------------------------------

    @property
    def status(self) -> RevealStatus:
        return self._status

    @property
    def state(self) -> RevealState:
        return RevealState(
            note_id=self._note.id,
            status=self._status,
            within_radius=self._within_radius,
            alignment_progress=self._progress,
            revealed=self._status is RevealStatus.REVEALED,
            blocked_on=self._blocked_on,
            distance_m=self._distance_m,
            bearing_deg=self._bearing_deg,
        )

    # -- internals -----------------------------------------------------------

    def _reset_target(self, note: Note) -> None:
        self._note = note
        self._status = RevealStatus.HIDDEN
        self._progress = 0.0
        self._within_radius = False
        self._distance_m: float | None = None
        self._bearing_deg: float | None = None
        self._blocked_on = SensorBlock.NONE

    def _evaluate(self) -> None:
        if self._status is RevealStatus.REVEALED:
            return

        target = self._note.coordinate
        if self._location is None:
            self._distance_m = None
            self._bearing_deg = None
            self._within_radius = False
            self._blocked_on = SensorBlock.LOCATION
            self._transition(RevealStatus.HIDDEN)
            return

        self._distance_m = distance_m(self._location, target)
        self._bearing_deg = bearing_deg(self._location, target)
        self._within_radius = self._distance_m <= self.radius_m

        if self._require_sightline and self._heading is None:
            self._blocked_on = SensorBlock.ORIENTATION
        else:
            self._blocked_on = SensorBlock.NONE

        if not self._within_radius:
            self._transition(RevealStatus.HIDDEN)
        elif not self._require_sightline:
            self._transition(RevealStatus.ALIGNING)
        elif self._heading is None:
            self._transition(RevealStatus.IN_RANGE)
        elif angular_difference_deg(self._bearing_deg, self._heading) <= self.angle_deg:
            self._transition(RevealStatus.ALIGNING)
        else:
            self._transition(RevealStatus.IN_RANGE)

    def _transition(self, new_status: RevealStatus) -> None:
        old_status = self._status
        if new_status is old_status:
            return

        if old_status is RevealStatus.ALIGNING:
            self._stop_ticker()
        self._progress = 0.0
        self._status = new_status

        if new_status is RevealStatus.ALIGNING:
            self._ticker = self._scheduler.start_ticker(self._tick_interval_s, self._on_tick)

        logger.debug(
            "Note %s: %s -> %s (distance=%s)",
            self._note.id,
            old_status.value,
            new_status.value,
            None if self._distance_m is None else round(self._distance_m, 1),
        )

    def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.cancel()

    def _on_tick(self) -> None:
        if self._closed or self._status is not RevealStatus.ALIGNING:
            # A late tick from a cancelled ticker must not accrue progress.
            self._stop_ticker()
            return
        self._progress = min(100.0, self._progress + self._progress_step)
        if self._progress < 100.0:
            return

        self._stop_ticker()
        self._status = RevealStatus.REVEALED
        logger.info("Note %s revealed", self._note.id)
        if self._on_reveal is not None:
            self._on_reveal(self._note)
