"""
Sensor reading normalization and in-process event streams.

Device sensors deliver readings at irregular intervals and sometimes deliver junk
(NaN/Infinity headings, out-of-range fixes). Everything downstream works with
`Coordinate | None` and `float | None`, where `None` means "unknown": comparing
against NaN is always False and would leave the reveal gate stuck.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from math import isfinite
from typing import Callable, Generic, TypeVar

from ghostnotes.core.geo import Coordinate, is_valid_coordinate

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class LocationReading:
    """One fix from the device location stream."""

    latitude: float
    longitude: float
    accuracy_m: float | None = None
    heading: float | None = None


def normalize_location(reading: LocationReading | Coordinate | None) -> Coordinate | None:
    """Return a usable coordinate, or None when the reading is missing or malformed."""
    if reading is None:
        return None
    coord = Coordinate(latitude=float(reading.latitude), longitude=float(reading.longitude))
    if not is_valid_coordinate(coord):
        logger.debug("Discarding malformed location reading: %r", reading)
        return None
    return coord


def normalize_heading(value: float | None) -> float | None:
    """Return a heading in [0, 360), or None when unavailable or non-finite."""
    if value is None:
        return None
    try:
        heading = float(value)
    except (TypeError, ValueError):
        return None
    if not isfinite(heading):
        return None
    heading %= 360.0
    return 0.0 if heading >= 360.0 else heading


class Broadcast(Generic[T]):
    """A tiny synchronous pub/sub stream.

    `subscribe` returns the matching unsubscribe callable; callers own it and must
    call it on teardown.
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[T], None]] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, value: T) -> None:
        # Copy so listeners may unsubscribe while being notified.
        for listener in list(self._listeners):
            listener(value)
