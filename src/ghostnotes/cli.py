"""
GhostNotes CLI entrypoint.

This CLI is intended for quick local checks and debugging without the app:
- geometry helpers (distance, bearing, local frame conversion),
- a proximity-notification pass over a notes file for one user,
- replaying a recorded sensor trace through the reveal gate.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from ghostnotes.catalog.loader import load_notes
from ghostnotes.config.overrides import apply_settings_overrides, parse_override_pairs
from ghostnotes.config.settings import Settings, get_settings
from ghostnotes.core.env import resolve_project_path
from ghostnotes.core.geo import Coordinate, LocalPoint, bearing_deg, distance_m, to_geo, to_local
from ghostnotes.core.logging import configure_logging
from ghostnotes.core.sensors import Broadcast
from ghostnotes.core.timers import ManualScheduler
from ghostnotes.domain.models import Note
from ghostnotes.notify.dispatch import select_dispatcher
from ghostnotes.notify.proximity import ProximityNotifier
from ghostnotes.notify.store import build_store
from ghostnotes.reveal.gate import RevealGate


def _settings(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    pairs = getattr(args, "set", None) or []
    if pairs:
        settings = apply_settings_overrides(settings, parse_override_pairs(pairs))
    return settings


def _coord(lat: float, lng: float) -> Coordinate:
    return Coordinate(latitude=float(lat), longitude=float(lng))


def _cmd_distance(args: argparse.Namespace) -> int:
    a = _coord(args.lat1, args.lng1)
    b = _coord(args.lat2, args.lng2)
    print(f"{distance_m(a, b):.3f}")
    return 0


def _cmd_bearing(args: argparse.Namespace) -> int:
    a = _coord(args.lat1, args.lng1)
    b = _coord(args.lat2, args.lng2)
    print(f"{bearing_deg(a, b):.3f}")
    return 0


def _cmd_to_local(args: argparse.Namespace) -> int:
    p = to_local(_coord(args.origin_lat, args.origin_lng), _coord(args.lat, args.lng))
    print(json.dumps({"x": p.x, "z": p.z}))
    return 0


def _cmd_to_geo(args: argparse.Namespace) -> int:
    c = to_geo(_coord(args.origin_lat, args.origin_lng), LocalPoint(x=float(args.x), z=float(args.z)))
    print(json.dumps({"latitude": c.latitude, "longitude": c.longitude}))
    return 0


def _cmd_notify(args: argparse.Namespace) -> int:
    """Handle the `notify` subcommand."""
    settings = _settings(args)
    notes = load_notes(args.notes)

    def show(title: str, body: str) -> None:
        if not args.json:
            print(f"{title}: {body}")

    dispatcher = select_dispatcher(settings, permission="granted", show=show)
    notifier = ProximityNotifier.from_settings(settings, build_store(settings), dispatcher)

    radius_m = float(args.radius) if args.radius is not None else settings.proximity.radius_m
    cooldown_ms = float(args.cooldown_ms) if args.cooldown_ms is not None else settings.proximity.cooldown_ms
    try:
        intents = notifier.evaluate(args.user, notes, _coord(args.lat, args.lng), radius_m, cooldown_ms)
    finally:
        close = getattr(dispatcher, "close", None)
        if close is not None:
            close()

    if args.json:
        print(json.dumps([i.model_dump(mode="json") for i in intents], ensure_ascii=False, indent=2))
    elif not intents:
        print("No notifications.")
    return 0


def _load_trace(path: str | Path) -> list[dict[str, Any]]:
    payload = json.loads(resolve_project_path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("trace must be a JSON list of events")
    return sorted(payload, key=lambda e: float(e.get("t", 0)))


def _cmd_reveal_replay(args: argparse.Namespace) -> int:
    """Replay a sensor trace: events like {"t": 0.5, "lat": .., "lng": ..} or {"t": 1, "heading": 90}."""
    settings = _settings(args)
    note = Note(
        id=args.note_id,
        lat=float(args.note_lat),
        lng=float(args.note_lng),
        reveal_radius_m=args.radius,
        reveal_angle_deg=args.angle,
    )
    events = _load_trace(args.trace)

    scheduler = ManualScheduler()
    locations: Broadcast = Broadcast()
    headings: Broadcast = Broadcast()
    revealed_at: list[float] = []
    transitions: list[dict[str, Any]] = []

    with RevealGate.from_settings(
        note,
        settings,
        scheduler=scheduler,
        on_reveal=lambda _n: revealed_at.append(scheduler.now),
    ) as gate:
        gate.listen(location_stream=locations, orientation_stream=headings)
        last = None

        def record() -> None:
            nonlocal last
            state = gate.state
            key = (state.status, state.blocked_on)
            if key != last:
                last = key
                transitions.append({"t": round(scheduler.now, 3), **state.model_dump(mode="json")})

        for event in events:
            scheduler.advance_to(float(event.get("t", scheduler.now)))
            record()
            if "lat" in event or "lng" in event:
                locations.publish(_coord(event.get("lat", float("nan")), event.get("lng", float("nan"))))
            if "location" in event and event["location"] is None:
                locations.publish(None)
            if "heading" in event:
                headings.publish(event["heading"])
            record()
        if args.tail > 0:
            scheduler.advance(float(args.tail))
            record()

    for row in transitions:
        progress = row["alignment_progress"]
        dist = row["distance_m"]
        dist_s = "?" if dist is None else f"{dist:.1f}m"
        print(f"t={row['t']:>7.3f}  {row['status']:<9} blocked_on={row['blocked_on']:<11} "
              f"distance={dist_s} progress={progress:.0f}")
    if revealed_at:
        print(f"Revealed at t={revealed_at[0]:.3f}s")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the GhostNotes CLI."""
    parser = argparse.ArgumentParser(prog="ghostnotes")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, func, helptext in [
        ("distance", _cmd_distance, "Great-circle distance in meters between two points."),
        ("bearing", _cmd_bearing, "Initial compass bearing in degrees from point 1 to point 2."),
    ]:
        p = sub.add_parser(name, help=helptext)
        p.add_argument("lat1", type=float)
        p.add_argument("lng1", type=float)
        p.add_argument("lat2", type=float)
        p.add_argument("lng2", type=float)
        p.set_defaults(func=func)

    loc = sub.add_parser("to-local", help="Project a point into the local frame of an origin (x east, z south).")
    loc.add_argument("--origin-lat", required=True, type=float)
    loc.add_argument("--origin-lng", required=True, type=float)
    loc.add_argument("--lat", required=True, type=float)
    loc.add_argument("--lng", required=True, type=float)
    loc.set_defaults(func=_cmd_to_local)

    geo = sub.add_parser("to-geo", help="Convert a local-frame offset back to latitude/longitude.")
    geo.add_argument("--origin-lat", required=True, type=float)
    geo.add_argument("--origin-lng", required=True, type=float)
    geo.add_argument("--x", required=True, type=float, help="meters east")
    geo.add_argument("--z", required=True, type=float, help="meters south")
    geo.set_defaults(func=_cmd_to_geo)

    notify = sub.add_parser("notify", help="Run one proximity-notification pass for a user.")
    notify.add_argument("--notes", required=True, help="JSON file with a list of notes")
    notify.add_argument("--user", required=True)
    notify.add_argument("--lat", required=True, type=float)
    notify.add_argument("--lng", required=True, type=float)
    notify.add_argument("--radius", type=float, default=None, help="Override proximity.radius_m")
    notify.add_argument("--cooldown-ms", type=float, default=None, help="Override proximity.cooldown_ms")
    notify.add_argument("--set", action="append", default=[], help="Settings override: section.key=VALUE")
    notify.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    notify.set_defaults(func=_cmd_notify)

    rep = sub.add_parser("reveal-replay", help="Replay a recorded sensor trace through the reveal gate.")
    rep.add_argument("--trace", required=True, help="JSON list of {t, lat, lng} / {t, heading} events")
    rep.add_argument("--note-id", default="target")
    rep.add_argument("--note-lat", required=True, type=float)
    rep.add_argument("--note-lng", required=True, type=float)
    rep.add_argument("--radius", type=float, default=None, help="Note reveal radius (meters)")
    rep.add_argument("--angle", type=float, default=None, help="Note reveal angle (degrees)")
    rep.add_argument("--tail", type=float, default=0.0, help="Seconds to keep the clock running after the trace")
    rep.add_argument("--set", action="append", default=[], help="Settings override: section.key=VALUE")
    rep.set_defaults(func=_cmd_reveal_replay)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m ghostnotes.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
