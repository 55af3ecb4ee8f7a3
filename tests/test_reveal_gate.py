import asyncio

import pytest

from ghostnotes.config.settings import get_settings
from ghostnotes.core.geo import Coordinate, LocalPoint, to_geo
from ghostnotes.core.sensors import Broadcast
from ghostnotes.core.timers import AsyncioScheduler, ManualScheduler
from ghostnotes.domain.models import Note, RevealStatus, SensorBlock
from ghostnotes.reveal.gate import RevealGate

NOTE = Note(id="n1", lat=0.0, lng=0.0, reveal_radius_m=35, reveal_angle_deg=20)


def south_of_note(meters: float) -> Coordinate:
    # Standing south of the note means the bearing to it is due north (0 degrees).
    return to_geo(NOTE.coordinate, LocalPoint(x=0.0, z=meters))


def make_gate(**kwargs):
    scheduler = ManualScheduler()
    reveals: list[str] = []
    gate = RevealGate(NOTE, scheduler=scheduler, on_reveal=lambda n: reveals.append(n.id), **kwargs)
    return gate, scheduler, reveals


def test_full_reveal_scenario():
    gate, scheduler, reveals = make_gate()

    gate.update_heading(5.0)
    gate.update_location(south_of_note(40))
    assert gate.status is RevealStatus.HIDDEN
    assert gate.state.within_radius is False

    gate.update_location(south_of_note(34))
    assert gate.status is RevealStatus.ALIGNING
    assert gate.state.alignment_progress == 0

    # Nine ticks of 10% each; the tenth completes the reveal.
    scheduler.advance(1.8)
    assert gate.status is RevealStatus.ALIGNING
    assert gate.state.alignment_progress == pytest.approx(90)

    scheduler.advance(0.2)
    state = gate.state
    assert state.status is RevealStatus.REVEALED
    assert state.revealed is True
    assert state.alignment_progress == 100
    assert reveals == ["n1"]
    assert scheduler.active_tickers == 0

    # Terminal: more ticks and sensor updates change nothing.
    gate.update_location(south_of_note(100))
    scheduler.advance(5)
    assert gate.status is RevealStatus.REVEALED
    assert reveals == ["n1"]


def test_in_range_then_aligning_when_heading_points_at_note():
    gate, scheduler, _ = make_gate()
    gate.update_heading(90.0)
    gate.update_location(south_of_note(34))
    assert gate.status is RevealStatus.IN_RANGE
    assert scheduler.active_tickers == 0

    gate.update_heading(-15.0)  # 345 degrees, 15 off due north
    assert gate.status is RevealStatus.ALIGNING
    assert scheduler.active_tickers == 1


def test_interrupted_alignment_discards_progress():
    gate, scheduler, reveals = make_gate()
    gate.update_heading(0.0)
    gate.update_location(south_of_note(10))
    scheduler.advance(1.0)
    assert gate.state.alignment_progress == pytest.approx(50)

    gate.update_heading(90.0)
    assert gate.status is RevealStatus.IN_RANGE
    assert gate.state.alignment_progress == 0
    assert scheduler.active_tickers == 0

    # Re-aligning starts over from zero rather than resuming.
    gate.update_heading(0.0)
    assert gate.status is RevealStatus.ALIGNING
    assert gate.state.alignment_progress == 0

    scheduler.advance(1.0)
    assert gate.state.alignment_progress == pytest.approx(50)
    assert reveals == []


def test_walking_away_resets_to_hidden_and_stops_ticker():
    gate, scheduler, _ = make_gate()
    gate.update_heading(0.0)
    gate.update_location(south_of_note(10))
    scheduler.advance(0.6)

    gate.update_location(south_of_note(60))
    assert gate.status is RevealStatus.HIDDEN
    assert gate.state.alignment_progress == 0
    assert scheduler.active_tickers == 0


def test_missing_location_reports_location_block_not_error():
    gate, _, _ = make_gate()
    assert gate.state.blocked_on is SensorBlock.LOCATION
    assert gate.state.distance_m is None

    gate.update_heading(0.0)
    gate.update_location(south_of_note(10))
    assert gate.status is RevealStatus.ALIGNING

    gate.update_location(None)
    state = gate.state
    assert state.status is RevealStatus.HIDDEN
    assert state.blocked_on is SensorBlock.LOCATION
    assert state.distance_m is None


def test_non_finite_location_is_treated_as_unknown():
    gate, _, _ = make_gate()
    gate.update_heading(0.0)
    gate.update_location(Coordinate(float("nan"), 0.0))
    assert gate.status is RevealStatus.HIDDEN
    assert gate.state.blocked_on is SensorBlock.LOCATION


@pytest.mark.parametrize("heading", [None, float("nan"), float("inf")])
def test_missing_heading_blocks_on_orientation(heading):
    gate, scheduler, _ = make_gate()
    gate.update_location(south_of_note(10))
    gate.update_heading(heading)
    state = gate.state
    assert state.status is RevealStatus.IN_RANGE
    assert state.blocked_on is SensorBlock.ORIENTATION
    scheduler.advance(5)
    assert gate.status is RevealStatus.IN_RANGE


def test_heading_loss_while_aligning_stops_progress():
    gate, scheduler, _ = make_gate()
    gate.update_heading(0.0)
    gate.update_location(south_of_note(10))
    scheduler.advance(0.4)
    gate.update_heading(None)
    assert gate.status is RevealStatus.IN_RANGE
    assert gate.state.blocked_on is SensorBlock.ORIENTATION
    assert scheduler.active_tickers == 0


def test_without_sightline_range_alone_reveals():
    gate, scheduler, reveals = make_gate(require_sightline=False)
    gate.update_location(south_of_note(10))
    assert gate.status is RevealStatus.ALIGNING
    assert gate.state.blocked_on is SensorBlock.NONE
    scheduler.advance(2.0)
    assert reveals == ["n1"]


def test_note_radius_overrides_default():
    scheduler = ManualScheduler()
    wide = Note(id="wide", lat=0.0, lng=0.0, reveal_radius_m=100)
    gate = RevealGate(wide, scheduler=scheduler, radius_m=35, angle_deg=20)
    gate.update_heading(0.0)
    # 80m is outside the default 35m but inside the note's own radius.
    gate.update_location(south_of_note(80))
    assert gate.radius_m == 100
    assert gate.angle_deg == 20
    assert gate.status is RevealStatus.ALIGNING


def test_close_releases_ticker_and_subscriptions():
    locations: Broadcast = Broadcast()
    headings: Broadcast = Broadcast()
    scheduler = ManualScheduler()
    with RevealGate(NOTE, scheduler=scheduler) as gate:
        gate.listen(location_stream=locations, orientation_stream=headings)
        assert locations.listener_count == 1 and headings.listener_count == 1
        headings.publish(0.0)
        locations.publish(south_of_note(10))
        assert gate.status is RevealStatus.ALIGNING
        assert scheduler.active_tickers == 1

    assert gate.closed
    assert scheduler.active_tickers == 0
    assert locations.listener_count == 0 and headings.listener_count == 0
    gate.close()  # idempotent


def test_close_runs_when_the_body_raises():
    headings: Broadcast = Broadcast()
    scheduler = ManualScheduler()
    with pytest.raises(RuntimeError):
        with RevealGate(NOTE, scheduler=scheduler, require_sightline=False) as gate:
            gate.listen(orientation_stream=headings)
            gate.update_location(south_of_note(5))
            raise RuntimeError("boom")
    assert scheduler.active_tickers == 0
    assert headings.listener_count == 0


def test_updates_after_close_are_ignored():
    gate, scheduler, reveals = make_gate(require_sightline=False)
    gate.close()
    gate.update_location(south_of_note(5))
    scheduler.advance(3)
    assert gate.status is RevealStatus.HIDDEN
    assert reveals == []


def test_set_target_starts_fresh():
    gate, scheduler, reveals = make_gate()
    gate.update_heading(0.0)
    gate.update_location(south_of_note(10))
    scheduler.advance(2.0)
    assert reveals == ["n1"]

    other = Note(id="n2", lat=0.001, lng=0.0)
    gate.set_target(other)
    state = gate.state
    assert state.note_id == "n2"
    assert state.revealed is False
    assert state.alignment_progress == 0


def test_from_settings_uses_reveal_section():
    settings = get_settings()
    reveal = settings.reveal.model_copy(update={"radius_m": 5.0, "require_sightline": False})
    settings = settings.model_copy(update={"reveal": reveal})
    bare = Note(id="bare", lat=0.0, lng=0.0)
    gate = RevealGate.from_settings(bare, settings, scheduler=ManualScheduler())
    gate.update_location(south_of_note(10))
    assert gate.radius_m == 5.0
    assert gate.status is RevealStatus.HIDDEN


def test_asyncio_scheduler_reveals_once():
    async def run() -> tuple[list[str], RevealGate]:
        reveals: list[str] = []
        gate = RevealGate(
            NOTE,
            scheduler=AsyncioScheduler(),
            on_reveal=lambda n: reveals.append(n.id),
            require_sightline=False,
            tick_interval_s=0.01,
            progress_step=50,
        )
        with gate:
            gate.update_location(south_of_note(5))
            await asyncio.sleep(0.1)
        return reveals, gate

    reveals, gate = asyncio.run(run())
    assert reveals == ["n1"]
    assert gate.status is RevealStatus.REVEALED
