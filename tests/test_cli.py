import json

import pytest

from ghostnotes.cli import main


@pytest.fixture(autouse=True)
def isolated_store(monkeypatch, tmp_path):
    from ghostnotes.config.settings import get_settings

    monkeypatch.setenv("GHOSTNOTES_STORE_DIR", str(tmp_path / "notified"))
    monkeypatch.delenv("GHOSTNOTES_NOTIFY_RELAY_URL", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_distance_and_bearing(capsys):
    assert main(["distance", "0", "179.9999", "0", "-179.9999"]) == 0
    assert 20 < float(capsys.readouterr().out) < 25

    assert main(["bearing", "0", "0", "0", "1"]) == 0
    assert float(capsys.readouterr().out) == pytest.approx(90.0)


def test_local_frame_round_trip(capsys):
    main(["to-local", "--origin-lat", "0", "--origin-lng", "0", "--lat", "0.0001", "--lng", "0.0001"])
    p = json.loads(capsys.readouterr().out)
    assert p["x"] > 0 and p["z"] < 0

    main(["to-geo", "--origin-lat", "0", "--origin-lng", "0", "--x", str(p["x"]), "--z", str(p["z"])])
    c = json.loads(capsys.readouterr().out)
    assert c["latitude"] == pytest.approx(0.0001, abs=1e-9)
    assert c["longitude"] == pytest.approx(0.0001, abs=1e-9)


def test_notify_dedupes_across_runs(tmp_path, capsys):
    notes = tmp_path / "notes.json"
    notes.write_text(
        json.dumps([{"id": "n1", "lat": 0.0, "lng": 0.0, "teaser": "boo"}, {"id": "far", "lat": 1.0, "lng": 1.0}]),
        encoding="utf-8",
    )
    args = ["notify", "--notes", str(notes), "--user", "u1", "--lat", "0", "--lng", "0.0001"]

    assert main([*args, "--json"]) == 0
    intents = json.loads(capsys.readouterr().out)
    assert intents == [{"note_id": "n1", "title": "Note nearby", "body": "boo"}]

    assert main(args) == 0
    assert capsys.readouterr().out.strip() == "No notifications."

    assert main(["notify", "--notes", str(notes), "--user", "u2", "--lat", "0", "--lng", "0.0001"]) == 0
    assert capsys.readouterr().out.strip() == "Note nearby: boo"


def test_reveal_replay_prints_transitions(tmp_path, capsys):
    trace = tmp_path / "trace.json"
    trace.write_text(
        json.dumps(
            [
                {"t": 0.0, "lat": -0.0004, "lng": 0.0},
                {"t": 1.0, "lat": -0.0002, "lng": 0.0},
                {"t": 1.5, "heading": 4},
            ]
        ),
        encoding="utf-8",
    )
    code = main(
        ["reveal-replay", "--trace", str(trace), "--note-lat", "0", "--note-lng", "0", "--tail", "3"]
    )
    out = capsys.readouterr().out
    assert code == 0
    assert "hidden" in out and "in_range" in out and "aligning" in out
    assert "Revealed at t=3.500s" in out
