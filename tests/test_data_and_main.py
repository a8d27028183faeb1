import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import muon_extrap.main as mx_main
from muon_extrap.data import events_from_frame, load_events


def _table():
    return pd.DataFrame({
        "event": [3, 3, 1],
        "muon": [0, 1, 0],
        "x": [0.0, 10.0, 0.0],
        "y": [0.0, -20.0, 0.0],
        "z": [0.0, 30.0, 0.0],
        "px": [10.0, 0.5, 0.0],
        "py": [5.0, 0.0, 0.0],
        "pz": [40.0, 0.0, -50.0],
        "charge": [1, -1, 1],
    })


def test_events_grouped_in_first_seen_order():
    events = events_from_frame(_table())
    assert [ev.event_id for ev in events] == [3, 1]
    tracks = events[0].get_by_label("slimmedMuons")
    assert [t.key for t in tracks] == [0, 1]
    assert tracks[1].charge == -1
    assert np.allclose(tracks[1].inner_position, [10.0, -20.0, 30.0])


def test_length_unit_conversion():
    events = events_from_frame(_table(), label="muons", length_unit="mm")
    track = events[0].get_by_label("muons")[1]
    assert np.allclose(track.inner_position, [1.0, -2.0, 3.0])
    with pytest.raises(ValueError):
        events_from_frame(_table(), length_unit="furlong")


def test_missing_column_raises():
    with pytest.raises(KeyError, match="charge"):
        events_from_frame(_table().drop(columns=["charge"]))


def test_load_events_from_csv(tmp_path):
    path = tmp_path / "muons.csv"
    _table().to_csv(path, index=False)
    events = load_events(path)
    assert sum(len(ev.get_by_label("slimmedMuons")) for ev in events) == 3


def test_load_config_merges_over_defaults(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text('{"field": {"B": [0.0, 0.0, 2.0]}, "producer": {"sentinel": -1.0}}')
    cfg = mx_main.load_config(path)
    assert cfg["field"] == {"type": "uniform", "B": [0.0, 0.0, 2.0]}
    assert cfg["producer"]["sentinel"] == -1.0
    assert cfg["producer"]["propagator_along"] == "SmartPropagatorAlong"
    assert mx_main.DEFAULT_CONFIG["field"]["B"] == [0.0, 0.0, 3.8]


def test_load_config_rejects_bad_json(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text("{not json")
    with pytest.raises(ValueError):
        mx_main.load_config(path)
    path.write_text("[1, 2]")
    with pytest.raises(ValueError):
        mx_main.load_config(path)
    with pytest.raises(ValueError):
        mx_main.load_config(tmp_path / "missing.json")


def test_run_reports_every_muon():
    events = events_from_frame(_table())
    frame = mx_main.run(mx_main.load_config(None), events)
    assert len(frame) == 3
    first = frame[(frame["event"] == 3) & (frame["muon"] == 0)].iloc[0]
    assert first["valid_me2_p"] and first["valid_me2_n"] and first["valid_mb2"]
    assert first["z_me2_p"] == pytest.approx(790.0, abs=1e-6)
    curler = frame[(frame["event"] == 3) & (frame["muon"] == 1)].iloc[0]
    assert not curler["valid_mb2"]
    assert curler["r_mb2"] == -999999.0


def test_main_end_to_end(tmp_path):
    src = tmp_path / "muons.csv"
    out = tmp_path / "out.csv"
    _table().to_csv(src, index=False)
    mx_main.main(["-f", str(src), "-o", str(out), "-n", "1"])
    frame = pd.read_csv(out)
    assert len(frame) == 2
    assert set(frame["event"]) == {3}
    assert "cosphi_mb2" in frame.columns


def test_main_writes_plot(tmp_path):
    src = tmp_path / "muons.csv"
    png = tmp_path / "pos.png"
    _table().to_csv(src, index=False)
    mx_main.main(["-f", str(src), "--plot-out", str(png)])
    assert png.exists()


def test_repeated_muon_key_in_event_rejected():
    df = _table()
    df.loc[1, "muon"] = 0
    with pytest.raises(ValueError, match="Duplicate"):
        events_from_frame(df)
    # the same key in different events is fine
    df = _table()
    df.loc[2, "muon"] = 1
    assert len(events_from_frame(df)) == 2


def test_headless_guard_disables_show():
    mx_main.apply_plotting_guard(False)
    import matplotlib
    import matplotlib.pyplot as plt
    assert matplotlib.get_backend().lower() == "agg"
    assert not plt.isinteractive()
    assert plt.show() is None
