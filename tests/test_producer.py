import math
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from muon_extrap.event import FIELD_RECORD, Event, EventSetup, PropagatorProvider
from muon_extrap.field import UniformField
from muon_extrap.geometry import build_plane
from muon_extrap.producer import (
    DEFAULT_TARGETS,
    SENTINEL,
    ExtrapolationTarget,
    MuonPropagationProducer,
    derive_quantities,
    results_to_frame,
)
from muon_extrap.propagators import build_propagators
from muon_extrap.state import Track, TrajectoryStateOnSurface


@pytest.fixture(scope="module")
def setup():
    return EventSetup({FIELD_RECORD: UniformField((0.0, 0.0, 3.8))}, PropagatorProvider(build_propagators()))


def _event(*tracks, event_id=7, label="slimmedMuons"):
    return Event(event_id, {label: list(tracks)})


def test_one_result_per_track_and_target(setup):
    ev = _event(Track([0, 0, 0], [10.0, 5.0, 40.0], 1), Track([0, 0, 0], [-8.0, 2.0, -30.0], -1))
    results = MuonPropagationProducer().produce(ev, setup)
    assert len(results) == 2 * len(DEFAULT_TARGETS)
    assert [r.track_index for r in results] == [0, 0, 0, 1, 1, 1]
    assert [r.target for r in results[:3]] == ["me2_p", "me2_n", "mb2"]
    assert all(r.event_id == 7 for r in results)


def test_valid_results_derive_radius_and_azimuth(setup):
    ev = _event(Track([0, 0, 0], [10.0, 5.0, 40.0], 1))
    for res in MuonPropagationProducer().produce(ev, setup):
        assert res.valid
        assert res.r == pytest.approx(math.hypot(res.x, res.y))
        assert res.cosphi == pytest.approx(res.x / res.r)
        assert 0.0 <= res.phi < 2.0 * math.pi
        assert math.cos(res.phi) == pytest.approx(res.cosphi)
        assert math.sin(res.phi) == pytest.approx(res.y / res.r)


def test_curling_muon_gets_sentinels(setup):
    ev = _event(Track([0, 0, 0], [0.5, 0.0, 0.0], -1))
    results = MuonPropagationProducer().produce(ev, setup)
    assert len(results) == 3
    for res in results:
        assert not res.valid
        assert res.r == SENTINEL
        assert res.cosphi == SENTINEL
        assert res.phi == SENTINEL
        assert res.z == SENTINEL


def test_track_key_becomes_index(setup):
    ev = _event(Track([0, 0, 0], [10.0, 5.0, 40.0], 1, key=4))
    assert {r.track_index for r in MuonPropagationProducer().produce(ev, setup)} == {4}


def test_missing_collection_raises(setup):
    ev = _event(Track([0, 0, 0], [1.0, 1.0, 1.0], 1), label="muons")
    with pytest.raises(KeyError, match="slimmedMuons"):
        MuonPropagationProducer().produce(ev, setup)


def test_missing_propagator_or_field_raises(setup):
    ev = _event(Track([0, 0, 0], [1.0, 1.0, 1.0], 1))
    with pytest.raises(KeyError, match="NoSuchPropagator"):
        MuonPropagationProducer(along_name="NoSuchPropagator").produce(ev, setup)
    with pytest.raises(KeyError):
        MuonPropagationProducer(field_record="VolumeBasedMagneticField").produce(ev, setup)


def test_empty_event_produces_nothing(setup):
    assert MuonPropagationProducer().produce(_event(), setup) == []


def _tsos_at(x, y, z):
    return TrajectoryStateOnSurface.on_surface(build_plane(z), [x, y, z], [1.0, 0.0, 0.0], 1, 1.0)


def test_azimuth_below_x_axis():
    res = derive_quantities(_tsos_at(0.0, -3.0, 790.0), "me2_p", 0)
    assert res.r == pytest.approx(3.0)
    assert res.cosphi == pytest.approx(0.0, abs=1e-15)
    assert res.phi == pytest.approx(1.5 * math.pi)


def test_azimuth_on_beam_axis():
    res = derive_quantities(_tsos_at(0.0, 0.0, 790.0), "me2_p", 0)
    assert res.valid
    assert res.r == 0.0
    assert res.cosphi == 1.0
    assert res.phi == 0.0


def test_invalid_state_uses_custom_sentinel():
    res = derive_quantities(TrajectoryStateOnSurface.invalid(build_plane(1.0)), "x", 2, sentinel=-1.0)
    assert not res.valid
    assert (res.x, res.y, res.z, res.r, res.cosphi, res.phi) == (-1.0,) * 6


def test_results_to_frame_is_one_row_per_muon(setup):
    ev = _event(Track([0, 0, 0], [10.0, 5.0, 40.0], 1), Track([0, 0, 0], [0.5, 0.0, 0.0], -1))
    frame = results_to_frame(MuonPropagationProducer().produce(ev, setup))
    assert list(frame.columns[:2]) == ["event", "muon"]
    for name in ("me2_p", "me2_n", "mb2"):
        for q in ("valid", "r", "phi", "cosphi", "z"):
            assert f"{q}_{name}" in frame.columns
    assert len(frame) == 2
    assert frame["valid_mb2"].tolist() == [True, False]
    assert frame["r_mb2"].iloc[1] == SENTINEL
    assert frame["r_mb2"].iloc[0] == pytest.approx(500.0, abs=1e-6)


def test_results_to_frame_empty():
    assert list(results_to_frame([]).columns) == ["event", "muon"]


def test_from_config_reads_producer_block():
    cfg = {"producer": {
        "track_label": "muons",
        "propagator_along": "SmartPropagatorAny",
        "sentinel": -1.0,
        "targets": [{"name": "st1", "kind": "cylinder", "value": 420.0}],
    }}
    producer = MuonPropagationProducer.from_config(cfg)
    assert producer.track_source.label == "muons"
    assert producer.along_name == "SmartPropagatorAny"
    assert producer.opposite_name == "SmartPropagatorAnyOpposite"
    assert producer.sentinel == -1.0
    assert producer.targets == (ExtrapolationTarget("st1", "cylinder", 420.0),)


def test_target_validation():
    with pytest.raises(ValueError):
        ExtrapolationTarget("bad", "cone", 1.0)
    with pytest.raises(ValueError):
        MuonPropagationProducer(targets=[ExtrapolationTarget("a", "plane", 1.0)] * 2)
    assert np.allclose(ExtrapolationTarget("p", "plane", -790.0).surface().position, [0, 0, -790.0])


def test_results_to_frame_rejects_repeated_track_keys(setup):
    ev = _event(Track([0, 0, 0], [10.0, 5.0, 40.0], 1, key=0), Track([0, 0, 0], [-8.0, 2.0, -30.0], -1, key=0))
    results = MuonPropagationProducer().produce(ev, setup)
    with pytest.raises(ValueError, match="more than once"):
        results_to_frame(results)
