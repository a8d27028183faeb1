import math
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from muon_extrap.field import UniformField
from muon_extrap.geometry import build_cylinder, build_plane
from muon_extrap.propagators import AnalyticalPropagator, PropagatorLike, build_propagators, helix_transport
from muon_extrap.state import (
    C_LIGHT,
    FreeTrajectoryState,
    InvalidStateError,
    Track,
    TrajectoryStateOnSurface,
)

B_CMS = UniformField((0.0, 0.0, 3.8))


def test_kinematic_accessors():
    fts = FreeTrajectoryState([0.0, 0.0, 0.0], [3.0, 4.0, 12.0], -1, B_CMS)
    assert fts.momentum_magnitude == pytest.approx(13.0)
    assert fts.pt == pytest.approx(5.0)
    assert np.allclose(fts.direction, [3.0 / 13.0, 4.0 / 13.0, 12.0 / 13.0])
    assert np.linalg.norm(fts.direction) == pytest.approx(1.0)
    assert fts.signed_inverse_momentum == pytest.approx(-1.0 / 13.0)


def test_transverse_curvature_magnitude_and_sign():
    pos = FreeTrajectoryState([0.0, 0.0, 0.0], [5.0, 0.0, 2.0], 1, B_CMS)
    neg = FreeTrajectoryState([0.0, 0.0, 0.0], [5.0, 0.0, 2.0], -1, B_CMS)
    assert pos.transverse_curvature() == pytest.approx(-C_LIGHT * 3.8 / 5.0)
    assert neg.transverse_curvature() == pytest.approx(C_LIGHT * 3.8 / 5.0)
    along_beam = FreeTrajectoryState([0.0, 0.0, 0.0], [0.0, 0.0, 5.0], 1, B_CMS)
    assert along_beam.transverse_curvature() == 0.0


def test_transverse_curvature_matches_bending_of_helix():
    # a positive rho turns counter-clockwise: the heading angle grows
    for charge in (1, -1):
        fts = FreeTrajectoryState([0.0, 0.0, 0.0], [2.0, 1.0, 0.5], charge, B_CMS)
        s = 10.0
        _, mom = helix_transport(fts.position, fts.momentum, np.array([0.0, 0.0, 3.8]), float(charge), s)
        turn = math.atan2(mom[1], mom[0]) - math.atan2(fts.momentum[1], fts.momentum[0])
        s_perp = s * fts.pt / fts.momentum_magnitude
        assert turn == pytest.approx(fts.transverse_curvature() * s_perp, rel=1e-9)


def test_free_state_rejects_bad_input():
    with pytest.raises(ValueError):
        FreeTrajectoryState([0.0, 0.0, 0.0], [1.0, 0.0, 0.0], 2, B_CMS)
    with pytest.raises(ValueError):
        FreeTrajectoryState([0.0, 0.0, 0.0], [0.0, 0.0, 0.0], 1, B_CMS)
    with pytest.raises(ValueError):
        FreeTrajectoryState([0.0, np.inf, 0.0], [1.0, 0.0, 0.0], 1, B_CMS)
    with pytest.raises(ValueError):
        Track([0.0, 0.0], [1.0, 0.0, 0.0], 1)


def test_invalid_state_has_no_kinematics():
    tsos = TrajectoryStateOnSurface.invalid(build_plane(790.0))
    assert not tsos
    with pytest.raises(InvalidStateError):
        tsos.global_position
    with pytest.raises(InvalidStateError):
        tsos.global_momentum
    assert "invalid" in repr(tsos)


def test_propagators_share_one_interface():
    assert isinstance(AnalyticalPropagator(), PropagatorLike)
    for smart in build_propagators().values():
        assert isinstance(smart, PropagatorLike)
    assert not isinstance(build_cylinder(1.0), PropagatorLike)
