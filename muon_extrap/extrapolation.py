r"""
Extrapolation of muon tracks to detector surfaces.

The engine is stateless: the field and both propagators are passed to every
call. For a track :math:`T` and a target surface :math:`\Sigma`,

.. math::

    \text{TSOS} =
    \begin{cases}
      P_\text{along}(F(T), \Sigma) & \text{if valid},\\
      P_\text{opposite}(F(T), \Sigma) & \text{otherwise},
    \end{cases}

where :math:`F(T)` is the free trajectory state at the track's innermost
point. The opposite propagator is a single fallback, never tried first.
"""
from __future__ import annotations

import logging

from muon_extrap.field import MagneticField
from muon_extrap.geometry import Surface, build_cylinder, build_plane
from muon_extrap.propagators import PropagatorLike
from muon_extrap.state import FreeTrajectoryState, Track, TrajectoryStateOnSurface

logger = logging.getLogger(__name__)

__all__ = [
    "free_state_from_track",
    "propagate_with_fallback",
    "extrapolate_to_plane",
    "extrapolate_to_cylinder",
]



def free_state_from_track(track: Track, field: MagneticField) -> FreeTrajectoryState:
    """
    Free state at the track's innermost point; ``field`` is held by reference.
    """
    return FreeTrajectoryState(track.inner_position, track.inner_momentum, track.charge, field)


def propagate_with_fallback(fts: FreeTrajectoryState,
                            surface: Surface,
                            along: PropagatorLike,
                            opposite: PropagatorLike) -> TrajectoryStateOnSurface:
    r"""
    Propagate with ``along``; if the result is invalid, retry once with ``opposite``.

    Returns
    -------
    TrajectoryStateOnSurface
        The ``along`` result when valid, otherwise the ``opposite`` result,
        which may itself be invalid.
    """
    tsos = along.propagate(fts, surface)
    if tsos.is_valid:
        return tsos
    logger.debug("Along propagation to %r failed; trying opposite", surface)
    return opposite.propagate(fts, surface)


def extrapolate_to_plane(track: Track,
                         z: float,
                         field: MagneticField,
                         along: PropagatorLike,
                         opposite: PropagatorLike) -> TrajectoryStateOnSurface:
    r"""
    Extrapolate ``track`` to the plane :math:`z = z_0` perpendicular to the beam.

    Parameters
    ----------
    track : Track
        Input muon track.
    z : float
        Plane position :math:`z_0` (cm).
    field : MagneticField
        Field provider for this event.
    along, opposite : PropagatorLike
        Primary and fallback propagators.

    Returns
    -------
    TrajectoryStateOnSurface
        Possibly invalid; never raises for a failed propagation.
    """
    return propagate_with_fallback(free_state_from_track(track, field), build_plane(z), along, opposite)


def extrapolate_to_cylinder(track: Track,
                            rho: float,
                            field: MagneticField,
                            along: PropagatorLike,
                            opposite: PropagatorLike) -> TrajectoryStateOnSurface:
    r"""
    Extrapolate ``track`` to the beam-axis cylinder of radius :math:`\rho`.

    See :func:`extrapolate_to_plane` for the parameters and the fallback rule.
    """
    return propagate_with_fallback(free_state_from_track(track, field), build_cylinder(rho), along, opposite)
