from __future__ import annotations

import logging

from muon_extrap.geometry import Surface, is_inside_volume
from muon_extrap.state import FreeTrajectoryState, TrajectoryStateOnSurface
from muon_extrap.propagators.propagator import Propagator

__all__ = ["SmartPropagator"]


class SmartPropagator:
    r"""
    Choose between a tracker-volume and a muon-system propagator per target.

    Targets inside the tracker volume (beam-axis cylinder of radius
    ``tracker_radius`` and half length ``tracker_half_length``) go to
    ``tracker``, typically a :class:`RungeKuttaPropagator`; all others go to
    ``muon``, typically a :class:`SteppingHelixPropagator`.

    Parameters
    ----------
    tracker, muon : Propagator
        Delegates; they must share one :class:`PropagationDirection`.
    tracker_radius : float, optional
        Tracker volume radius (cm).
    tracker_half_length : float, optional
        Tracker volume half length (cm).

    Raises
    ------
    ValueError
        If the delegates have different directions.
    """

    def __init__(self,
                 tracker: Propagator,
                 muon: Propagator,
                 tracker_radius: float = 120.0,
                 tracker_half_length: float = 300.0):
        if tracker.direction is not muon.direction:
            raise ValueError(
                f"Delegate directions differ: {tracker.direction.value} vs {muon.direction.value}"
            )
        self.tracker = tracker
        self.muon = muon
        self.tracker_radius = float(tracker_radius)
        self.tracker_half_length = float(tracker_half_length)
        self.log = logging.getLogger(self.__class__.__name__)

    @property
    def direction(self):
        return self.muon.direction

    def select(self, surface: Surface) -> Propagator:
        if is_inside_volume(surface, self.tracker_radius, self.tracker_half_length):
            return self.tracker
        return self.muon

    def propagate(self, fts: FreeTrajectoryState, surface: Surface) -> TrajectoryStateOnSurface:
        prop = self.select(surface)
        self.log.debug("Propagating to %r with %r", surface, prop)
        return prop.propagate(fts, surface)

    def __repr__(self) -> str:
        return f"SmartPropagator(tracker={self.tracker!r}, muon={self.muon!r})"
