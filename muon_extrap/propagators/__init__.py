from __future__ import annotations

from typing import Dict, Mapping

from .propagator import PropagationDirection, Propagator, PropagatorLike
from .helix import AnalyticalPropagator, SteppingHelixPropagator, helix_transport
from .runge_kutta import RungeKuttaPropagator
from .smart import SmartPropagator

__all__ = [
    "PropagationDirection",
    "Propagator",
    "PropagatorLike",
    "AnalyticalPropagator",
    "SteppingHelixPropagator",
    "RungeKuttaPropagator",
    "SmartPropagator",
    "helix_transport",
    "PROPAGATOR_NAMES",
    "build_propagators",
]

# registry name -> direction
PROPAGATOR_NAMES: Dict[str, PropagationDirection] = {
    "SmartPropagatorAlong": PropagationDirection.ALONG,
    "SmartPropagatorAnyOpposite": PropagationDirection.OPPOSITE,
    "SmartPropagatorAny": PropagationDirection.ANY,
}


def build_propagators(cfg: Mapping[str, object] | None = None) -> Dict[str, SmartPropagator]:
    r"""
    Build the named smart propagators from a ``"propagator"`` config block.

    Each name in :data:`PROPAGATOR_NAMES` maps to a :class:`SmartPropagator`
    pairing a :class:`RungeKuttaPropagator` (tracker volume) with a
    :class:`SteppingHelixPropagator` (muon system) in that name's direction.

    Parameters
    ----------
    cfg : mapping, optional
        Recognized keys (all optional): ``max_path_length``, ``tolerance``,
        ``turn_fraction``, ``max_turns``, ``tracker_max_step``, ``muon_max_step``,
        ``tracker_radius``, ``tracker_half_length``.

    Returns
    -------
    dict[str, SmartPropagator]
    """
    cfg = dict(cfg or {})
    common = {
        "max_path_length": float(cfg.get("max_path_length", 5000.0)),
        "tolerance": float(cfg.get("tolerance", 1e-6)),
        "turn_fraction": float(cfg.get("turn_fraction", 0.125)),
        "max_turns": float(cfg.get("max_turns", 20.0)),
    }
    out: Dict[str, SmartPropagator] = {}
    for name, direction in PROPAGATOR_NAMES.items():
        tracker = RungeKuttaPropagator(direction, max_step=float(cfg.get("tracker_max_step", 10.0)), **common)
        muon = SteppingHelixPropagator(direction, max_step=float(cfg.get("muon_max_step", 20.0)), **common)
        out[name] = SmartPropagator(
            tracker,
            muon,
            tracker_radius=float(cfg.get("tracker_radius", 120.0)),
            tracker_half_length=float(cfg.get("tracker_half_length", 300.0)),
        )
    return out
