__all__ = [
    "Plane", "Cylinder", "build_plane", "build_cylinder",
    "MagneticField", "UniformField", "InterpolatedField", "FunctionField",
    "Track", "FreeTrajectoryState", "TrajectoryStateOnSurface", "InvalidStateError",
    "PropagationDirection", "Propagator", "PropagatorLike", "AnalyticalPropagator",
    "SteppingHelixPropagator", "RungeKuttaPropagator", "SmartPropagator",
    "build_propagators",
    "free_state_from_track", "propagate_with_fallback",
    "extrapolate_to_plane", "extrapolate_to_cylinder",
    "Event", "TrackSource", "EventSetup", "PropagatorProvider",
    "SENTINEL", "ExtrapolationTarget", "ExtrapolationResult", "DEFAULT_TARGETS",
    "MuonPropagationProducer", "results_to_frame",
    "load_events",
]

# Geometry
from .geometry import Plane, Cylinder, build_plane, build_cylinder

# Magnetic field providers
from .field import MagneticField, UniformField, InterpolatedField, FunctionField

# Trajectory states
from .state import Track, FreeTrajectoryState, TrajectoryStateOnSurface, InvalidStateError

# Propagators
from .propagators import (
    PropagationDirection,
    Propagator,
    PropagatorLike,
    AnalyticalPropagator,
    SteppingHelixPropagator,
    RungeKuttaPropagator,
    SmartPropagator,
    build_propagators,
)

# Extrapolation engine
from .extrapolation import (
    free_state_from_track,
    propagate_with_fallback,
    extrapolate_to_plane,
    extrapolate_to_cylinder,
)

# Event interfaces & per-event driver
from .event import Event, TrackSource, EventSetup, PropagatorProvider
from .producer import (
    SENTINEL,
    ExtrapolationTarget,
    ExtrapolationResult,
    DEFAULT_TARGETS,
    MuonPropagationProducer,
    results_to_frame,
)

# Data
from .data import load_events
