from __future__ import annotations

import logging
import math
from dataclasses import dataclass, asdict
from typing import Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from muon_extrap.event import FIELD_RECORD, Event, EventSetup, TrackSource
from muon_extrap.extrapolation import extrapolate_to_cylinder, extrapolate_to_plane
from muon_extrap.field import MagneticField
from muon_extrap.geometry import Surface, build_cylinder, build_plane
from muon_extrap.propagators import PropagatorLike
from muon_extrap.state import Track, TrajectoryStateOnSurface

logger = logging.getLogger(__name__)

__all__ = [
    "SENTINEL",
    "ExtrapolationTarget",
    "DEFAULT_TARGETS",
    "ExtrapolationResult",
    "extrapolate_to_target",
    "derive_quantities",
    "MuonPropagationProducer",
    "results_to_frame",
]

# marks a quantity with no valid extrapolation behind it
SENTINEL = -999999.0


@dataclass(frozen=True)
class ExtrapolationTarget:
    r"""
    Named extrapolation target.

    Attributes
    ----------
    name : str
        Column suffix in the output (e.g. ``"me2_p"``).
    kind : {"plane", "cylinder"}
        Surface type.
    value : float
        :math:`z` of the plane or :math:`\rho` of the cylinder (cm).
    """
    name: str
    kind: str
    value: float

    def __post_init__(self) -> None:
        if self.kind not in ("plane", "cylinder"):
            raise ValueError(f"Unknown target kind '{self.kind}' for target '{self.name}'")
        object.__setattr__(self, "value", float(self.value))

    def surface(self) -> Surface:
        return build_plane(self.value) if self.kind == "plane" else build_cylinder(self.value)


# second endcap muon station (both sides) and second barrel station
DEFAULT_TARGETS = (
    ExtrapolationTarget("me2_p", "plane", 790.0),
    ExtrapolationTarget("me2_n", "plane", -790.0),
    ExtrapolationTarget("mb2", "cylinder", 500.0),
)


@dataclass(frozen=True)
class ExtrapolationResult:
    r"""
    Derived quantities of one (track, target) extrapolation.

    For a valid state at :math:`(x, y, z)`:

    .. math::

        r = \sqrt{x^2 + y^2}, \qquad \cos\phi = x / r, \qquad
        \phi = \begin{cases}
            \arccos(\cos\phi) & y \ge 0\\
            2\pi - \arccos(\cos\phi) & y < 0
        \end{cases}

    so :math:`\phi \in [0, 2\pi)`. At :math:`r = 0` the azimuth is undefined
    and reported as :math:`\cos\phi = 1`, :math:`\phi = 0`. For an invalid
    state every float field holds :data:`SENTINEL`.
    """
    event_id: int
    track_index: int
    target: str
    valid: bool
    x: float
    y: float
    z: float
    r: float
    cosphi: float
    phi: float


def extrapolate_to_target(track: Track,
                          target: ExtrapolationTarget,
                          field: MagneticField,
                          along: PropagatorLike,
                          opposite: PropagatorLike) -> TrajectoryStateOnSurface:
    """Dispatch to the plane or cylinder extrapolation for ``target``."""
    if target.kind == "plane":
        return extrapolate_to_plane(track, target.value, field, along, opposite)
    return extrapolate_to_cylinder(track, target.value, field, along, opposite)


def derive_quantities(tsos: TrajectoryStateOnSurface,
                      target: str,
                      track_index: int,
                      event_id: int = 0,
                      sentinel: float = SENTINEL) -> ExtrapolationResult:
    """Radius and azimuth of a trajectory state, or sentinels when it is invalid."""
    if not tsos.is_valid:
        return ExtrapolationResult(event_id, track_index, target, False,
                                   sentinel, sentinel, sentinel, sentinel, sentinel, sentinel)
    x, y, z = (float(v) for v in tsos.global_position)
    r = math.sqrt(x * x + y * y)
    if r == 0.0:
        cosphi, phi = 1.0, 0.0
    else:
        cosphi = x / r
        acos = math.acos(min(1.0, max(-1.0, cosphi)))
        phi = acos if y >= 0 else 2.0 * math.pi - acos
    return ExtrapolationResult(event_id, track_index, target, True, x, y, z, r, cosphi, phi)


class MuonPropagationProducer:
    r"""
    Per-event driver: extrapolate every input muon to every target.

    The field and both propagators are looked up from the :class:`EventSetup`
    once per call to :meth:`produce` and passed down explicitly; the producer
    keeps no per-event state between calls.

    Parameters
    ----------
    track_source : TrackSource, optional
        Input collection (default label ``"slimmedMuons"``).
    along_name, opposite_name : str, optional
        Registered names of the primary and fallback propagators.
    targets : sequence of ExtrapolationTarget, optional
        Defaults to :data:`DEFAULT_TARGETS`.
    field_record : str, optional
        Field record name.
    sentinel : float, optional
        Value written for quantities without a valid extrapolation.
    """

    def __init__(self,
                 track_source: Optional[TrackSource] = None,
                 along_name: str = "SmartPropagatorAlong",
                 opposite_name: str = "SmartPropagatorAnyOpposite",
                 targets: Sequence[ExtrapolationTarget] = DEFAULT_TARGETS,
                 field_record: str = FIELD_RECORD,
                 sentinel: float = SENTINEL):
        self.track_source = track_source or TrackSource()
        self.along_name = str(along_name)
        self.opposite_name = str(opposite_name)
        self.targets = tuple(targets)
        self.field_record = str(field_record)
        self.sentinel = float(sentinel)
        names = [t.name for t in self.targets]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate target names: {names}")

    @classmethod
    def from_config(cls, cfg: Mapping[str, object]) -> "MuonPropagationProducer":
        r"""
        Build from the ``"producer"`` config block.

        Recognized keys: ``track_label``, ``propagator_along``,
        ``propagator_opposite``, ``field_record``, ``sentinel`` and
        ``targets`` (a list of ``{"name", "kind", "value"}`` objects).
        """
        block = dict(cfg.get("producer", {}))
        targets = block.get("targets")
        return cls(
            track_source=TrackSource(block.get("track_label", "slimmedMuons")),
            along_name=block.get("propagator_along", "SmartPropagatorAlong"),
            opposite_name=block.get("propagator_opposite", "SmartPropagatorAnyOpposite"),
            targets=DEFAULT_TARGETS if targets is None else [ExtrapolationTarget(**t) for t in targets],
            field_record=block.get("field_record", FIELD_RECORD),
            sentinel=float(block.get("sentinel", SENTINEL)),
        )

    def produce(self, event: Event, setup: EventSetup) -> List[ExtrapolationResult]:
        r"""
        Extrapolate all muons of ``event``.

        Returns
        -------
        list of ExtrapolationResult
            ``len(tracks) * len(targets)`` entries ordered by track, then target.

        Raises
        ------
        KeyError
            If the input collection, the field record or a propagator is missing.
        """
        tracks = self.track_source.tracks(event)
        field = setup.get_field(self.field_record)
        along = setup.get_propagator(self.along_name)
        opposite = setup.get_propagator(self.opposite_name)

        results: List[ExtrapolationResult] = []
        for i, track in enumerate(tracks):
            index = i if track.key is None else int(track.key)
            for target in self.targets:
                tsos = extrapolate_to_target(track, target, field, along, opposite)
                results.append(derive_quantities(tsos, target.name, index, event.event_id, self.sentinel))

        n_valid = sum(r.valid for r in results)
        logger.debug("Event %d: %d muons, %d/%d valid extrapolations",
                     event.event_id, len(tracks), n_valid, len(results))
        if tracks and n_valid == 0:
            logger.warning("Event %d: no valid extrapolation for any of %d muons", event.event_id, len(tracks))
        return results


def results_to_frame(results: Iterable[ExtrapolationResult],
                     targets: Optional[Sequence[str]] = None) -> pd.DataFrame:
    r"""
    One row per muon with per-target columns.

    Columns are ``event``, ``muon`` and, for each target name ``t``:
    ``valid_t``, ``r_t``, ``phi_t``, ``cosphi_t``, ``z_t``.

    Parameters
    ----------
    results : iterable of ExtrapolationResult
    targets : sequence of str, optional
        Target column order; defaults to first-seen order.

    Raises
    ------
    ValueError
        If a ``(event, muon, target)`` combination occurs more than once.
    """
    rows = [asdict(r) for r in results]
    if not rows:
        return pd.DataFrame(columns=["event", "muon"])
    df = pd.DataFrame(rows)
    dup = df.duplicated(subset=["event_id", "track_index", "target"])
    if dup.any():
        first = df.loc[dup].iloc[0]
        raise ValueError(f"Muon {first['track_index']} of event {first['event_id']} appears more than once "
                         f"for target '{first['target']}'; track keys must be unique per event")
    order = list(targets) if targets is not None else list(dict.fromkeys(df["target"]))
    wide = df.pivot(index=["event_id", "track_index"], columns="target",
                    values=["valid", "r", "phi", "cosphi", "z"])
    out = pd.DataFrame(index=wide.index)
    for name in order:
        for q in ("valid", "r", "phi", "cosphi", "z"):
            out[f"{q}_{name}"] = wide[(q, name)]
    out = out.reset_index().rename(columns={"event_id": "event", "track_index": "muon"})
    valid_cols = [f"valid_{name}" for name in order]
    out[valid_cols] = out[valid_cols].astype(bool)
    return out
