from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from muon_extrap.field import MagneticField, field_from_config
from muon_extrap.propagators import SmartPropagator, build_propagators
from muon_extrap.state import Track

logger = logging.getLogger(__name__)

__all__ = [
    "FIELD_RECORD",
    "Event",
    "TrackSource",
    "PropagatorProvider",
    "EventSetup",
]

FIELD_RECORD = "IdealMagneticField"


class Event:
    r"""
    One event: a mapping of collection labels to ordered track sequences.

    Parameters
    ----------
    event_id : int
        Event number.
    collections : mapping[str, sequence of Track]
        Input collections keyed by label.
    """
    __slots__ = ("event_id", "_collections")

    def __init__(self, event_id: int, collections: Mapping[str, Sequence[Track]]):
        self.event_id = int(event_id)
        self._collections: Dict[str, List[Track]] = {k: list(v) for k, v in collections.items()}

    def get_by_label(self, label: str) -> List[Track]:
        """
        Collection stored under ``label``.

        Raises
        ------
        KeyError
            If the event has no such collection.
        """
        try:
            return self._collections[label]
        except KeyError:
            raise KeyError(f"Missing collection '{label}' in event {self.event_id}. "
                           f"Available labels: {', '.join(self._collections) or '(none)'}") from None

    def labels(self) -> List[str]:
        return list(self._collections)

    def __repr__(self) -> str:
        sizes = ", ".join(f"{k}={len(v)}" for k, v in self._collections.items())
        return f"Event({self.event_id}, {sizes})"


class TrackSource:
    """Input track source: the tracks of the collection with a fixed label."""

    def __init__(self, label: str = "slimmedMuons"):
        self.label = str(label)

    def tracks(self, event: Event) -> List[Track]:
        return event.get_by_label(self.label)


class PropagatorProvider:
    """Read-only lookup of propagators by their registered name."""

    def __init__(self, propagators: Mapping[str, SmartPropagator]):
        self._propagators = dict(propagators)

    def get(self, name: str) -> SmartPropagator:
        try:
            return self._propagators[name]
        except KeyError:
            raise KeyError(f"Missing propagator '{name}'. "
                           f"Available: {', '.join(self._propagators) or '(none)'}") from None

    def names(self) -> List[str]:
        return list(self._propagators)


class EventSetup:
    r"""
    Conditions available while processing an event: field records and propagators.

    Both lookups raise :class:`KeyError` on a missing entry; a producer
    treats that as fatal for the event.

    Parameters
    ----------
    fields : mapping[str, MagneticField]
        Field providers keyed by record name, normally just :data:`FIELD_RECORD`.
    propagators : PropagatorProvider
        Named propagators.
    """

    def __init__(self, fields: Mapping[str, MagneticField], propagators: PropagatorProvider):
        self._fields = dict(fields)
        self.propagators = propagators

    @classmethod
    def from_config(cls, cfg: Mapping[str, object]) -> "EventSetup":
        r"""
        Build the setup from the ``"field"`` and ``"propagator"`` config blocks.
        """
        field = field_from_config(dict(cfg.get("field", {})))
        props = build_propagators(dict(cfg.get("propagator", {})))
        logger.info("Event setup: field=%r, propagators=%s", field, ", ".join(props))
        return cls({FIELD_RECORD: field}, PropagatorProvider(props))

    def get_field(self, record: Optional[str] = None) -> MagneticField:
        record = FIELD_RECORD if record is None else record
        try:
            return self._fields[record]
        except KeyError:
            raise KeyError(f"Missing field record '{record}'. "
                           f"Available: {', '.join(self._fields) or '(none)'}") from None

    def get_propagator(self, name: str) -> SmartPropagator:
        return self.propagators.get(name)
