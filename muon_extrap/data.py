from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import numpy as np
import pandas as pd

from muon_extrap.event import Event
from muon_extrap.state import Track

REQUIRED_COLUMNS = ("event", "x", "y", "z", "px", "py", "pz", "charge")

# length unit of the input table -> cm
_LENGTH_SCALE = {"cm": 1.0, "mm": 0.1, "m": 100.0}


def read_track_table(path: str | Path) -> pd.DataFrame:
    """Read a CSV or Parquet table of muon tracks, selected by file suffix."""
    path = Path(path)
    if path.suffix.lower() in (".parquet", ".pq"):
        return pd.read_parquet(path)
    return pd.read_csv(path)


def events_from_frame(
    df: pd.DataFrame,
    *,
    label: str = "slimmedMuons",
    length_unit: str = "cm",
) -> List[Event]:
    r"""
    Group a flat track table into :class:`Event` objects.

    Pipeline
    --------
    1. Check the required columns ``event, x, y, z, px, py, pz, charge``.
    2. Convert positions to cm (``length_unit`` in ``{"cm", "mm", "m"}``).
    3. Group rows by ``event`` (first-seen order), keep row order within an
       event, and build one :class:`Track` per row. The optional ``muon``
       column becomes :attr:`Track.key`.

    Parameters
    ----------
    df : pandas.DataFrame
        One row per muon.
    label : str, optional
        Collection label under which the tracks are stored.
    length_unit : str, optional
        Unit of ``x, y, z`` in ``df``.

    Returns
    -------
    list of Event

    Raises
    ------
    KeyError
        If a required column is missing.
    ValueError
        If ``length_unit`` is unknown, a ``(event, muon)`` pair repeats, or a
        row is not a valid track.
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise KeyError(f"Missing required column(s): {', '.join(missing)}")
    try:
        scale = _LENGTH_SCALE[length_unit]
    except KeyError:
        raise ValueError(f"Unknown length unit '{length_unit}'") from None

    if "muon" in df.columns:
        dup = df.duplicated(subset=["event", "muon"], keep=False)
        if dup.any():
            pairs = sorted(set(zip(df.loc[dup, "event"].tolist(), df.loc[dup, "muon"].tolist())))
            raise ValueError(f"Duplicate (event, muon) keys: {pairs[:5]}")

    pos = df[["x", "y", "z"]].to_numpy(dtype=np.float64) * scale
    mom = df[["px", "py", "pz"]].to_numpy(dtype=np.float64)
    charge = df["charge"].to_numpy(dtype=np.int64)
    keys = df["muon"].to_numpy(dtype=np.int64) if "muon" in df.columns else None
    event_ids = df["event"].to_numpy(dtype=np.int64)

    grouped: dict = {}
    for row in range(len(df)):
        key = None if keys is None else int(keys[row])
        grouped.setdefault(int(event_ids[row]), []).append(
            Track(pos[row], mom[row], int(charge[row]), key)
        )

    events = [Event(ev, {label: tracks}) for ev, tracks in grouped.items()]
    logging.info("Loaded %d muons in %d events", len(df), len(events))
    return events


def load_events(path: str | Path, *, label: str = "slimmedMuons", length_unit: str = "cm") -> List[Event]:
    """Read a track table from ``path`` and group it into events."""
    return events_from_frame(read_track_table(path), label=label, length_unit=length_unit)
