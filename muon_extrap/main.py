#!/usr/bin/env python3
r"""
Muon extrapolation runner (headless-safe, JSON-configurable).

This script reads a table of reconstructed muon tracks, groups it into events,
builds the event setup (magnetic field and named propagators) from a JSON
configuration, runs :class:`muon_extrap.producer.MuonPropagationProducer` on
every event, and writes one row per muon with the extrapolated radius,
azimuth and :math:`z` at each target surface.

Geometry conventions
--------------------
Positions are in cm, momenta in GeV/c and the field in tesla. The default
targets are the planes :math:`z=\pm 790` (second endcap station) and the
cylinder :math:`\rho = 500` (second barrel station). For a valid extrapolation
at :math:`(x,y,z)` the runner reports

.. math::

    r = \sqrt{x^2+y^2}, \qquad
    \phi = \operatorname{atan2}(y, x) \bmod 2\pi ,

and the sentinel ``-999999`` otherwise.

CLI overview
------------
See :func:`build_parser`. Typical usage:

.. code-block:: bash

   muon-extrap -f muons.csv -o extrapolated.csv
   muon-extrap -f muons.parquet -c config.json --plot -v
"""

from __future__ import annotations

import argparse
import copy
import json
import logging
import os
import time
from pathlib import Path
from typing import List, MutableMapping, Optional, Sequence

import orjson
import pandas as pd

import muon_extrap.data as mx_data
from muon_extrap.event import EventSetup
from muon_extrap.producer import MuonPropagationProducer, results_to_frame

DEFAULT_CONFIG: dict = {
    "field": {"type": "uniform", "B": [0.0, 0.0, 3.8]},
    "propagator": {
        "max_path_length": 5000.0,
        "tolerance": 1e-6,
        "turn_fraction": 0.125,
        "max_turns": 20.0,
        "tracker_max_step": 10.0,
        "muon_max_step": 20.0,
        "tracker_radius": 120.0,
        "tracker_half_length": 300.0,
    },
    "producer": {
        "track_label": "slimmedMuons",
        "propagator_along": "SmartPropagatorAlong",
        "propagator_opposite": "SmartPropagatorAnyOpposite",
        "field_record": "IdealMagneticField",
        "sentinel": -999999.0,
        "targets": [
            {"name": "me2_p", "kind": "plane", "value": 790.0},
            {"name": "me2_n", "kind": "plane", "value": -790.0},
            {"name": "mb2", "kind": "cylinder", "value": 500.0},
        ],
    },
}


def build_parser() -> argparse.ArgumentParser:
    r"""
    Construct the command-line interface.

    Returns
    -------
    argparse.ArgumentParser
        Parser with options for input/output tables, configuration, units,
        plotting and logging.
    """
    p = argparse.ArgumentParser(description="Extrapolate muon tracks to muon-station surfaces.")
    p.add_argument("-f", "--file", type=str, required=True,
                   help="Input track table (.csv or .parquet) with columns "
                        "event, x, y, z, px, py, pz, charge [, muon].")
    p.add_argument("-o", "--output", type=str, default=None,
                   help="Write the per-muon output table here (.csv or .parquet).")
    p.add_argument("-c", "--config", type=str, default=None,
                   help="Path to JSON config overriding the built-in defaults.")
    p.add_argument("--length-unit", type=str, choices=("cm", "mm", "m"), default="cm",
                   help="Unit of x, y, z in the input table (default: cm).")
    p.add_argument("-n", "--n-events", type=int, default=None,
                   help="Only process the first N events (default: all).")
    p.add_argument("--plot", action="store_true", default=False,
                   help="Show extrapolated positions per target (default: False).")
    p.add_argument("--plot-out", type=str, default=None,
                   help="Save the position plot to this path (implies plotting, headless).")
    p.add_argument("-v", "--verbose", action="store_true",
                   help="Enable verbose logging.")
    return p


def setup_logging(verbose: bool = False) -> None:
    r"""
    Configure process-wide logging.

    Parameters
    ----------
    verbose : bool, optional
        If ``True``, set level to ``DEBUG``; otherwise ``INFO``.

    Notes
    -----
    Format is ``'%(asctime)s | %(levelname)-8s | %(message)s'`` with ``%H:%M:%S`` timestamps.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )


def apply_plotting_guard(interactive: bool) -> None:
    r"""
    Force the non-interactive ``Agg`` backend unless figures are to be shown.

    Must be called **before** :mod:`muon_extrap.plotting` is imported. In
    headless mode interactive plotting is switched off and ``plt.show()``
    becomes a no-op.
    """
    if interactive:
        return
    os.environ.setdefault("MPLBACKEND", "Agg")
    import matplotlib
    matplotlib.use("Agg", force=True)
    import matplotlib.pyplot as _plt  # noqa: WPS433
    _plt.ioff()
    _plt.show = lambda *a, **k: None  # type: ignore[assignment]


def load_config(config_path: Optional[Path]) -> MutableMapping[str, dict]:
    r"""
    Load a JSON configuration and merge it over :data:`DEFAULT_CONFIG`.

    Parameters
    ----------
    config_path : pathlib.Path or None
        Path to the JSON file; ``None`` returns a copy of the defaults.

    Returns
    -------
    dict
        Merged configuration.

    Raises
    ------
    ValueError
        If the file cannot be read or parsed.
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)
    try:
        user = orjson.loads(config_path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as e:
        raise ValueError(f"Failed to parse {config_path}: {e}") from e
    if not isinstance(user, dict):
        raise ValueError(f"Failed to parse {config_path}: top level must be an object")
    return _deep_update(DEFAULT_CONFIG, user)


def _deep_update(d: dict, u: dict) -> dict:
    r"""
    Recursively merge dictionaries (without side effects).

    Nested dicts are merged; scalars and lists from ``u`` replace those in ``d``.
    """
    out = copy.deepcopy(d)
    for k, v in u.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_update(out[k], v)
        else:
            out[k] = v
    return out


def write_table(df: pd.DataFrame, path: Path) -> None:
    """Write ``df`` as Parquet or CSV depending on the suffix of ``path``."""
    if path.suffix.lower() in (".parquet", ".pq"):
        df.to_parquet(path, index=False)
    else:
        df.to_csv(path, index=False)


def run(config: MutableMapping[str, dict], events: Sequence) -> pd.DataFrame:
    r"""
    Run the producer over ``events`` and collect the per-muon table.

    The event setup is built once from ``config``; the producer looks up the
    field and propagators from it for every event.
    """
    setup = EventSetup.from_config(config)
    producer = MuonPropagationProducer.from_config(config)

    results: List = []
    t0 = time.time()
    for ev in events:
        results.extend(producer.produce(ev, setup))
    dt = time.time() - t0

    frame = results_to_frame(results, [t.name for t in producer.targets])
    n_muons = len(frame)
    logging.info("Processed %d events, %d muons in %.3fs", len(events), n_muons, dt)
    for t in producer.targets:
        col = f"valid_{t.name}"
        n_ok = int(frame[col].sum()) if col in frame.columns else 0
        logging.info("  %-8s %-8s %9.1f cm: %d/%d valid", t.name, t.kind, t.value, n_ok, n_muons)
    return frame


def main(argv: Optional[Sequence[str]] = None) -> None:
    r"""
    End-to-end pipeline: **load → setup → extrapolate → write/plot**.

    Pipeline
    --------
    1. Parse CLI (:func:`build_parser`) and set up logging (:func:`setup_logging`).
    2. Enforce the headless plotting guard (:func:`apply_plotting_guard`).
    3. Load config (:func:`load_config`) and the input events
       (:func:`muon_extrap.data.load_events`).
    4. Run the producer on every event (:func:`run`).
    5. Write the output table and optionally plot.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    apply_plotting_guard(args.plot and not args.plot_out)

    cfg_path = Path(args.config) if args.config else None
    if cfg_path is not None:
        logging.info("Reading config from %s", cfg_path)
    config = load_config(cfg_path)
    logging.debug("Effective config: %s", json.dumps(config))

    label = config["producer"].get("track_label", "slimmedMuons")
    events = mx_data.load_events(args.file, label=label, length_unit=args.length_unit)
    if not events:
        raise FileNotFoundError(f"No events found in {args.file}")
    if args.n_events is not None:
        events = events[: max(0, int(args.n_events))]

    frame = run(config, events)

    if args.output:
        write_table(frame, Path(args.output))
        logging.info("Wrote %d rows to %s", len(frame), args.output)

    if args.plot or args.plot_out:
        import muon_extrap.plotting as mx_plot  # noqa: WPS433
        targets = MuonPropagationProducer.from_config(config).targets
        mx_plot.plot_extrapolations(frame, targets, show=args.plot, out_path=args.plot_out)


if __name__ == "__main__":
    main()
