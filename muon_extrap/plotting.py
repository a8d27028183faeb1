import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from muon_extrap.producer import ExtrapolationTarget


def _show_and_close(fig, *, do_show: bool = True, out_path: Optional[str] = None) -> None:
    r"""
    Optionally save and show a Matplotlib figure, then always close it.

    Parameters
    ----------
    fig : matplotlib.figure.Figure
        Figure to finalize.
    do_show : bool, optional
        Call ``plt.show()`` before closing (a no-op in headless mode).
    out_path : str, optional
        If given, save the figure there first.
    """
    fig.tight_layout()
    if out_path:
        fig.savefig(out_path, dpi=120)
        logging.info("Saved figure to %s", out_path)
    if do_show:
        plt.show()
    plt.close(fig)


def plot_extrapolations(
    frame: pd.DataFrame,
    targets: Sequence[ExtrapolationTarget],
    *,
    show: bool = True,
    out_path: Optional[str] = None,
):
    r"""
    Scatter the extrapolated positions, one panel per target.

    Plane targets are drawn in the transverse view :math:`(x, y)` recovered
    from :math:`(r, \phi)`; cylinder targets in :math:`(z, \phi)`. Rows whose
    ``valid_<target>`` flag is false are skipped.

    Parameters
    ----------
    frame : pandas.DataFrame
        Output of :func:`muon_extrap.producer.results_to_frame`.
    targets : sequence of ExtrapolationTarget
        Targets to draw.
    show : bool, optional
        Whether to display the figure.
    out_path : str, optional
        Save the figure to this path.

    Returns
    -------
    matplotlib.figure.Figure
    """
    n = max(1, len(targets))
    fig, axes = plt.subplots(1, n, figsize=(4.5 * n, 4.5), squeeze=False)
    for ax, target in zip(axes[0], targets):
        name = target.name
        sel = frame[frame[f"valid_{name}"].astype(bool)]
        r = sel[f"r_{name}"].to_numpy(dtype=float)
        phi = sel[f"phi_{name}"].to_numpy(dtype=float)
        z = sel[f"z_{name}"].to_numpy(dtype=float)
        if target.kind == "cylinder":
            ax.scatter(z, phi, s=6)
            ax.set_xlabel("z [cm]")
            ax.set_ylabel(r"$\phi$ [rad]")
        else:
            ax.scatter(r * np.cos(phi), r * np.sin(phi), s=6)
            ax.set_xlabel("x [cm]")
            ax.set_ylabel("y [cm]")
            ax.set_aspect("equal", adjustable="datalim")
        ax.set_title(f"{name} ({len(sel)} valid)")
    _show_and_close(fig, do_show=show, out_path=out_path)
    return fig
