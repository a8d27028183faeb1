from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
from numba import njit

from muon_extrap.field import MagneticField, UniformField
from muon_extrap.geometry import Plane, Surface
from muon_extrap.propagators.propagator import Propagator
from muon_extrap.state import C_LIGHT, FreeTrajectoryState, TrajectoryStateOnSurface

__all__ = ["helix_transport", "AnalyticalPropagator", "SteppingHelixPropagator"]


@njit(cache=True)
def helix_transport(pos: np.ndarray, mom: np.ndarray, b: np.ndarray, charge: float,
                    s: float) -> Tuple[np.ndarray, np.ndarray]:
    r"""
    Exact transport along a helix in a constant field over arc length ``s``.

    With unit tangent :math:`\hat t = \mathbf{p}/p`, field direction
    :math:`\hat b`, and signed curvature :math:`\kappa = q\,c\,|\mathbf{B}|/p`,
    the equation of motion :math:`d\hat t/ds = \kappa\,\hat t\times\hat b`
    is solved by splitting :math:`\hat t = \hat t_\parallel + \hat t_\perp`
    along :math:`\hat b`:

    .. math::

        \begin{aligned}
        \hat t(s) &= \hat t_\parallel + \hat t_\perp\cos\kappa s
                     + (\hat t_\perp\times\hat b)\sin\kappa s,\\
        \mathbf{x}(s) &= \mathbf{x}_0 + \hat t_\parallel\,s
                     + \hat t_\perp\,\frac{\sin\kappa s}{\kappa}
                     + (\hat t_\perp\times\hat b)\,\frac{1-\cos\kappa s}{\kappa}.
        \end{aligned}

    For :math:`|\kappa s| < 10^{-4}` the two ratios are replaced by their
    Taylor series, which also covers :math:`\mathbf{B}=0` (straight line).

    Parameters
    ----------
    pos : ndarray, shape (3,)
        Start position (cm).
    mom : ndarray, shape (3,)
        Start momentum (GeV/c).
    b : ndarray, shape (3,)
        Field (tesla), constant along the step.
    charge : float
        Charge in units of e.
    s : float
        Signed arc length (cm); negative values run against the momentum.

    Returns
    -------
    pos_out, mom_out : ndarray, shape (3,)
    """
    p = np.sqrt(mom[0] * mom[0] + mom[1] * mom[1] + mom[2] * mom[2])
    bmag = np.sqrt(b[0] * b[0] + b[1] * b[1] + b[2] * b[2])
    pos_out = np.empty(3)
    mom_out = np.empty(3)
    if bmag == 0.0:
        for i in range(3):
            pos_out[i] = pos[i] + mom[i] / p * s
            mom_out[i] = mom[i]
        return pos_out, mom_out

    t = mom / p
    bh = b / bmag
    tb = t[0] * bh[0] + t[1] * bh[1] + t[2] * bh[2]
    tpar = tb * bh
    tperp = t - tpar
    # tperp x bh
    c0 = tperp[1] * bh[2] - tperp[2] * bh[1]
    c1 = tperp[2] * bh[0] - tperp[0] * bh[2]
    c2 = tperp[0] * bh[1] - tperp[1] * bh[0]
    cr = np.array([c0, c1, c2])

    kappa = charge * C_LIGHT * bmag / p
    phi = kappa * s
    if abs(phi) < 1e-4:
        phi2 = phi * phi
        sin_k = s * (1.0 - phi2 / 6.0)
        vers_k = 0.5 * s * phi * (1.0 - phi2 / 12.0)
        cos_phi = 1.0 - 0.5 * phi2
        sin_phi = phi * (1.0 - phi2 / 6.0)
    else:
        sin_phi = np.sin(phi)
        cos_phi = np.cos(phi)
        sin_k = sin_phi / kappa
        vers_k = (1.0 - cos_phi) / kappa

    for i in range(3):
        pos_out[i] = pos[i] + tpar[i] * s + tperp[i] * sin_k + cr[i] * vers_k
        mom_out[i] = p * (tpar[i] + tperp[i] * cos_phi + cr[i] * sin_phi)
    return pos_out, mom_out


class AnalyticalPropagator(Propagator):
    r"""
    Helix propagator in the field found at the start point.

    The field is read once per propagation and held constant, which is exact
    for a uniform solenoid and an approximation elsewhere. Steps are only
    used to bracket the surface crossing; every step is an exact helix.

    A plane whose normal is parallel to a uniform field (or any plane in
    zero field) is solved in closed form: the motion along the normal is
    linear in the arc length, :math:`d(s) = d_0 + s\,(\hat t\cdot\hat n)`, so

    .. math::

        s^\ast = -\frac{d_0}{\hat t\cdot\hat n},

    valid when its sign matches the search direction.
    """

    def _search_field(self, fts: FreeTrajectoryState) -> MagneticField:
        if fts.field.is_uniform():
            return fts.field
        return UniformField(fts.field.in_tesla(fts.position))

    def _closed_form(self, field: MagneticField, fts: FreeTrajectoryState, surface: Surface,
                     sign: float) -> Optional[TrajectoryStateOnSurface]:
        if not (field.is_uniform() and isinstance(surface, Plane)):
            return None
        b = np.asarray(field.in_tesla(fts.position), np.float64)
        bmag = float(np.linalg.norm(b))
        if not np.isfinite(bmag):
            return None
        n = surface.normal
        if bmag > 0.0 and np.linalg.norm(np.cross(n, b / bmag)) > 1e-12:
            return None

        tn = float(np.dot(fts.direction, n))
        if tn == 0.0:
            return TrajectoryStateOnSurface.invalid(surface)
        s = -surface.signed_distance(fts.position) / tn
        if s * sign <= 0.0:
            return TrajectoryStateOnSurface.invalid(surface)
        pos, mom = self._transport(field, fts.charge, fts.position, fts.momentum, s)
        if not (np.all(np.isfinite(pos)) and np.all(np.isfinite(mom))):
            return TrajectoryStateOnSurface.invalid(surface)
        return TrajectoryStateOnSurface.on_surface(surface, pos, mom, fts.charge, s)

    def _transport(self, field: MagneticField, charge: int, pos: np.ndarray, mom: np.ndarray,
                   h: float) -> Tuple[np.ndarray, np.ndarray]:
        return helix_transport(np.asarray(pos, np.float64), np.asarray(mom, np.float64),
                               np.asarray(field.in_tesla(pos), np.float64), float(charge), float(h))


class SteppingHelixPropagator(AnalyticalPropagator):
    r"""
    Piecewise helix: the field is re-read at the start of every step.

    In a non-uniform field each step of length :math:`h` follows the helix of
    :math:`\mathbf{B}(\mathbf{x}_k)`; the error per step scales with
    :math:`h\,|\nabla\mathbf{B}|`, so ``max_step`` sets the accuracy.
    """

    def __init__(self, *args, max_step: float = 20.0, **kwargs):
        super().__init__(*args, max_step=max_step, **kwargs)

    def _search_field(self, fts: FreeTrajectoryState) -> MagneticField:
        return fts.field
