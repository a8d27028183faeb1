from __future__ import annotations

import abc
import logging
from enum import Enum
from typing import Protocol, Tuple, runtime_checkable

import numpy as np
from scipy.optimize import brentq

from muon_extrap.field import MagneticField
from muon_extrap.geometry import Plane, Surface
from muon_extrap.state import C_LIGHT, FreeTrajectoryState, TrajectoryStateOnSurface


class PropagationDirection(Enum):
    """Sense of propagation relative to the momentum at the start point."""
    ALONG = "alongMomentum"
    OPPOSITE = "oppositeToMomentum"
    ANY = "anyDirection"


@runtime_checkable
class PropagatorLike(Protocol):
    """Anything that transports a free state to a surface in a fixed direction."""

    direction: PropagationDirection

    def propagate(self, fts: FreeTrajectoryState, surface: Surface) -> TrajectoryStateOnSurface:
        ...


class Propagator(abc.ABC):
    r"""
    Abstract base class for transporting a free state to a surface.

    The shared search walks the trajectory in steps of signed arc length
    :math:`h` and watches the surface's signed distance
    :math:`d(s) = d(\mathbf{x}(s))`. The first step over which :math:`d`
    changes sign brackets the crossing, which is then refined with
    :func:`scipy.optimize.brentq` on

    .. math::

        g(t) = d\big(\mathbf{x}(s_k + t)\big), \qquad t \in [0, h].

    Concrete propagators only provide the transport over one step,
    :meth:`_transport`, and optionally the field used during a search,
    :meth:`_search_field`, and a closed-form crossing, :meth:`_closed_form`.

    **Step control.** With :math:`|\kappa| = c\,|\mathbf{B}|/p` the full
    curvature at the step start, the step length is

    .. math::

        |h| = \min\!\left(h_\text{max},\; f_\text{turn}\,\frac{2\pi}{|\kappa|},\;
                          s_\text{hor} - |s|\right),

    so no step spans more than a fraction :math:`f_\text{turn}` of a turn. A
    pair of crossings inside one step (a grazing trajectory) goes undetected.

    **Horizon.** The search stops at :math:`s_\text{hor}`, the larger of
    ``max_path_length`` and the path needed to reach the surface from its
    geometry (see :meth:`_horizon`), the latter capped at ``max_turns`` helix
    turns.

    Parameters
    ----------
    direction : PropagationDirection, optional
        ``ALONG`` searches :math:`s>0`, ``OPPOSITE`` searches :math:`s<0`,
        ``ANY`` searches both and keeps the crossing with the smaller :math:`|s|`.
    max_step : float, optional
        Largest step (cm).
    max_path_length : float, optional
        Minimum search horizon (cm).
    tolerance : float, optional
        A start point with :math:`|d| \le` ``tolerance`` (cm) is already on the surface.
    turn_fraction : float, optional
        :math:`f_\text{turn}`.
    max_turns : float, optional
        Number of full helix turns after which a curling track is given up.
    """

    def __init__(self,
                 direction: PropagationDirection = PropagationDirection.ALONG,
                 max_step: float = 50.0,
                 max_path_length: float = 5000.0,
                 tolerance: float = 1e-6,
                 turn_fraction: float = 0.125,
                 max_turns: float = 20.0):
        if max_step <= 0 or max_path_length <= 0 or max_turns <= 0:
            raise ValueError("max_step, max_path_length and max_turns must be positive")
        self.direction = PropagationDirection(direction)
        self.max_step = float(max_step)
        self.max_path_length = float(max_path_length)
        self.tolerance = float(tolerance)
        self.turn_fraction = float(turn_fraction)
        self.max_turns = float(max_turns)
        self.log = logging.getLogger(self.__class__.__name__)

    def propagate(self, fts: FreeTrajectoryState, surface: Surface) -> TrajectoryStateOnSurface:
        r"""
        Propagate ``fts`` to ``surface``.

        Parameters
        ----------
        fts : FreeTrajectoryState
            Start state.
        surface : Plane or Cylinder
            Target surface.

        Returns
        -------
        TrajectoryStateOnSurface
            Valid state at the crossing, or an invalid state when no crossing
            exists in the configured direction within the search horizon, when
            the transport yields non-finite numbers, or when the root refinement
            does not converge. Never raises for a failed propagation.
        """
        if abs(surface.signed_distance(fts.position)) <= self.tolerance:
            return TrajectoryStateOnSurface.on_surface(surface, fts.position, fts.momentum, fts.charge, 0.0)

        if self.direction is PropagationDirection.ALONG:
            return self._search(fts, surface, 1.0)
        if self.direction is PropagationDirection.OPPOSITE:
            return self._search(fts, surface, -1.0)

        fwd = self._search(fts, surface, 1.0)
        bwd = self._search(fts, surface, -1.0)
        if fwd and bwd:
            return fwd if abs(fwd.path_length) <= abs(bwd.path_length) else bwd
        return fwd if fwd else bwd

    def _search_field(self, fts: FreeTrajectoryState) -> MagneticField:
        """Field used for the whole search; defaults to the state's own field."""
        return fts.field

    def _closed_form(self, field: MagneticField, fts: FreeTrajectoryState, surface: Surface,
                     sign: float):
        """Exact crossing when the geometry allows one, else ``None`` to fall back to stepping."""
        return None

    @abc.abstractmethod
    def _transport(self, field: MagneticField, charge: int, pos: np.ndarray, mom: np.ndarray,
                   h: float) -> Tuple[np.ndarray, np.ndarray]:
        r"""
        Transport position and momentum over the signed arc length ``h``.

        Returns
        -------
        pos, mom : ndarray, shape (3,)
            State after the step; :math:`|\mathbf{p}|` is conserved.
        """

    def _horizon(self, field: MagneticField, fts: FreeTrajectoryState, surface: Surface) -> float:
        r"""
        Path length within which a crossing must occur, if there is one.

        For a plane with normal :math:`\hat n` the motion along :math:`\hat n`
        is :math:`s\,|\hat t\cdot\hat n|` in a field along the normal, so

        .. math::

            s_\text{geo} = \frac{|d_0|}{|\hat t\cdot\hat n|}.

        For a cylinder of radius :math:`R` around :math:`\hat a`, starting at
        distance :math:`\rho_0` from the axis, the transverse chord at the
        first crossing is at most :math:`R+\rho_0` and the arc over a chord
        within half a turn at most :math:`\pi/2` times the chord, so

        .. math::

            s_\text{geo} = \frac{\pi}{2}\,\frac{R+\rho_0}{|\hat t_\perp|}.

        :math:`s_\text{geo}` gets a 5 % margin plus one step and is capped at
        ``max_turns`` turns of period :math:`2\pi p/(c|\mathbf{B}|)`. The
        result is never below ``max_path_length``; with no motion towards the
        surface at all (:math:`s_\text{geo}` infinite) it is ``max_path_length``.
        """
        t = fts.direction
        if isinstance(surface, Plane):
            tn = abs(float(np.dot(t, surface.normal)))
            reach = abs(surface.signed_distance(fts.position)) / tn if tn > 0.0 else np.inf
        else:
            a = surface.axis
            t_perp = float(np.linalg.norm(t - np.dot(t, a) * a))
            rel = fts.position - surface.position
            rho0 = float(np.linalg.norm(rel - np.dot(rel, a) * a))
            reach = 0.5 * np.pi * (surface.radius + rho0) / t_perp if t_perp > 0.0 else np.inf
        if not np.isfinite(reach):
            return self.max_path_length

        horizon = 1.05 * reach + self.max_step
        bmag = float(np.linalg.norm(field.in_tesla(fts.position)))
        if np.isfinite(bmag) and bmag > 0.0:
            horizon = min(horizon, self.max_turns * 2.0 * np.pi * fts.momentum_magnitude / (C_LIGHT * bmag))
        return max(self.max_path_length, horizon)

    def _step_length(self, field: MagneticField, pos: np.ndarray, mom: np.ndarray, s: float,
                     horizon: float) -> float:
        h = min(self.max_step, horizon - abs(s))
        bmag = float(np.linalg.norm(field.in_tesla(pos)))
        if bmag > 0.0:
            kappa = C_LIGHT * bmag / float(np.linalg.norm(mom))
            h = min(h, self.turn_fraction * 2.0 * np.pi / kappa)
        return h

    def _search(self, fts: FreeTrajectoryState, surface: Surface, sign: float) -> TrajectoryStateOnSurface:
        field = self._search_field(fts)
        exact = self._closed_form(field, fts, surface, sign)
        if exact is not None:
            return exact

        horizon = self._horizon(field, fts, surface)
        q = fts.charge
        pos, mom = fts.position, fts.momentum
        d_prev = surface.signed_distance(pos)
        s = 0.0

        while abs(s) < horizon:
            h = sign * self._step_length(field, pos, mom, s, horizon)
            if h == 0.0:
                break
            pos_n, mom_n = self._transport(field, q, pos, mom, h)
            if not (np.all(np.isfinite(pos_n)) and np.all(np.isfinite(mom_n))):
                self.log.debug("Non-finite state after s=%.3f cm towards %r", s + h, surface)
                return TrajectoryStateOnSurface.invalid(surface)
            d = surface.signed_distance(pos_n)
            if d == 0.0:
                return TrajectoryStateOnSurface.on_surface(surface, pos_n, mom_n, q, s + h)
            if np.sign(d) != np.sign(d_prev):
                return self._refine(field, q, pos, mom, s, h, surface)
            pos, mom, s, d_prev = pos_n, mom_n, s + h, d

        self.log.debug("No crossing of %r within %.1f cm (%s)", surface, horizon,
                       "along" if sign > 0 else "opposite")
        return TrajectoryStateOnSurface.invalid(surface)

    def _refine(self, field: MagneticField, q: int, pos: np.ndarray, mom: np.ndarray,
                s: float, h: float, surface: Surface) -> TrajectoryStateOnSurface:
        def g(t: float) -> float:
            return surface.signed_distance(self._transport(field, q, pos, mom, t)[0])

        lo, hi = (0.0, h) if h > 0 else (h, 0.0)
        try:
            t = brentq(g, lo, hi, xtol=1e-10, maxiter=100)
        except (ValueError, RuntimeError) as e:
            self.log.debug("Root refinement failed on %r: %s", surface, e)
            return TrajectoryStateOnSurface.invalid(surface)
        pos_x, mom_x = self._transport(field, q, pos, mom, t)
        return TrajectoryStateOnSurface.on_surface(surface, pos_x, mom_x, q, s + t)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(direction={self.direction.value}, max_step={self.max_step})"


__all__ = ["PropagationDirection", "PropagatorLike", "Propagator"]
