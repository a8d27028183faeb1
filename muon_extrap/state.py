from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from muon_extrap.field import MagneticField
from muon_extrap.geometry import Surface

__all__ = [
    "C_LIGHT",
    "Track",
    "FreeTrajectoryState",
    "TrajectoryStateOnSurface",
    "InvalidStateError",
]

# GeV / (T * cm): a unit charge with p = 1 GeV/c curls with radius 1 / (C_LIGHT * B) cm
C_LIGHT = 2.99792458e-3


def _vec3(values, name: str) -> np.ndarray:
    arr = np.array(values, dtype=np.float64).reshape(-1)
    if arr.shape != (3,):
        raise ValueError(f"{name} must be a 3-vector, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} must be finite, got {arr.tolist()}")
    arr.setflags(write=False)
    return arr


class InvalidStateError(ValueError):
    """Kinematics were requested from a trajectory state that is not valid."""


@dataclass(frozen=True, slots=True)
class Track:
    r"""
    Reconstructed muon track at its innermost measured point.

    Attributes
    ----------
    inner_position : (3,) ndarray
        Innermost hit position (cm).
    inner_momentum : (3,) ndarray
        Momentum at the innermost hit (GeV/c).
    charge : int
        Electric charge, :math:`\pm 1`.
    key : int, optional
        Index of the muon in its source collection.
    """
    inner_position: np.ndarray
    inner_momentum: np.ndarray
    charge: int
    key: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "inner_position", _vec3(self.inner_position, "inner_position"))
        object.__setattr__(self, "inner_momentum", _vec3(self.inner_momentum, "inner_momentum"))
        object.__setattr__(self, "charge", int(self.charge))


@dataclass(frozen=True, slots=True)
class FreeTrajectoryState:
    r"""
    Free-flight kinematic state of a charged particle in a magnetic field.

    The state is not bound to any surface; it is the starting point of a
    propagation. The field provider is held by reference.

    Attributes
    ----------
    position : (3,) ndarray
        Global position :math:`\mathbf{x}` (cm).
    momentum : (3,) ndarray
        Global momentum :math:`\mathbf{p}` (GeV/c), non-zero.
    charge : int
        :math:`q = \pm 1`.
    field : MagneticField
        Field description used by propagators.

    Raises
    ------
    ValueError
        On non-finite vectors, zero momentum, or a charge other than :math:`\pm 1`.
    """
    position: np.ndarray
    momentum: np.ndarray
    charge: int
    field: MagneticField

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", _vec3(self.position, "position"))
        object.__setattr__(self, "momentum", _vec3(self.momentum, "momentum"))
        if int(self.charge) not in (-1, 1):
            raise ValueError(f"charge must be +1 or -1, got {self.charge}")
        object.__setattr__(self, "charge", int(self.charge))
        if not np.any(self.momentum):
            raise ValueError("momentum must be non-zero")

    @property
    def momentum_magnitude(self) -> float:
        return float(np.linalg.norm(self.momentum))

    @property
    def pt(self) -> float:
        return float(np.hypot(self.momentum[0], self.momentum[1]))

    @property
    def direction(self) -> np.ndarray:
        return self.momentum / self.momentum_magnitude

    @property
    def signed_inverse_momentum(self) -> float:
        """:math:`q/p` in (GeV/c)^-1."""
        return self.charge / self.momentum_magnitude

    def transverse_curvature(self) -> float:
        r"""
        Signed curvature in the plane transverse to the local :math:`B_z`.

        .. math::

            \rho = -\frac{q\,c\,B_z}{p_T}\quad[\mathrm{cm}^{-1}]

        following the convention that a positive particle in :math:`B_z>0`
        bends clockwise (negative :math:`\rho`).
        """
        bz = float(self.field.in_tesla(self.position)[2])
        pt = self.pt
        if pt == 0.0:
            return 0.0
        return -self.charge * C_LIGHT * bz / pt


@dataclass(frozen=True, slots=True)
class TrajectoryStateOnSurface:
    r"""
    Result of propagating a :class:`FreeTrajectoryState` to a surface.

    An invalid state carries only its target surface; its kinematics are
    absent and reading them raises :class:`InvalidStateError`. ``bool(tsos)``
    is the validity flag.

    Attributes
    ----------
    surface : Plane or Cylinder
        Target surface.
    path_length : float
        Signed arc length from the start point (cm); negative when the
        state was reached opposite to the momentum.
    """
    surface: Surface
    _position: Optional[np.ndarray] = None
    _momentum: Optional[np.ndarray] = None
    charge: int = 0
    path_length: float = float("nan")

    @classmethod
    def invalid(cls, surface: Surface) -> "TrajectoryStateOnSurface":
        return cls(surface)

    @classmethod
    def on_surface(cls, surface: Surface, position, momentum, charge: int,
                   path_length: float) -> "TrajectoryStateOnSurface":
        return cls(surface, _vec3(position, "position"), _vec3(momentum, "momentum"),
                   int(charge), float(path_length))

    @property
    def is_valid(self) -> bool:
        return self._position is not None

    def __bool__(self) -> bool:
        return self.is_valid

    @property
    def global_position(self) -> np.ndarray:
        if self._position is None:
            raise InvalidStateError("invalid trajectory state has no position")
        return self._position

    @property
    def global_momentum(self) -> np.ndarray:
        if self._momentum is None:
            raise InvalidStateError("invalid trajectory state has no momentum")
        return self._momentum

    def __repr__(self) -> str:
        if not self.is_valid:
            return f"TrajectoryStateOnSurface(invalid, surface={self.surface!r})"
        return (f"TrajectoryStateOnSurface(position={self._position.tolist()}, "
                f"momentum={self._momentum.tolist()}, s={self.path_length:.3f})")
