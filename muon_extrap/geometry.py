from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np


def _readonly(values, shape) -> np.ndarray:
    arr = np.array(values, dtype=np.float64).reshape(shape)
    arr.setflags(write=False)
    return arr


_IDENTITY = _readonly(np.eye(3), (3, 3))


@dataclass(frozen=True, eq=False)
class Plane:
    r"""
    Infinite plane through ``position`` with orientation ``rotation``.

    The rows of ``rotation`` are the local axes :math:`(\hat u, \hat v, \hat w)`
    expressed in the global frame; the third row :math:`\hat w` is the plane
    normal. The signed distance of a point :math:`\mathbf{x}` is

    .. math::

        d(\mathbf{x}) = (\mathbf{x} - \mathbf{p})\cdot\hat w .

    Parameters
    ----------
    position : (3,) array_like
        A point on the plane (cm).
    rotation : (3, 3) array_like, optional
        Orthonormal rotation matrix; identity places the normal along :math:`+z`.
    """
    position: np.ndarray
    rotation: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        rot = _IDENTITY if self.rotation is None else self.rotation
        object.__setattr__(self, "position", _readonly(self.position, (3,)))
        object.__setattr__(self, "rotation", _readonly(rot, (3, 3)))

    @classmethod
    def build(cls, position, rotation=None) -> "Plane":
        """Construct a plane from a position and an optional rotation."""
        return cls(position, rotation)

    @property
    def normal(self) -> np.ndarray:
        return self.rotation[2]

    def signed_distance(self, point: np.ndarray) -> float:
        return float(np.dot(np.asarray(point, dtype=np.float64) - self.position, self.rotation[2]))

    def to_local(self, point: np.ndarray) -> np.ndarray:
        r"""
        Express a global point in the plane's local frame, :math:`R(\mathbf{x}-\mathbf{p})`.
        """
        return self.rotation @ (np.asarray(point, dtype=np.float64) - self.position)

    def __repr__(self) -> str:
        return f"Plane(position={self.position.tolist()}, normal={self.normal.tolist()})"


@dataclass(frozen=True, eq=False)
class Cylinder:
    r"""
    Infinite cylinder of radius ``radius`` around the axis through ``position``.

    The third row of ``rotation`` is the cylinder axis :math:`\hat a`. With
    :math:`\mathbf{d} = \mathbf{x} - \mathbf{p}` and
    :math:`\mathbf{d}_\perp = \mathbf{d} - (\mathbf{d}\cdot\hat a)\,\hat a`, the
    signed distance is

    .. math::

        d(\mathbf{x}) = \lVert \mathbf{d}_\perp \rVert - R ,

    negative inside the cylinder and positive outside.
    """
    position: np.ndarray
    rotation: Optional[np.ndarray]
    radius: float

    def __post_init__(self) -> None:
        rot = _IDENTITY if self.rotation is None else self.rotation
        object.__setattr__(self, "position", _readonly(self.position, (3,)))
        object.__setattr__(self, "rotation", _readonly(rot, (3, 3)))
        object.__setattr__(self, "radius", float(self.radius))

    @classmethod
    def build(cls, position, rotation, radius: float) -> "Cylinder":
        """Construct a cylinder from its axis position, orientation and radius."""
        return cls(position, rotation, radius)

    @property
    def axis(self) -> np.ndarray:
        return self.rotation[2]

    def signed_distance(self, point: np.ndarray) -> float:
        d = np.asarray(point, dtype=np.float64) - self.position
        a = self.rotation[2]
        d_perp = d - np.dot(d, a) * a
        return float(np.linalg.norm(d_perp) - self.radius)

    def __repr__(self) -> str:
        return (f"Cylinder(position={self.position.tolist()}, axis={self.axis.tolist()}, "
                f"radius={self.radius})")


Surface = Union[Plane, Cylinder]


def build_plane(z: float) -> Plane:
    r"""
    Plane perpendicular to the beam axis at longitudinal offset ``z``.

    Parameters
    ----------
    z : float
        Longitudinal position of the plane (cm).

    Returns
    -------
    Plane
        Plane through :math:`(0, 0, z)` with identity rotation, i.e. normal
        :math:`\hat z`.
    """
    return Plane.build((0.0, 0.0, float(z)))


def build_cylinder(rho: float) -> Cylinder:
    r"""
    Cylinder of radius ``rho`` coaxial with the beam axis.

    Parameters
    ----------
    rho : float
        Cylinder radius (cm).

    Returns
    -------
    Cylinder
        Cylinder centred at the origin with its axis along :math:`\hat z`.
    """
    return Cylinder.build((0.0, 0.0, 0.0), None, float(rho))


def is_inside_volume(surface: Surface, radius: float, half_length: float) -> bool:
    r"""
    Whether ``surface`` lies inside a beam-axis cylinder of given radius and half length.

    A plane counts as inside when its point on the beam axis satisfies
    :math:`|z| \le L` and its normal is the beam axis; a cylinder counts as
    inside when it is coaxial with the beam and :math:`R \le R_\text{vol}`.
    """
    beam = np.array([0.0, 0.0, 1.0])
    if isinstance(surface, Plane):
        return bool(abs(abs(np.dot(surface.normal, beam)) - 1.0) < 1e-9
                    and abs(surface.position[2]) <= half_length)
    coaxial = (abs(abs(np.dot(surface.axis, beam)) - 1.0) < 1e-9
               and np.hypot(surface.position[0], surface.position[1]) < 1e-9)
    return bool(coaxial and surface.radius <= radius)
