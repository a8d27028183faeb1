from __future__ import annotations

import abc
import logging
from pathlib import Path
from typing import Callable, Mapping, Sequence

import numpy as np
from scipy.interpolate import RegularGridInterpolator

logger = logging.getLogger(__name__)

__all__ = [
    "MagneticField",
    "UniformField",
    "InterpolatedField",
    "FunctionField",
    "field_from_config",
]


class MagneticField(abc.ABC):
    r"""
    Magnetic field provider: a map :math:`\mathbf{B}(\mathbf{x})` in tesla.

    Positions are global Cartesian coordinates in cm. Implementations must be
    side-effect free so that one instance can be shared by every propagation
    of an event.
    """

    @abc.abstractmethod
    def in_tesla(self, position: np.ndarray) -> np.ndarray:
        r"""
        Field vector at ``position``.

        Parameters
        ----------
        position : (3,) array_like
            Global position (cm).

        Returns
        -------
        ndarray, shape (3,)
            :math:`(B_x, B_y, B_z)` in tesla.
        """

    def __call__(self, position: np.ndarray) -> np.ndarray:
        return self.in_tesla(position)

    def is_uniform(self) -> bool:
        """Whether the field is the same everywhere (lets propagators skip re-evaluation)."""
        return False


class UniformField(MagneticField):
    """Constant field, e.g. ``UniformField((0, 0, 3.8))`` for a solenoid core."""

    __slots__ = ("_b",)

    def __init__(self, b: Sequence[float] = (0.0, 0.0, 3.8)):
        b = np.array(b, dtype=np.float64).reshape(3)
        b.setflags(write=False)
        self._b = b

    def in_tesla(self, position: np.ndarray) -> np.ndarray:
        return self._b

    def is_uniform(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"UniformField({self._b.tolist()})"


class InterpolatedField(MagneticField):
    r"""
    Field map sampled on a regular Cartesian grid, trilinearly interpolated.

    Parameters
    ----------
    x, y, z : (nx,), (ny,), (nz,) array_like
        Strictly increasing grid coordinates (cm).
    bx, by, bz : (nx, ny, nz) array_like
        Field components (tesla) at the grid nodes.
    outside : float, optional
        Value returned for every component outside the grid (default ``0.0``).

    Notes
    -----
    Interpolation is delegated to :class:`scipy.interpolate.RegularGridInterpolator`
    with one interpolator over a stacked ``(nx, ny, nz, 3)`` value array.
    """

    def __init__(self, x, y, z, bx, by, bz, *, outside: float = 0.0):
        values = np.stack([np.asarray(bx, float), np.asarray(by, float), np.asarray(bz, float)], axis=-1)
        self._interp = RegularGridInterpolator(
            (np.asarray(x, float), np.asarray(y, float), np.asarray(z, float)),
            values,
            method="linear",
            bounds_error=False,
            fill_value=float(outside),
        )

    @classmethod
    def from_npz(cls, path: str | Path, **kwargs) -> "InterpolatedField":
        """
        Load a map stored with keys ``x, y, z, bx, by, bz`` by :func:`numpy.savez`.
        """
        with np.load(path) as data:
            missing = [k for k in ("x", "y", "z", "bx", "by", "bz") if k not in data]
            if missing:
                raise KeyError(f"Field map {path} is missing arrays: {', '.join(missing)}")
            logger.info("Loaded field map %s with grid %s", path, data["bx"].shape)
            return cls(data["x"], data["y"], data["z"], data["bx"], data["by"], data["bz"], **kwargs)

    def in_tesla(self, position: np.ndarray) -> np.ndarray:
        return self._interp(np.asarray(position, dtype=np.float64).reshape(1, 3))[0]


class FunctionField(MagneticField):
    """Wrap a plain callable ``position -> (Bx, By, Bz)``."""

    def __init__(self, fn: Callable[[np.ndarray], Sequence[float]]):
        self._fn = fn

    def in_tesla(self, position: np.ndarray) -> np.ndarray:
        return np.asarray(self._fn(np.asarray(position, dtype=np.float64)), dtype=np.float64).reshape(3)


def field_from_config(cfg: Mapping[str, object]) -> MagneticField:
    r"""
    Build a field provider from a configuration block.

    Recognized blocks::

        {"type": "uniform", "B": [0.0, 0.0, 3.8]}
        {"type": "map", "path": "field.npz", "outside": 0.0}

    Raises
    ------
    ValueError
        If ``type`` is not one of the recognized kinds.
    """
    kind = str(cfg.get("type", "uniform")).lower()
    if kind == "uniform":
        return UniformField(cfg.get("B", (0.0, 0.0, 3.8)))
    if kind == "map":
        return InterpolatedField.from_npz(str(cfg["path"]), outside=float(cfg.get("outside", 0.0)))
    raise ValueError(f"Unknown field type '{kind}'")
