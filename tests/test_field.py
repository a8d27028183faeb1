import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from muon_extrap.field import FunctionField, InterpolatedField, UniformField, field_from_config


def _linear_map():
    # Bz falls linearly with z, so trilinear interpolation is exact
    x = np.linspace(-100.0, 100.0, 5)
    y = np.linspace(-100.0, 100.0, 5)
    z = np.linspace(-200.0, 200.0, 9)
    X, Y, Z = np.meshgrid(x, y, z, indexing="ij")
    return x, y, z, np.zeros_like(X), np.zeros_like(Y), 4.0 - 0.001 * Z


def test_uniform_field_everywhere():
    field = UniformField((0.0, 0.0, 3.8))
    assert field.is_uniform()
    assert np.allclose(field([1.0, 2.0, 3.0]), [0.0, 0.0, 3.8])
    assert np.allclose(field.in_tesla([1e4, -1e4, 0.0]), [0.0, 0.0, 3.8])


def test_interpolated_field_is_exact_for_linear_maps():
    field = InterpolatedField(*_linear_map())
    assert not field.is_uniform()
    assert np.allclose(field.in_tesla([12.5, -33.0, 50.0]), [0.0, 0.0, 4.0 - 0.05])
    assert np.allclose(field.in_tesla([0.0, 0.0, -125.0]), [0.0, 0.0, 4.0 + 0.125])


def test_interpolated_field_outside_grid():
    field = InterpolatedField(*_linear_map(), outside=0.0)
    assert np.allclose(field.in_tesla([0.0, 0.0, 1000.0]), 0.0)


def test_field_map_from_npz(tmp_path):
    x, y, z, bx, by, bz = _linear_map()
    path = tmp_path / "map.npz"
    np.savez(path, x=x, y=y, z=z, bx=bx, by=by, bz=bz)
    field = field_from_config({"type": "map", "path": str(path)})
    assert np.allclose(field.in_tesla([0.0, 0.0, 100.0]), [0.0, 0.0, 3.9])


def test_field_map_missing_arrays(tmp_path):
    path = tmp_path / "broken.npz"
    np.savez(path, x=np.arange(3.0))
    with pytest.raises(KeyError):
        InterpolatedField.from_npz(path)


def test_field_from_config_uniform_and_unknown():
    field = field_from_config({"type": "uniform", "B": [0.0, 0.0, 2.0]})
    assert np.allclose(field.in_tesla([0.0, 0.0, 0.0]), [0.0, 0.0, 2.0])
    with pytest.raises(ValueError):
        field_from_config({"type": "dipole"})


def test_function_field_wraps_callable():
    field = FunctionField(lambda pos: (0.0, 0.0, 1.0 + pos[2] / 1000.0))
    assert np.allclose(field.in_tesla([0.0, 0.0, 500.0]), [0.0, 0.0, 1.5])
