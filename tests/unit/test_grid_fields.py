from __future__ import annotations

import numpy as np
import pytest

from dikethermal.errors import ConfigurationError
from dikethermal.fields import FieldStore
from dikethermal.grid import Grid


def test_from_extent_coordinates() -> None:
    grid = Grid.from_extent(30.0e3, 20.0e3, 7, 5)
    assert grid.shape == (7, 5)
    assert grid.dx == pytest.approx(5.0e3)
    assert grid.dz == pytest.approx(5.0e3)
    assert grid.x[0] == 0.0 and grid.x[-1] == pytest.approx(30.0e3)
    assert grid.z[0] == pytest.approx(-20.0e3) and grid.z[-1] == 0.0
    assert grid.center == pytest.approx((15.0e3, -10.0e3))
    assert grid.contains(0.0, 0.0)
    assert not grid.contains(-1.0, -5.0)


@pytest.mark.parametrize("nx,nz", [(2, 10), (10, 1)])
def test_too_few_points_rejected(nx: int, nz: int) -> None:
    with pytest.raises(ConfigurationError):
        Grid.from_extent(1.0, 1.0, nx, nz)


def test_grid_coordinates_are_read_only() -> None:
    grid = Grid.from_extent(1.0, 1.0, 4, 4)
    with pytest.raises(ValueError):
        grid.x[0] = 5.0


def test_nearest_index_clamps_outside_points() -> None:
    grid = Grid.from_extent(100.0, 100.0, 11, 11)
    ix, iz = grid.nearest_index(np.array([-50.0, 14.0, 500.0]), np.array([-96.0, -51.0, 10.0]))
    assert ix.tolist() == [0, 1, 10]
    assert iz.tolist() == [0, 5, 10]


def test_allocate_shapes_and_swap_exchanges_buffers() -> None:
    grid = Grid.from_extent(1.0, 1.0, 6, 4)
    fields = FieldStore.allocate(grid)
    assert fields.T.shape == (6, 4)
    assert fields.Kx.shape == fields.qx.shape == (5, 4)
    assert fields.Kz.shape == fields.qz.shape == (6, 3)
    T, T_new = fields.T, fields.T_new
    fields.swap()
    assert fields.T is T_new
    assert fields.T_new is T


def test_geotherm_profile() -> None:
    grid = Grid.from_extent(30.0e3, 30.0e3, 5, 7)
    fields = FieldStore.allocate(grid)
    fields.set_geotherm(20.0, T_top=10.0)
    np.testing.assert_allclose(fields.T[:, -1], 10.0)
    np.testing.assert_allclose(fields.T[:, 0], 610.0)
    np.testing.assert_array_equal(fields.T_new, fields.T)


def test_thermal_energy_excludes_boundary_cells() -> None:
    grid = Grid.from_extent(4.0, 3.0, 5, 4)
    fields = FieldStore.allocate(grid)
    fields.set_material(2.0, 3.0)
    fields.set_uniform(1.0)
    fields.T[0, :] = 1.0e6
    fields.T[:, -1] = 1.0e6
    assert fields.thermal_energy() == pytest.approx(2.0 * 3.0 * 1.0 * 3 * 2 * grid.cell_area)
    assert fields.thermal_energy(interior_only=False) > fields.thermal_energy()


def test_snapshot_copies_state() -> None:
    grid = Grid.from_extent(1.0, 1.0, 4, 4)
    fields = FieldStore.allocate(grid)
    fields.phi.fill(0.25)
    snap = fields.snapshot(time_s=5.0)
    fields.T.fill(3.0)
    assert np.all(snap.T == 0.0)
    np.testing.assert_allclose(snap.melt_fraction, 0.75)
    assert snap.time == 5.0
