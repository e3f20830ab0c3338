"""Tests for moist_lm.utility.grid_parametrization."""

from absl.testing import parameterized
from moist_lm.utility import grid_parametrization
import numpy as np
import tensorflow as tf

_GRID_TEMPLATE = """
    itot: 8  jtot: 4  ktot: 5
    xsize: 800.0  ysize: 200.0  zsize: 500.0
    spatial_order: {spatial_order}  npx: {npx}
    {extra}
"""


def _grid(spatial_order=2, npx=1, extra=''):
  return grid_parametrization.GridParametrization(
      grid_parametrization.params_from_text_proto(
          _GRID_TEMPLATE.format(
              spatial_order=spatial_order, npx=npx, extra=extra)))


class GridParametrizationTest(tf.test.TestCase, parameterized.TestCase):

  @parameterized.named_parameters(
      ('SecondOrder', 2, 1), ('FourthOrder', 4, 2))
  def testIndexRanges(self, spatial_order, halo_width):
    grid = _grid(spatial_order, npx=2)

    self.assertEqual(halo_width, grid.halo_width)
    self.assertEqual(4, grid.imax)
    self.assertEqual(4 + 2 * halo_width, grid.icells)
    self.assertEqual(4 + 2 * halo_width, grid.jcells)
    self.assertEqual(5 + 2 * halo_width, grid.kcells)
    self.assertEqual((halo_width, halo_width + 5), (grid.kstart, grid.kend))
    self.assertEqual((grid.kcells, grid.icells, grid.jcells), grid.field_shape)
    self.assertEqual((grid.icells, grid.jcells), grid.plane_shape)
    self.assertEqual(32, grid.ijtot)
    self.assertAlmostEqual(100.0, grid.dx)
    self.assertAlmostEqual(50.0, grid.dy)

  @parameterized.named_parameters(('SecondOrder', 2), ('FourthOrder', 4))
  def testUniformVerticalGrid(self, spatial_order):
    grid = _grid(spatial_order)
    ks, ke = grid.kstart, grid.kend

    self.assertAllClose([50.0, 150.0, 250.0, 350.0, 450.0], grid.z[ks:ke])
    self.assertAllClose([0.0, 100.0, 200.0, 300.0, 400.0, 500.0],
                        grid.zh[ks:ke + 1])
    # The ghost cells are mirrored about the surface and the top.
    self.assertAllClose(-grid.z[ks], grid.z[ks - 1])
    self.assertAllClose(2.0 * 500.0 - grid.z[ke - 1], grid.z[ke])
    self.assertAllClose(np.full(grid.ktot, 100.0), grid.dz[ks:ke])
    self.assertAllClose(np.full(grid.ktot, 0.01), grid.dzi[ks:ke])
    self.assertAllClose(np.full(grid.ktot - 1, 0.01), grid.dzhi[ks + 1:ke])
    self.assertAllClose(np.full(grid.ktot, 0.01), grid.dzi4[ks:ke])
    self.assertAllClose(np.full(grid.ktot + 1, 0.01), grid.dzhi4[ks:ke + 1])

  def testExplicitVerticalGrid(self):
    grid = _grid(
        extra='z: 20.0  z: 80.0  z: 180.0  z: 300.0  z: 440.0')
    ks, ke = grid.kstart, grid.kend

    self.assertAllClose([20.0, 80.0, 180.0, 300.0, 440.0], grid.z[ks:ke])
    self.assertAllClose([0.0, 50.0, 130.0, 240.0, 370.0, 500.0],
                        grid.zh[ks:ke + 1])
    self.assertAllClose([50.0, 80.0, 110.0, 130.0, 130.0], grid.dz[ks:ke])
    self.assertAllClose([60.0, 100.0, 120.0, 140.0],
                        1.0 / grid.dzhi[ks + 1:ke])

  @parameterized.named_parameters(
      ('SpatialOrder', dict(spatial_order=3), 'Spatial order'),
      ('Decomposition', dict(npx=3), 'divisible'),
      ('ExplicitGrid', dict(extra='z: 10.0  z: 20.0'), 'levels'),
  )
  def testInvalidGridRaisesValueError(self, kwargs, message):
    with self.assertRaisesRegex(ValueError, message):
      _grid(**kwargs)


if __name__ == '__main__':
  tf.test.main()
