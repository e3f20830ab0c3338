"""Tests for moist_lm.numerics.interpolation."""

from absl.testing import parameterized
from moist_lm.numerics import interpolation
import numpy as np
import tensorflow as tf


def _linear_field(nz, nx, ny, slope_z=2.0, slope_x=0.0, slope_y=0.0):
  """Returns a field that varies linearly with the indices."""
  k, i, j = np.meshgrid(
      np.arange(nz), np.arange(nx), np.arange(ny), indexing='ij')
  return tf.constant(
      1.0 + slope_z * k + slope_x * i + slope_y * j, dtype=tf.float64)


class InterpolationTest(tf.test.TestCase, parameterized.TestCase):

  def testScalarStencilsAreExactForLinearFunctions(self):
    """Checks the 2- and 4-point interpolation and the 4-point difference."""
    self.assertAlmostEqual(1.5, interpolation.interp2(1.0, 2.0))
    self.assertAlmostEqual(2.5, interpolation.interp4(1.0, 2.0, 3.0, 4.0))
    self.assertAlmostEqual(1.0, interpolation.grad4(1.0, 2.0, 3.0, 4.0))

  def testInterp4UsesTheFourthOrderWeights(self):
    """Checks the weights (-1, 9, 9, -1) / 16 on a quadratic."""
    values = [x**2 for x in (-1.5, -0.5, 0.5, 1.5)]

    self.assertAlmostEqual(0.0, interpolation.interp4(*values))

  @parameterized.named_parameters(('SecondOrder', 2), ('FourthOrder', 4))
  def testHalfLevelValuesOfLinearField(self, spatial_order):
    """Checks that half level values are the midpoints of a linear field."""
    f = _linear_field(8, 3, 2)

    fh = self.evaluate(
        interpolation.half_level_values(f, spatial_order, 2, 6))

    self.assertEqual((4, 3, 2), fh.shape)
    # Half level k lies between full levels k - 1 and k.
    expected = 1.0 + 2.0 * (np.arange(2, 6) - 0.5)
    self.assertAllClose(
        np.broadcast_to(expected[:, np.newaxis, np.newaxis], (4, 3, 2)), fh)

  @parameterized.named_parameters(('SecondOrder', 2), ('FourthOrder', 4))
  def testHalfLevelGradientOfLinearField(self, spatial_order):
    """Checks that the gradient of a linear field is its slope."""
    f = _linear_field(8, 2, 2, slope_z=3.0)
    dzhi = np.full(8, 0.5)

    grad = self.evaluate(
        interpolation.half_level_gradient(f, dzhi, spatial_order, 2, 7))

    self.assertAllClose(np.full((5, 2, 2), 1.5), grad)

  def testUnsupportedOrderRaisesValueError(self):
    f = _linear_field(8, 2, 2)
    with self.assertRaisesRegex(ValueError, 'Spatial order'):
      interpolation.half_level_values(f, 3, 2, 6)
    with self.assertRaisesRegex(ValueError, 'Spatial order'):
      interpolation.half_level_gradient(f, np.ones(8), 6, 2, 6)

  @parameterized.named_parameters(('X', 0, 2.0, 0.0), ('Y', 1, 0.0, 3.0))
  def testCenteredGradient4thOfLinearField(self, dim, slope_x, slope_y):
    """Checks the horizontal 4th order gradient on the interior points."""
    f = _linear_field(3, 8, 8, slope_z=0.0, slope_x=slope_x, slope_y=slope_y)

    grad = self.evaluate(interpolation.centered_gradient_4th(f, dim, 0.5, 2))

    expected_shape = (3, 4, 8) if dim == 0 else (3, 8, 4)
    self.assertEqual(expected_shape, grad.shape)
    self.assertAllClose(
        np.full(expected_shape, (slope_x + slope_y) / 0.5), grad)

  def testCenteredGradient4thRequiresTwoGhostCells(self):
    f = _linear_field(3, 8, 8)
    with self.assertRaisesRegex(ValueError, 'at least 2 ghost cells'):
      interpolation.centered_gradient_4th(f, 0, 1.0, 1)
    with self.assertRaisesRegex(ValueError, '`dim`'):
      interpolation.centered_gradient_4th(f, 2, 1.0, 2)


if __name__ == '__main__':
  tf.test.main()
