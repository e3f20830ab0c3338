"""Tests for moist_lm.utility.common_ops."""

from moist_lm.communication import communicator as communicator_lib
from moist_lm.utility import common_ops
from moist_lm.utility import grid_parametrization
import numpy as np
import tensorflow as tf

_GRID = """
    itot: 3  jtot: 2  ktot: 2
    xsize: 300.0  ysize: 200.0  zsize: 200.0
    spatial_order: 2
"""


def _grid():
  return grid_parametrization.GridParametrization(
      grid_parametrization.params_from_text_proto(_GRID))


class CommonOpsTest(tf.test.TestCase):

  def testAsProfileBroadcastsAgainstFields(self):
    profile = common_ops.as_profile([1.0, 2.0, 3.0])

    self.assertEqual((3, 1, 1), profile.shape)
    self.assertEqual(tf.float64, profile.dtype)

  def testHorizontalSumAndMeanExcludeTheGhostCells(self):
    grid = _grid()
    comm = communicator_lib.LocalCommunicator()
    data = np.full(grid.field_shape, 1000.0)
    data[:, grid.istart:grid.iend, grid.jstart:grid.jend] = np.arange(
        grid.kcells, dtype=np.float64)[:, np.newaxis, np.newaxis]
    f = tf.constant(data)

    total = self.evaluate(common_ops.horizontal_sum(f, grid, comm))
    mean = self.evaluate(common_ops.horizontal_mean(f, grid, comm))

    self.assertAllClose(6.0 * np.arange(grid.kcells), total)
    self.assertAllClose(np.arange(grid.kcells), mean)

  def testStripAndPadHorizontalHalos(self):
    grid = _grid()
    f = tf.ones(grid.field_shape, dtype=tf.float64)

    interior = common_ops.strip_horizontal_halos(f, grid)
    padded = self.evaluate(common_ops.pad_horizontal(interior, grid, -1.0))

    self.assertEqual((grid.kcells, grid.imax, grid.jmax), interior.shape)
    self.assertEqual(grid.field_shape, padded.shape)
    self.assertAllEqual(np.full((grid.kcells, grid.jcells), -1.0),
                        padded[:, 0, :])
    self.assertAllEqual(
        np.ones((grid.kcells, grid.imax, grid.jmax)),
        padded[:, grid.istart:grid.iend, grid.jstart:grid.jend])


if __name__ == '__main__':
  tf.test.main()
