"""Tests for moist_lm.base.fields."""

from moist_lm.base import fields as fields_lib
from moist_lm.communication import communicator as communicator_lib
from moist_lm.utility import grid_parametrization
import numpy as np
import tensorflow as tf

FieldName = fields_lib.FieldName

_GRID = """
    itot: 4  jtot: 3  ktot: 4
    xsize: 400.0  ysize: 300.0  zsize: 400.0
    spatial_order: 2
"""

_SVISC = {FieldName.S: 1e-5, FieldName.QT: 2e-5}


def _grid():
  return grid_parametrization.GridParametrization(
      grid_parametrization.params_from_text_proto(_GRID))


class FieldsTest(tf.test.TestCase):

  def testFieldsAreAllocatedWithZeros(self):
    grid = _grid()

    fields = fields_lib.Fields(
        grid, communicator_lib.LocalCommunicator(), _SVISC)

    self.assertCountEqual([FieldName.S, FieldName.QT], fields.sp)
    self.assertEqual('s', fields[FieldName.S].name)
    self.assertEqual('kg kg-1', fields[FieldName.QT].units)
    self.assertEqual(2e-5, fields[FieldName.QT].visc)
    self.assertAllEqual(
        np.zeros(grid.field_shape), self.evaluate(fields[FieldName.S].data))
    self.assertAllEqual(np.zeros(grid.field_shape), self.evaluate(fields.wt))
    self.assertAllEqual(
        np.zeros(grid.plane_shape), self.evaluate(fields[FieldName.S].bot))
    self.assertIsNone(fields.evisc)

  def testMissingDiffusivityRaisesValueError(self):
    with self.assertRaisesRegex(ValueError, '`qt` is missing'):
      fields_lib.Fields(_grid(), communicator_lib.LocalCommunicator(),
                        {FieldName.S: 1e-5})

  def testMeanIsTakenOverTheInterior(self):
    grid = _grid()
    fields = fields_lib.Fields(
        grid, communicator_lib.LocalCommunicator(), _SVISC)
    data = np.full(grid.field_shape, 100.0)
    data[:, grid.istart:grid.iend, grid.jstart:grid.jend] = np.arange(
        grid.kcells)[:, np.newaxis, np.newaxis]
    fields[FieldName.S].data = tf.constant(data)

    self.assertAllClose(
        np.arange(grid.kcells, dtype=np.float64),
        self.evaluate(fields.mean(FieldName.S)))

  def testSetVerticalGhosts(self):
    grid = _grid()
    ks, ke = grid.kstart, grid.kend
    fields = fields_lib.Fields(
        grid, communicator_lib.LocalCommunicator(), _SVISC)
    rng = np.random.RandomState(1)
    data = rng.uniform(size=grid.field_shape)
    field = fields[FieldName.S]
    field.data = tf.constant(data)
    field.bot = 2.0 * tf.ones(grid.plane_shape, dtype=tf.float64)

    fields.set_vertical_ghosts()

    result = self.evaluate(field.data)
    i, j = grid.istart, grid.jstart
    # The surface value is the mean of the first interior and ghost cells.
    self.assertAllClose(2.0, 0.5 * (result[ks - 1, i, j] + result[ks, i, j]))
    # The gradient vanishes at the domain top.
    self.assertAllClose(result[ke - 1, i, j], result[ke, i, j])
    # The horizontal ghost cells are periodic.
    self.assertAllClose(result[:, grid.iend - 1, j], result[:, i - 1, j])
    self.assertAllClose(result[:, i, grid.jend - 1], result[:, i, j - 1])
    self.assertAllClose(data[ks:ke, i:grid.iend, j:grid.jend],
                        result[ks:ke, i:grid.iend, j:grid.jend])


if __name__ == '__main__':
  tf.test.main()
