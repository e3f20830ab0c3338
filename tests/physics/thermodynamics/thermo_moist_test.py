"""Tests for moist_lm.physics.thermodynamics.thermo_moist."""

from absl.testing import parameterized
from moist_lm.base import fields as fields_lib
from moist_lm.base import parameters as parameters_lib
from moist_lm.communication import communicator as communicator_lib
from moist_lm.physics import constants
from moist_lm.physics.thermodynamics import thermo_moist
from moist_lm.physics.turbulence import diffusion
from moist_lm.utility import cross_section
from moist_lm.utility import stats as stats_lib
import numpy as np
import tensorflow as tf

FieldName = fields_lib.FieldName

_KTOT = 8
_Z = (np.arange(_KTOT) + 0.5) * 100.0

_CONFIG_TEMPLATE = """
    grid {{
      itot: 4  jtot: 4  ktot: 8
      xsize: 400.0  ysize: 400.0  zsize: 800.0
      spatial_order: {spatial_order}
    }}
    thermo {{
      ps: 100000.0
      swupdatebasestate: {swupdatebasestate}
      {thermo_extra}
    }}
    fields {{
      svisc {{ name: "s"  value: 1e-5 }}
      svisc {{ name: "qt"  value: 2e-5 }}
    }}
    diffusion {{ scheme: "{scheme}" }}
    stats {{ {stats_extra} }}
    cross {{ jxz: 1  kxy: 0  kxy: 2 }}
"""


def _repeated(name, values):
  return ' '.join(f'{name}: {value!r}' for value in values)


def _params(spatial_order=2, scheme='dns', swupdatebasestate=False,
            crosslist=(), masks=()):
  thermo_extra = ' '.join([
      _repeated('thl_profile', [float(v) for v in 300.0 + 0.003 * _Z]),
      _repeated('qt_profile', [0.005] * _KTOT),
      ' '.join(f'crosslist: "{name}"' for name in crosslist),
  ])
  stats_extra = ' '.join(f'masks: "{name}"' for name in masks)
  return parameters_lib.MoistLMParameters.config_from_text_proto(
      _CONFIG_TEMPLATE.format(
          spatial_order=spatial_order,
          swupdatebasestate=str(swupdatebasestate).lower(),
          thermo_extra=thermo_extra,
          scheme=scheme,
          stats_extra=stats_extra,
      ))


def _make_thermo(params):
  comm = communicator_lib.LocalCommunicator()
  fields = fields_lib.Fields(params, comm, params.svisc)
  stats = stats_lib.Statistics(
      params, comm, params.stats_enabled, params.stats_masks)
  cross = cross_section.CrossSections(params, comm, params.jxz, params.kxy)
  thermo = thermo_moist.ThermoMoist(
      params, fields, diffusion.diffusion_factory(params.diffusion), stats,
      cross)
  return thermo, fields, stats, cross


def _set_reference_fields(params, thermo, fields):
  """Sets `s` and `qt` to the initial profiles at every column."""
  ones = tf.ones(params.field_shape, dtype=tf.float64)
  fields[FieldName.S].data = tf.reshape(thermo.reference.thl0,
                                        (-1, 1, 1)) * ones
  fields[FieldName.QT].data = tf.reshape(thermo.reference.qt0,
                                         (-1, 1, 1)) * ones


def _update_cell(f, index, value):
  return tf.tensor_scatter_nd_update(
      f, [index], tf.constant([value], dtype=tf.float64))


class ValidateCrosslistTest(tf.test.TestCase, parameterized.TestCase):

  @parameterized.named_parameters(
      ('SecondOrder', 2, ['b', 'ql']),
      ('FourthOrder', 4, ['b', 'blngrad', 'ql']),
  )
  def testUnsupportedNamesAreDropped(self, spatial_order, expected):
    requested = ['ql', 'bogus', 'b', 'blngrad']

    valid = thermo_moist.validate_crosslist(requested, spatial_order)

    self.assertEqual(expected, valid)
    self.assertEqual(['ql', 'bogus', 'b', 'blngrad'], requested)


class ThermoMoistTest(tf.test.TestCase, parameterized.TestCase):

  @parameterized.named_parameters(('SecondOrder', 2), ('FourthOrder', 4))
  def testCreateComputesTheReferenceState(self, spatial_order):
    params = _params(spatial_order, crosslist=('ql', 'bogus', 'b'))
    thermo, _, stats, _ = _make_thermo(params)

    num_errors = thermo.create()

    self.assertEqual(0, self.evaluate(num_errors))
    self.assertEqual(['b', 'ql'], thermo.crosslist)
    pref = self.evaluate(thermo.reference.pref)
    self.assertAllLess(np.diff(pref), 0.0)
    self.assertAllClose(1.0e5, self.evaluate(thermo.reference.prefh)[
        params.kstart])
    self.assertIn('pref', stats.fixed_profs)
    self.assertIn('bflux', stats.get_mask(stats_lib.DEFAULT_MASK).profs)
    self.assertIn('lwp', stats.get_mask(stats_lib.DEFAULT_MASK).tseries)

  @parameterized.named_parameters(
      ('SecondOrder', 2, False), ('FourthOrder', 4, False),
      ('SecondOrderUpdateBaseState', 2, True),
      ('FourthOrderUpdateBaseState', 4, True))
  def testNoTendencyAtReferenceConditions(self, spatial_order,
                                          swupdatebasestate):
    params = _params(spatial_order, swupdatebasestate=swupdatebasestate)
    thermo, fields, _, _ = _make_thermo(params)
    thermo.create()
    _set_reference_fields(params, thermo, fields)

    num_errors = thermo.exec_step()

    self.assertEqual(0, self.evaluate(num_errors))
    self.assertAllClose(
        np.zeros(params.field_shape), self.evaluate(fields.wt), atol=1e-10)

  @parameterized.named_parameters(('SecondOrder', 2), ('FourthOrder', 4))
  def testUpdatedBaseStateRefreshesOnlyPressure(self, spatial_order):
    params = _params(spatial_order, swupdatebasestate=True)
    ks, ke = params.kstart, params.kend
    thermo, fields, _, _ = _make_thermo(params)
    thermo.create()
    _set_reference_fields(params, thermo, fields)
    ref = thermo.reference
    before = {
        name: self.evaluate(getattr(ref, name))
        for name in ('pref', 'exnref', 'rhoref', 'thvref')
    }
    fields[FieldName.S].data += 2.0

    num_errors = thermo.exec_step()

    self.assertEqual(0, self.evaluate(num_errors))
    pref = self.evaluate(ref.pref)
    exnref = self.evaluate(ref.exnref)
    # A warmer column is less dense, so the pressure decays slower with height.
    self.assertAllGreater(pref[ks:ke] - before['pref'][ks:ke], 0.0)
    self.assertAllGreater(exnref[ks:ke] - before['exnref'][ks:ke], 0.0)
    self.assertAllEqual(before['rhoref'], self.evaluate(ref.rhoref))
    self.assertAllEqual(before['thvref'], self.evaluate(ref.thvref))

  def testWarmAirAcceleratesUpward(self):
    params = _params()
    ks, ke = params.kstart, params.kend
    thermo, fields, _, _ = _make_thermo(params)
    thermo.create()
    _set_reference_fields(params, thermo, fields)
    fields[FieldName.S].data += 0.5

    thermo.exec_step()
    thermo.exec_step()

    wt = self.evaluate(fields.wt)
    interior = wt[ks + 1:ke, params.istart:params.iend,
                  params.jstart:params.jend]
    self.assertAllGreater(interior, 0.0)
    # Two steps accumulate twice the buoyancy of a 0.5 K anomaly.
    qt_factor = 1.0 - (1.0 - constants.R_V / constants.R_D) * 0.005
    thvrefh = self.evaluate(thermo.reference.thvrefh)[ks + 1:ke]
    expected = 2.0 * constants.G * 0.5 * qt_factor / thvrefh
    self.assertAllClose(
        np.broadcast_to(expected[:, np.newaxis, np.newaxis], interior.shape),
        interior)
    self.assertAllEqual(np.zeros_like(wt[ks]), wt[ks])
    self.assertAllEqual(np.zeros_like(wt[ke]), wt[ke])

  def testThermoFields(self):
    params = _params()
    ks, ke = params.kstart, params.kend
    thermo, fields, _, _ = _make_thermo(params)
    thermo.create()
    _set_reference_fields(params, thermo, fields)

    for name in ('b', 'ql', 'N2'):
      self.assertTrue(thermo.check_thermo_field(name))
    self.assertFalse(thermo.check_thermo_field('foo'))
    with self.assertRaises(thermo_moist.UnsupportedThermoFieldError):
      thermo.get_thermo_field('foo')

    n2 = thermo.get_thermo_field('N2')
    thvref = self.evaluate(thermo.reference.thvref)
    n2 = self.evaluate(n2.data)[:, params.istart, params.jstart]
    self.assertAllClose(constants.G / thvref[ks:ke] * 0.003, n2[ks:ke])

    ql = thermo.get_thermo_field('ql')
    self.assertAllEqual(np.zeros(params.field_shape), self.evaluate(ql.data))
    self.assertEqual(0, self.evaluate(ql.num_unconverged))

    b = thermo.get_thermo_field('b')
    self.assertAllClose(
        np.zeros(params.field_shape), self.evaluate(b.data), atol=1e-10)

  def testProgVarsAndSurfaceBuoyancy(self):
    params = _params()
    ks = params.kstart
    thermo, fields, _, _ = _make_thermo(params)
    thermo.create()
    _set_reference_fields(params, thermo, fields)
    fields[FieldName.S].bot = 301.0 * tf.ones(
        params.plane_shape, dtype=tf.float64)
    fields[FieldName.S].fluxbot = 0.1 * tf.ones(
        params.plane_shape, dtype=tf.float64)

    surf = thermo.get_buoyancy_surf()

    self.assertEqual([FieldName.S, FieldName.QT], thermo.get_prog_vars())
    thvrefh = self.evaluate(thermo.reference.thvrefh)[ks]
    # qt is 0 at the surface, so the surface air is dry.
    self.assertAllClose(
        np.full(params.plane_shape, constants.G * (301.0 - thvrefh) / thvrefh),
        self.evaluate(surf.bbot))
    self.assertAllClose(
        np.full(params.plane_shape, constants.G / thvrefh * 0.1),
        self.evaluate(surf.bfluxbot))

  def testUnknownMaskRaisesValueError(self):
    params = _params()
    thermo, _, _, _ = _make_thermo(params)
    thermo.create()

    with self.assertRaisesRegex(ValueError, 'bogus'):
      thermo.get_mask('bogus')


class ThermoMoistStatsTest(tf.test.TestCase, parameterized.TestCase):

  @parameterized.named_parameters(('SecondOrder', 2), ('FourthOrder', 4))
  def testDryDomainHasNoCloud(self, spatial_order):
    params = _params(spatial_order, masks=('ql',))
    thermo, fields, stats, _ = _make_thermo(params)
    thermo.create()
    _set_reference_fields(params, thermo, fields)

    num_errors = thermo.exec_stats()

    self.assertEqual(0, self.evaluate(num_errors))
    m = stats.get_mask(stats_lib.DEFAULT_MASK)
    self.assertEqual(0.0, self.evaluate(m.tseries['lwp']))
    self.assertEqual(0.0, self.evaluate(m.tseries['ccover']))
    self.assertAllEqual(np.zeros(params.kcells), self.evaluate(m.profs['ql']))
    self.assertAllEqual(
        np.zeros(params.kcells), self.evaluate(m.profs['cfrac']))
    self.assertAllClose(
        np.zeros(params.kcells), self.evaluate(m.profs['b']), atol=1e-10)

    ql_mask = thermo.get_mask('ql')
    self.assertAllEqual(
        np.zeros(params.kcells), self.evaluate(ql_mask.nmask))

  def testSaturatedCellIsSampled(self):
    params = _params(masks=('ql', 'qlcore'))
    ks = params.kstart
    thermo, fields, stats, _ = _make_thermo(params)
    thermo.create()
    _set_reference_fields(params, thermo, fields)
    cell = [ks + 1, params.istart + 1, params.jstart + 2]
    fields[FieldName.QT].data = _update_cell(
        fields[FieldName.QT].data, cell, 0.05)

    thermo.exec_stats()
    mask = thermo.get_mask('ql')
    stats.set_mask(mask)
    thermo.exec_stats('ql')
    core = thermo.get_mask('qlcore')

    default = stats.get_mask(stats_lib.DEFAULT_MASK)
    self.assertAllClose(1.0 / 16.0, self.evaluate(default.tseries['ccover']))
    self.assertGreater(self.evaluate(default.tseries['lwp']), 0.0)
    cfrac = self.evaluate(default.profs['cfrac'])
    self.assertAllClose(1.0 / 16.0, cfrac[ks + 1])
    self.assertEqual(1.0 / 16.0, np.sum(cfrac))

    self.assertEqual(1, self.evaluate(mask.nmask)[ks + 1])
    self.assertEqual(1, np.sum(self.evaluate(mask.nmask)))
    cloudy = stats.get_mask('ql')
    ql_default = self.evaluate(default.profs['ql'])[ks + 1]
    ql_cloudy = self.evaluate(cloudy.profs['ql'])[ks + 1]
    # The conditional mean is over a single cell of the 16 in the plane.
    self.assertAllClose(16.0 * ql_default, ql_cloudy)
    # The cloudy cell is moister and warmer than the mean, hence a core.
    self.assertEqual(1, self.evaluate(core.nmask)[ks + 1])

  def testEddyDiffusivityIsUsedForTheDiffusiveFlux(self):
    params = _params(scheme='smag2')
    ks, ke = params.kstart, params.kend
    thermo, fields, stats, _ = _make_thermo(params)
    thermo.create()
    _set_reference_fields(params, thermo, fields)
    # A buoyancy that increases with height.
    fields[FieldName.S].data += tf.reshape(
        tf.constant(0.01 * params.z, dtype=tf.float64), (-1, 1, 1))

    with self.assertRaisesRegex(ValueError, 'eddy viscosity'):
      thermo.exec_stats()

    fields.evisc = tf.ones(params.field_shape, dtype=tf.float64)
    thermo.exec_stats()

    m = stats.get_mask(stats_lib.DEFAULT_MASK)
    bdiff = self.evaluate(m.profs['bdiff'])
    bflux = self.evaluate(m.profs['bflux'])
    # A stable stratification gives a downward diffusive flux.
    self.assertAllLess(bdiff[ks + 1:ke], 0.0)
    # The boundary fluxes are the prescribed surface flux and zero.
    self.assertAllClose(0.0, bdiff[ks])
    self.assertAllClose(0.0, bdiff[ke])
    self.assertAllClose(bdiff, bflux)

  def testPrescribedTopFluxEntersTheDiffusiveFlux(self):
    params = _params(scheme='smag2')
    ke = params.kend
    thermo, fields, stats, _ = _make_thermo(params)
    thermo.create()
    _set_reference_fields(params, thermo, fields)
    fields.evisc = tf.ones(params.field_shape, dtype=tf.float64)
    fields[FieldName.S].fluxtop = 0.2 * tf.ones(
        params.plane_shape, dtype=tf.float64)

    thermo.exec_stats()

    qt0 = self.evaluate(thermo.reference.qt0)
    thvrefh = self.evaluate(thermo.reference.thvrefh)
    qt_top = 0.5 * (qt0[ke - 1] + qt0[ke])
    qt_coeff = 1.0 - constants.R_V / constants.R_D
    expected = constants.G / thvrefh[ke] * 0.2 * (1.0 - qt_coeff * qt_top)
    self.assertAllClose(
        np.full(params.plane_shape, expected),
        self.evaluate(thermo.get_buoyancy_flux_top()))
    bdiff = self.evaluate(
        stats.get_mask(stats_lib.DEFAULT_MASK).profs['bdiff'])
    self.assertAllClose(expected, bdiff[ke])

  def testStatsWithoutSinkRaisesValueError(self):
    params = _params()
    comm = communicator_lib.LocalCommunicator()
    fields = fields_lib.Fields(params, comm, params.svisc)
    thermo = thermo_moist.ThermoMoist(
        params, fields, diffusion.diffusion_factory(params.diffusion))
    thermo.create()

    with self.assertRaisesRegex(ValueError, 'statistics sink'):
      thermo.exec_stats()


class ThermoMoistCrossTest(tf.test.TestCase):

  def testCrossSectionsOfAllVariables(self):
    params = _params(
        4, crosslist=('b', 'ql', 'blngrad', 'qlpath', 'bbot', 'bfluxbot'))
    thermo, fields, _, cross = _make_thermo(params)
    thermo.create()
    _set_reference_fields(params, thermo, fields)

    num_errors = thermo.exec_cross()

    self.assertEqual(0, self.evaluate(num_errors))
    self.assertCountEqual(
        ['b', 'bbot', 'bfluxbot', 'blngrad', 'ql', 'qlpath'], cross.sections)
    self.assertCountEqual([('xz', 1), ('xy', 0), ('xy', 2)],
                          cross.sections['b'])
    self.assertEqual((params.ktot, params.imax),
                     tuple(cross.sections['b'][('xz', 1)].shape))
    self.assertEqual((params.imax, params.jmax),
                     tuple(cross.sections['ql'][('xy', 2)].shape))
    self.assertAllEqual(
        np.zeros((params.imax, params.jmax)),
        self.evaluate(cross.sections['qlpath'][('path', 0)]))
    self.assertEqual((params.imax, params.jmax),
                     tuple(cross.sections['bbot'][('plane', 0)].shape))
    lngrad = self.evaluate(cross.sections['blngrad'][('xy', 0)])
    self.assertTrue(np.all(np.isfinite(lngrad)))


if __name__ == '__main__':
  tf.test.main()
