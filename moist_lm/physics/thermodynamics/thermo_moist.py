# Copyright 2025 The moist_lm Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# coding=utf-8
"""The moist thermodynamics with liquid water potential temperature.

The thermodynamic state is described by the liquid water potential temperature
𝜃ₗ and the total water mixing ratio qₜ. The liquid water follows from the
saturation adjustment, and the buoyancy relative to a hydrostatic reference
state forces the vertical velocity. The reference state is computed from the
initial profiles and, if configured, its pressure is recomputed from the mean
profiles at every step.
"""

import collections
from typing import List, Optional, Sequence

from absl import logging
from moist_lm.base import fields as fields_lib
from moist_lm.base import parameters as parameters_lib
from moist_lm.physics.atmosphere import cloud_mask
from moist_lm.physics.atmosphere import reference_state
from moist_lm.physics.thermodynamics import buoyancy
from moist_lm.physics.turbulence import diffusion
from moist_lm.utility import common_ops
from moist_lm.utility import cross_section
from moist_lm.utility import stats as stats_lib
from moist_lm.utility import types
import tensorflow as tf

FieldName = fields_lib.FieldName
FlowFieldVal = types.FlowFieldVal

_TF_DTYPE = types.TF_DTYPE

# The names of the fields that can be derived from the thermodynamic state.
THERMO_FIELDS = ('b', 'ql', 'N2')

# The names of the cross sections that are available with any spatial order.
_CROSS_VARIABLES = ('b', 'bbot', 'bfluxbot', 'ql', 'qlpath')
# The cross sections that require the 4th order stencils.
_CROSS_VARIABLES_4TH = ('blngrad',)

ThermoField = collections.namedtuple(
    'ThermoField', ('data', 'num_unconverged'))

SurfaceBuoyancy = collections.namedtuple(
    'SurfaceBuoyancy', ('b_lowest', 'bbot', 'bfluxbot'))


class UnsupportedThermoFieldError(ValueError):
  """Raised when a field that the thermodynamics can't derive is requested."""


def allowed_cross_variables(spatial_order: int) -> List[str]:
  """Returns the names of the cross sections for a spatial order."""
  allowed = list(_CROSS_VARIABLES)
  if spatial_order == 4:
    allowed.extend(_CROSS_VARIABLES_4TH)
  return allowed


def validate_crosslist(
    requested: Sequence[str],
    spatial_order: int,
) -> List[str]:
  """Filters the requested cross sections.

  Args:
    requested: The names of the requested cross sections.
    spatial_order: The spatial order of the grid.

  Returns:
    A new sorted list with the supported names. Unsupported names are dropped
    with a warning.
  """
  allowed = allowed_cross_variables(spatial_order)
  valid = []
  for name in requested:
    if name in allowed:
      valid.append(name)
    else:
      logging.warning('Field "%s" in [thermo] crosslist is illegal.', name)
  return sorted(valid)


def _log_unconverged(num_unconverged: tf.Tensor, where: str) -> None:
  value = tf.get_static_value(num_unconverged)
  if value:
    logging.warning(
        'The saturation adjustment did not converge in %d cells in %s.', value,
        where)


class ThermoMoist:
  """The moist thermodynamics of liquid water potential temperature and qt."""

  def __init__(
      self,
      params: parameters_lib.MoistLMParameters,
      fields: fields_lib.Fields,
      diffusion_model: diffusion.DiffusionModel,
      stats: Optional[stats_lib.Statistics] = None,
      cross: Optional[cross_section.CrossSections] = None,
  ):
    """Initializes the thermodynamics and allocates the reference profiles.

    Args:
      params: The simulation parameters.
      fields: The field registry that holds `s`, `qt`, `w` and `wt`.
      diffusion_model: The diffusion scheme, which provides the diffusivity
        of the buoyancy flux statistics.
      stats: The statistics sink. Statistics are not collected if `None`.
      cross: The cross section sink. Cross sections are not collected if
        `None`.
    """
    self._params = params
    self._fields = fields
    self._diffusion = diffusion_model
    self._stats = stats
    self._cross = cross

    self._max_iterations = params.max_saturation_iterations
    self._tolerance = params.saturation_tolerance

    self.reference = reference_state.ReferenceState(
        params, params.ps, self._max_iterations, self._tolerance)
    self.crosslist: List[str] = []

  @property
  def swupdatebasestate(self) -> bool:
    return self._params.swupdatebasestate

  def create(self) -> tf.Tensor:
    """Computes the reference state and registers the diagnostics.

    Returns:
      The number of unconverged saturation adjustments in the reference
      state.
    """
    params = self._params
    self.reference.init_profiles(params.thl_profile, params.qt_profile)
    base_state = self.reference.calc_base_state()
    self.reference.set_base_state(base_state)
    _log_unconverged(base_state.num_unconverged, 'the reference state')

    if self._stats is not None and self._stats.enabled:
      self._register_stats()

    self.crosslist = validate_crosslist(params.crosslist, params.spatial_order)
    logging.info('Moist thermodynamics created with cross sections %s.',
                 self.crosslist)
    return base_state.num_unconverged

  def _register_stats(self) -> None:
    """Registers the reference profiles and the sampled quantities."""
    ref = self.reference
    stats = self._stats
    stats.add_fixed_prof('pref', 'Full level basic state pressure', 'Pa', 'z',
                         ref.pref)
    stats.add_fixed_prof('prefh', 'Half level basic state pressure', 'Pa',
                         'zh', ref.prefh)
    stats.add_fixed_prof('rhoref', 'Full level basic state density',
                         'kg m-3', 'z', ref.rhoref)
    stats.add_fixed_prof('rhorefh', 'Half level basic state density',
                         'kg m-3', 'zh', ref.rhorefh)

    stats.add_prof('b', 'Buoyancy', 'm s-2', 'z')
    for n in range(2, 5):
      stats.add_prof(f'b{n}', f'Moment {n} of the buoyancy', f'(m s-2){n}',
                     'z')
    stats.add_prof('bgrad', 'Gradient of the buoyancy', 'm s-3', 'zh')
    stats.add_prof('bw', 'Turbulent flux of the buoyancy', 'm2 s-3', 'zh')
    stats.add_prof('bdiff', 'Diffusive flux of the buoyancy', 'm2 s-3', 'zh')
    stats.add_prof('bflux', 'Total flux of the buoyancy', 'm2 s-3', 'zh')
    stats.add_prof('ql', 'Liquid water mixing ratio', 'kg kg-1', 'z')
    stats.add_prof('cfrac', 'Cloud fraction', '-', 'z')

    stats.add_tseries('lwp', 'Liquid water path', 'kg m-2')
    stats.add_tseries('ccover', 'Projected cloud cover', '-')

  def _maybe_update_base_state(self) -> tf.Tensor:
    """Recomputes the reference pressure from the current mean profiles.

    Only the pressure and the Exner function are updated; the reference
    density and virtual potential temperature keep their initial values.

    Returns:
      The number of unconverged saturation adjustments.
    """
    if not self.swupdatebasestate:
      return tf.constant(0)
    base_state = self.reference.calc_base_state(
        self._fields.mean(FieldName.S), self._fields.mean(FieldName.QT))
    self.reference.set_pressure(base_state)
    return base_state.num_unconverged

  def exec_step(self) -> tf.Tensor:
    """Adds the buoyancy to the tendency of the vertical velocity.

    Returns:
      The number of errors of the step, i.e. of unconverged saturation
      adjustments. 0 indicates success.
    """
    num_errors = self._maybe_update_base_state()
    fields = self._fields
    wt, num_unconverged = buoyancy.buoyancy_tendency(
        fields.wt,
        fields[FieldName.S].data,
        fields[FieldName.QT].data,
        self.reference.prefh,
        self.reference.thvrefh,
        self._params,
        self._max_iterations,
        self._tolerance,
    )
    fields.wt = wt
    num_errors += num_unconverged
    _log_unconverged(num_errors, 'the buoyancy tendency')
    return num_errors

  def _buoyancy(self) -> buoyancy.BuoyancyResult:
    fields = self._fields
    return buoyancy.calc_buoyancy(
        fields[FieldName.S].data, fields[FieldName.QT].data,
        self.reference.pref, self.reference.thvref, self._params,
        self._max_iterations, self._tolerance)

  def _ql_field(self) -> buoyancy.LiquidWaterResult:
    fields = self._fields
    return buoyancy.calc_ql_field(
        fields[FieldName.S].data, fields[FieldName.QT].data,
        self.reference.pref, self._params, self._max_iterations,
        self._tolerance)

  def get_mask(self, name: str) -> cloud_mask.MaskResult:
    """Computes a conditional sampling mask.

    Args:
      name: 'ql' for cloudy cells, or 'qlcore' for cloudy cells that are more
        buoyant than the horizontal mean.

    Returns:
      The `MaskResult`.

    Raises:
      ValueError: If the mask is not provided by the thermodynamics.
    """
    grid = self._params
    communicator = self._fields.communicator
    if name == 'ql':
      return cloud_mask.calc_mask_ql(self._ql_field().ql, grid, communicator)
    if name == 'qlcore':
      b = self._buoyancy().b
      bmean = common_ops.horizontal_mean(b, grid, communicator)
      return cloud_mask.calc_mask_qlcore(
          self._ql_field().ql, b, bmean, grid, communicator)
    raise ValueError(
        f'Mask "{name}" is not provided by the moist thermodynamics.')

  def exec_stats(self, mask_name: str = stats_lib.DEFAULT_MASK) -> tf.Tensor:
    """Samples the buoyancy and liquid water statistics under a mask.

    The mask that is currently set in the statistics sink is used, and the
    results are stored in the profiles of the mask named `mask_name`.

    Args:
      mask_name: The name of the mask the results are stored under.

    Returns:
      The number of unconverged saturation adjustments.

    Raises:
      ValueError: If there is no statistics sink.
    """
    if self._stats is None:
      raise ValueError('Statistics are requested without a statistics sink.')

    grid = self._params
    stats = self._stats
    fields = self._fields
    communicator = fields.communicator
    ref = self.reference
    m = stats.get_mask(mask_name)
    mask, maskh = stats.mask, stats.maskh
    nmask, nmaskh = stats.nmask, stats.nmaskh

    b_result = self._buoyancy()
    b = b_result.b
    bfluxbot = self.get_buoyancy_flux_bot()

    m.profs['b'] = stats_lib.calc_mean(b, mask, nmask, grid, communicator)
    for n in range(2, 5):
      m.profs[f'b{n}'] = stats_lib.calc_moment(
          b, m.profs['b'], n, mask, nmask, grid, communicator)

    if grid.spatial_order == 2:
      m.profs['bgrad'] = stats_lib.calc_grad_2nd(
          b, grid.dzhi, maskh, nmaskh, grid, communicator)
      m.profs['bw'] = stats_lib.calc_flux_2nd(
          b, m.profs['b'], fields.w, maskh, nmaskh, grid, communicator)
    else:
      m.profs['bgrad'] = stats_lib.calc_grad_4th(
          b, grid.dzhi4, maskh, nmaskh, grid, communicator)
      m.profs['bw'] = stats_lib.calc_flux_4th(
          b, fields.w, maskh, nmaskh, grid, communicator)

    if self._diffusion.provides_eddy_diffusivity:
      m.profs['bdiff'] = stats_lib.calc_diff_2nd(
          b, self._diffusion.eddy_viscosity(fields), grid.dzhi, bfluxbot,
          self.get_buoyancy_flux_top(), self._diffusion.turbulent_prandtl,
          maskh, nmaskh, grid, communicator)
    else:
      # The diffusivity of the temperature is used for the buoyancy.
      m.profs['bdiff'] = stats_lib.calc_diff_4th(
          b, grid.dzhi4, self._diffusion.diffusivity(fields, FieldName.S),
          maskh, nmaskh, grid, communicator)

    m.profs['bflux'] = stats_lib.add_fluxes(m.profs['bw'], m.profs['bdiff'])

    ql_result = self._ql_field()
    ql = ql_result.ql
    m.profs['ql'] = stats_lib.calc_mean(ql, mask, nmask, grid, communicator)
    m.profs['cfrac'] = stats_lib.calc_count(ql, mask, 0.0, grid, communicator)

    m.tseries['ccover'] = stats_lib.calc_cover(ql, 0.0, grid, communicator)
    m.tseries['lwp'] = stats_lib.calc_path(ql, ref.rhoref, grid, communicator)

    num_unconverged = b_result.num_unconverged + ql_result.num_unconverged
    _log_unconverged(num_unconverged, 'the statistics')
    return num_unconverged

  def exec_cross(self) -> tf.Tensor:
    """Stores the cross sections of the validated cross section list.

    Returns:
      The number of unconverged saturation adjustments.

    Raises:
      ValueError: If there is no cross section sink.
    """
    if self._cross is None:
      raise ValueError('Cross sections are requested without a sink.')

    cross = self._cross
    num_unconverged = tf.constant(0)
    for name in self.crosslist:
      if name in ('b', 'ql'):
        field = self.get_thermo_field(name)
        cross.simple(field.data, name)
        num_unconverged += field.num_unconverged
      elif name == 'blngrad':
        field = self.get_thermo_field('b')
        cross.lngrad(field.data, self._params.dzi4, name)
        num_unconverged += field.num_unconverged
      elif name == 'qlpath':
        field = self.get_thermo_field('ql')
        cross.path(field.data, self.reference.rhoref, name)
        num_unconverged += field.num_unconverged
      elif name == 'bbot':
        cross.plane(self.get_buoyancy_surf().bbot, name)
      elif name == 'bfluxbot':
        cross.plane(self.get_buoyancy_surf().bfluxbot, name)
    return num_unconverged

  def check_thermo_field(self, name: str) -> bool:
    """Returns whether `get_thermo_field` can derive the field `name`."""
    return name in THERMO_FIELDS

  def get_thermo_field(self, name: str) -> ThermoField:
    """Derives a field from the thermodynamic state.

    If the reference state is updated at every step, its pressure is
    recomputed first from the current mean profiles.

    Args:
      name: 'b' for the buoyancy, 'ql' for the liquid water mixing ratio, or
        'N2' for the squared Brunt-Väisälä frequency.

    Returns:
      A `ThermoField` with the field and the number of unconverged saturation
      adjustments.

    Raises:
      UnsupportedThermoFieldError: If the field can't be derived.
    """
    if not self.check_thermo_field(name):
      raise UnsupportedThermoFieldError(
          f'The moist thermodynamics can\'t provide "{name}". Supported '
          f'fields are {THERMO_FIELDS}.')

    num_unconverged = self._maybe_update_base_state()
    if name == 'b':
      result = self._buoyancy()
      return ThermoField(result.b, num_unconverged + result.num_unconverged)
    if name == 'ql':
      result = self._ql_field()
      return ThermoField(result.ql, num_unconverged + result.num_unconverged)
    n2 = buoyancy.calc_n2(
        self._fields[FieldName.S].data, self.reference.thvref, self._params)
    return ThermoField(n2, num_unconverged)

  def get_buoyancy_surf(self) -> SurfaceBuoyancy:
    """Computes the surface buoyancy and its flux, assuming no liquid water."""
    s = self._fields[FieldName.S]
    qt = self._fields[FieldName.QT]
    bottom = buoyancy.calc_buoyancy_bot(
        s.data, qt.data, s.bot, qt.bot, self.reference.thvref,
        self.reference.thvrefh, self._params)
    return SurfaceBuoyancy(bottom.b_lowest, bottom.bbot,
                           self.get_buoyancy_flux_bot())

  def get_buoyancy_flux_bot(self) -> FlowFieldVal:
    """Computes the surface buoyancy flux, assuming no liquid water."""
    s = self._fields[FieldName.S]
    qt = self._fields[FieldName.QT]
    return buoyancy.calc_buoyancy_flux_bot(
        s.bot, s.fluxbot, qt.bot, qt.fluxbot, self.reference.thvrefh,
        self._params)

  def get_buoyancy_flux_top(self) -> FlowFieldVal:
    """Computes the buoyancy flux through the domain top, assuming no liquid."""
    s = self._fields[FieldName.S]
    qt = self._fields[FieldName.QT]
    return buoyancy.calc_buoyancy_flux_top(
        s.data, s.fluxtop, qt.data, qt.fluxtop, self.reference.thvrefh,
        self._params)

  def get_prog_vars(self) -> List[FieldName]:
    """Returns the prognostic variables of the moist thermodynamics."""
    return list(FieldName)
