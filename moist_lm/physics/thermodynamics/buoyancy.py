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
"""A library for the buoyancy of moist air relative to a reference state.

The buoyancy is computed from the deviation of the virtual potential
temperature from its reference value at the same height:
  b = g (𝜃ᵥ - 𝜃ᵥ,ᵣₑ𝒻) / 𝜃ᵥ,ᵣₑ𝒻,
  𝜃ᵥ = (𝜃ₗ + Lᵥ qₗ / (cₚ Π)) (1 - (1 - Rᵥ / R_d) qₜ - Rᵥ / R_d qₗ).

The field kernels operate on 3D tensors with shape [nz, nx, ny] that include
ghost cells. Only the horizontal interior is evaluated; horizontal ghost cells
of the results are 0. Every kernel that solves the saturation adjustment also
returns the number of grid cells where the Newton iterations did not converge.
"""

import collections

from moist_lm.numerics import interpolation
from moist_lm.physics import constants
from moist_lm.physics.thermodynamics import saturation
from moist_lm.utility import common_ops
from moist_lm.utility import grid_parametrization
from moist_lm.utility import types
import tensorflow as tf

FlowFieldVal = types.FlowFieldVal
Profile = types.Profile
GridParametrization = grid_parametrization.GridParametrization

_TF_DTYPE = types.TF_DTYPE

# The factor of the total water in the virtual potential temperature.
_QT_FACTOR = 1.0 - constants.R_V / constants.R_D
# The factor of the liquid water in the virtual potential temperature.
_QL_FACTOR = constants.R_V / constants.R_D

BuoyancyResult = collections.namedtuple(
    'BuoyancyResult', ('b', 'ql', 'num_unconverged'))

LiquidWaterResult = collections.namedtuple(
    'LiquidWaterResult', ('ql', 'num_unconverged'))

BottomBuoyancy = collections.namedtuple(
    'BottomBuoyancy', ('b_lowest', 'bbot'))


def virtual_potential_temperature(s, qt, ql, ex):
  """Computes the virtual potential temperature 𝜃ᵥ.

  Args:
    s: The liquid water potential temperature [K].
    qt: The total water mixing ratio [kg/kg].
    ql: The liquid water mixing ratio [kg/kg].
    ex: The Exner function.

  Returns:
    (𝜃ₗ + Lᵥ qₗ / (cₚ Π)) (1 - (1 - Rᵥ / R_d) qₜ - Rᵥ / R_d qₗ).
  """
  return (s + constants.LV * ql / (constants.CP * ex)) * (
      1.0 - _QT_FACTOR * qt - _QL_FACTOR * ql)


def buoyancy(p, s, qt, ql, thvref):
  """Computes the buoyancy with the liquid water contribution [m/s²]."""
  thv = virtual_potential_temperature(s, qt, ql, saturation.exner(p))
  return constants.G * (thv - thvref) / thvref


def buoyancy_no_ql(s, qt, thvref):
  """Computes the buoyancy assuming no liquid water is present [m/s²]."""
  return constants.G * (s * (1.0 - _QT_FACTOR * qt) - thvref) / thvref


def buoyancy_flux_no_ql(s, sflux, qt, qtflux, thvref):
  """Computes the buoyancy flux assuming no liquid water is present.

  Args:
    s: The liquid water potential temperature [K].
    sflux: The flux of `s` [K m/s].
    qt: The total water mixing ratio [kg/kg].
    qtflux: The flux of `qt` [kg/kg m/s].
    thvref: The reference virtual potential temperature [K].

  Returns:
    The buoyancy flux [m²/s³].
  """
  return constants.G / thvref * (
      sflux * (1.0 - _QT_FACTOR * qt) - _QT_FACTOR * s * qtflux)


def _interior(f: FlowFieldVal, grid: GridParametrization) -> FlowFieldVal:
  return common_ops.strip_horizontal_halos(f, grid)


def calc_buoyancy(
    s: FlowFieldVal,
    qt: FlowFieldVal,
    pref: Profile,
    thvref: Profile,
    grid: GridParametrization,
    max_iterations: int = saturation.DEFAULT_MAX_ITERATIONS,
    tolerance: float = saturation.DEFAULT_TOLERANCE,
) -> BuoyancyResult:
  """Computes the buoyancy at all levels, including the vertical ghost cells.

  The liquid water is computed with the estimate-then-solve shortcut of
  `saturation.liquid_water`.

  Args:
    s: The liquid water potential temperature field.
    qt: The total water mixing ratio field.
    pref: The reference pressure at full levels.
    thvref: The reference virtual potential temperature at full levels.
    grid: The grid parametrization.
    max_iterations: The maximum number of Newton iterations.
    tolerance: The relative tolerance of the Newton iterations.

  Returns:
    A `BuoyancyResult` with the buoyancy and the liquid water fields.
  """
  p = common_ops.as_profile(pref)
  sat = saturation.liquid_water(
      _interior(s, grid), _interior(qt, grid), p, saturation.exner(p),
      max_iterations, tolerance)
  b = buoyancy(p, _interior(s, grid), _interior(qt, grid), sat.ql,
               common_ops.as_profile(thvref))
  return BuoyancyResult(
      common_ops.pad_horizontal(b, grid),
      common_ops.pad_horizontal(sat.ql, grid),
      sat.num_unconverged,
  )


def calc_ql_field(
    s: FlowFieldVal,
    qt: FlowFieldVal,
    pref: Profile,
    grid: GridParametrization,
    max_iterations: int = saturation.DEFAULT_MAX_ITERATIONS,
    tolerance: float = saturation.DEFAULT_TOLERANCE,
) -> LiquidWaterResult:
  """Computes the liquid water on the interior levels with the full solver.

  Args:
    s: The liquid water potential temperature field.
    qt: The total water mixing ratio field.
    pref: The reference pressure at full levels.
    grid: The grid parametrization.
    max_iterations: The maximum number of Newton iterations.
    tolerance: The relative tolerance of the Newton iterations.

  Returns:
    A `LiquidWaterResult`. The vertical ghost levels of `ql` are 0.
  """
  ks, ke = grid.kstart, grid.kend
  p = common_ops.as_profile(pref)[ks:ke]
  sat = saturation.saturation_adjustment(
      _interior(s, grid)[ks:ke], _interior(qt, grid)[ks:ke], p,
      saturation.exner(p), max_iterations, tolerance)
  ql = tf.pad(sat.ql, [[ks, grid.kcells - ke], [0, 0], [0, 0]])
  return LiquidWaterResult(
      common_ops.pad_horizontal(ql, grid), sat.num_unconverged)


def calc_n2(
    s: FlowFieldVal,
    thvref: Profile,
    grid: GridParametrization,
) -> FlowFieldVal:
  """Computes the squared Brunt-Väisälä frequency N² = g / 𝜃ᵥ,ᵣₑ𝒻 ∂𝜃ₗ/∂z.

  The gradient is the centered difference over two full levels, which is
  available at all levels except the outermost ghost levels where N² is 0.

  Args:
    s: The liquid water potential temperature field.
    thvref: The reference virtual potential temperature at full levels.
    grid: The grid parametrization.

  Returns:
    The N² field [1/s²].
  """
  s = _interior(s, grid)
  thv = common_ops.as_profile(thvref)[1:-1]
  dzi = common_ops.as_profile(grid.dzi)[1:-1]
  n2 = constants.G / thv * 0.5 * (s[2:] - s[:-2]) * dzi
  n2 = tf.pad(n2, [[1, 1], [0, 0], [0, 0]])
  return common_ops.pad_horizontal(n2, grid)


def calc_buoyancy_bot(
    s: FlowFieldVal,
    qt: FlowFieldVal,
    sbot: FlowFieldVal,
    qtbot: FlowFieldVal,
    thvref: Profile,
    thvrefh: Profile,
    grid: GridParametrization,
) -> BottomBuoyancy:
  """Computes the buoyancy at the surface and at the lowest full level.

  No liquid water is assumed at the lowest model level.

  Args:
    s: The liquid water potential temperature field.
    qt: The total water mixing ratio field.
    sbot: The surface value of `s` with shape [nx, ny].
    qtbot: The surface value of `qt` with shape [nx, ny].
    thvref: The reference virtual potential temperature at full levels.
    thvrefh: The reference virtual potential temperature at half levels.
    grid: The grid parametrization.

  Returns:
    A `BottomBuoyancy` with the 2D buoyancy at the lowest full level and at
    the surface.
  """
  ks = grid.kstart
  b_lowest = buoyancy_no_ql(s[ks], qt[ks], thvref[ks])
  bbot = buoyancy_no_ql(sbot, qtbot, thvrefh[ks])
  return BottomBuoyancy(b_lowest, bbot)


def calc_buoyancy_flux_bot(
    sbot: FlowFieldVal,
    sfluxbot: FlowFieldVal,
    qtbot: FlowFieldVal,
    qtfluxbot: FlowFieldVal,
    thvrefh: Profile,
    grid: GridParametrization,
) -> FlowFieldVal:
  """Computes the surface buoyancy flux from the surface fluxes of s and qt."""
  return buoyancy_flux_no_ql(sbot, sfluxbot, qtbot, qtfluxbot,
                             thvrefh[grid.kstart])


def calc_buoyancy_flux_top(
    s: FlowFieldVal,
    sfluxtop: FlowFieldVal,
    qt: FlowFieldVal,
    qtfluxtop: FlowFieldVal,
    thvrefh: Profile,
    grid: GridParametrization,
) -> FlowFieldVal:
  """Computes the buoyancy flux through the domain top, assuming no liquid.

  The values of `s` and `qt` at the top face are interpolated from the last
  interior level and the first ghost level.
  """
  ke = grid.kend
  stop = interpolation.interp2(s[ke - 1], s[ke])
  qttop = interpolation.interp2(qt[ke - 1], qt[ke])
  return buoyancy_flux_no_ql(stop, sfluxtop, qttop, qtfluxtop, thvrefh[ke])


def buoyancy_tendency(
    wt: FlowFieldVal,
    s: FlowFieldVal,
    qt: FlowFieldVal,
    prefh: Profile,
    thvrefh: Profile,
    grid: GridParametrization,
    max_iterations: int = saturation.DEFAULT_MAX_ITERATIONS,
    tolerance: float = saturation.DEFAULT_TOLERANCE,
) -> tuple[FlowFieldVal, tf.Tensor]:
  """Adds the buoyancy to the tendency of the vertical velocity.

  The buoyancy is evaluated at the half levels `kstart < k < kend`, i.e. the
  faces between interior cells. The prognostic scalars are interpolated to the
  half levels with the 2-point (2nd order) or the 4-point (4th order)
  stencil, and the Exner function is evaluated from the half level reference
  pressure. The tendency at the boundary faces is unchanged.

  Args:
    wt: The tendency of the vertical velocity, on half levels.
    s: The liquid water potential temperature field.
    qt: The total water mixing ratio field.
    prefh: The reference pressure at half levels.
    thvrefh: The reference virtual potential temperature at half levels.
    grid: The grid parametrization that selects the spatial order.
    max_iterations: The maximum number of Newton iterations.
    tolerance: The relative tolerance of the Newton iterations.

  Returns:
    A tuple of the updated tendency and the number of cells where the
    saturation adjustment did not converge.
  """
  k_lo, k_hi = grid.kstart + 1, grid.kend
  if k_hi <= k_lo:
    return wt, tf.constant(0)

  sh = interpolation.half_level_values(
      _interior(s, grid), grid.spatial_order, k_lo, k_hi)
  qth = interpolation.half_level_values(
      _interior(qt, grid), grid.spatial_order, k_lo, k_hi)
  ph = common_ops.as_profile(prefh)[k_lo:k_hi]
  exnh = saturation.exner(ph)

  sat = saturation.liquid_water(sh, qth, ph, exnh, max_iterations, tolerance)
  b = buoyancy(ph, sh, qth, sat.ql, common_ops.as_profile(thvrefh)[k_lo:k_hi])

  b = tf.pad(b, [[k_lo, grid.kcells - k_hi], [0, 0], [0, 0]])
  return wt + common_ops.pad_horizontal(b, grid), sat.num_unconverged
