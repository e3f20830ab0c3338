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
"""Defines the hydrostatically balanced reference state of moist air.

The reference pressure satisfies the hydrostatic balance in terms of the
Exner function, dΠ/dz = -g / (cₚ 𝜃ᵥ). Integrated over a layer of depth Δz
with a constant virtual potential temperature 𝜃ᵥ this gives
  p₁^(R_d/cₚ) = p₀^(R_d/cₚ) - g pᵣₑ𝒻^(R_d/cₚ) Δz / (cₚ 𝜃ᵥ),
where pᵣₑ𝒻 = 10⁵ Pa. The profiles are marched upward from the surface,
alternating between half and full levels: the virtual potential temperature at
a full level advances the pressure to the half level above, and the one at a
half level advances the pressure to the full level above. At every level the
liquid water is obtained from the saturation adjustment.
"""

import collections
from typing import Optional, Sequence

from absl import logging
from moist_lm.numerics import interpolation
from moist_lm.physics import constants
from moist_lm.physics.thermodynamics import buoyancy
from moist_lm.physics.thermodynamics import saturation
from moist_lm.utility import grid_parametrization
from moist_lm.utility import types
import numpy as np
import tensorflow as tf

GridParametrization = grid_parametrization.GridParametrization
Profile = types.Profile

_TF_DTYPE = types.TF_DTYPE
_NP_DTYPE = types.NP_DTYPE

_RD_CP = constants.R_D / constants.CP

BaseState = collections.namedtuple(
    'BaseState',
    ('pref', 'prefh', 'rho', 'rhoh', 'thv', 'thvh', 'ex', 'exh',
     'num_unconverged'),
)


class HydrostaticIntegrationError(ValueError):
  """Raised when a hydrostatic step would take a power of a non-positive base.

  This happens when the layer is too deep for the given virtual potential
  temperature, i.e. the integrated pressure drop exceeds the pressure at the
  bottom of the layer.
  """


def hydrostatic_pressure(p_below, dz, thv):
  """Integrates the hydrostatic balance over a layer of constant 𝜃ᵥ.

  Args:
    p_below: The pressure at the bottom of the layer [Pa].
    dz: The depth of the layer [m].
    thv: The virtual potential temperature in the layer [K].

  Returns:
    The pressure at the top of the layer.

  Raises:
    HydrostaticIntegrationError: If the power-law base is not positive.
  """
  base = (p_below**_RD_CP -
          constants.G * constants.P0**_RD_CP * dz / (constants.CP * thv))
  value = tf.get_static_value(base)
  if value is not None:
    if np.any(np.asarray(value) <= 0.0):
      raise HydrostaticIntegrationError(
          f'Non-positive base {value} in the hydrostatic integration over '
          f'dz = {dz} with thv = {tf.get_static_value(thv)}.')
  else:
    tf.debugging.assert_positive(
        base, message='Non-positive base in the hydrostatic integration.')
  return base**(1.0 / _RD_CP)


def _surface_and_top_values(
    profile: np.ndarray,
    grid: GridParametrization,
) -> tuple[float, float]:
  """Extrapolates an interior profile linearly to the surface and the top."""
  ks, ke = grid.kstart, grid.kend
  z, zh, dzhi = grid.z, grid.zh, grid.dzhi
  surface = profile[ks] - z[ks] * (profile[ks + 1] - profile[ks]) * dzhi[ks + 1]
  top = profile[ke - 1] + (zh[ke] - z[ke - 1]) * (
      profile[ke - 1] - profile[ke - 2]) * dzhi[ke - 1]
  return surface, top


def fill_profile_ghost_cells(
    interior: Sequence[float],
    grid: GridParametrization,
) -> np.ndarray:
  """Places an interior profile on the grid and fills its ghost cells.

  The ghost cells are mirrored about the values at the surface and at the
  domain top, which are linear extrapolations of the two outermost interior
  levels. With two ghost cells the second one is mirrored about the same
  boundary value.

  Args:
    interior: The profile at the `ktot` interior full levels.
    grid: The grid parametrization.

  Returns:
    A profile of length `kcells`.

  Raises:
    ValueError: If the length of `interior` is not `ktot`.
  """
  if len(interior) != grid.ktot:
    raise ValueError(
        f'The profile has {len(interior)} levels but `ktot` is {grid.ktot}.')

  ks, ke = grid.kstart, grid.kend
  profile = np.zeros(grid.kcells, dtype=_NP_DTYPE)
  profile[ks:ke] = interior

  surface, top = _surface_and_top_values(profile, grid)
  for n in range(grid.kgc):
    profile[ks - 1 - n] = 2.0 * surface - profile[ks + n]
    profile[ke + n] = 2.0 * top - profile[ke - 1 - n]
  return profile


class ReferenceState(object):
  """Holds the reference profiles of the moist atmosphere.

  All profiles have the fixed length `kcells` of the grid and are allocated
  when the object is created. Full level profiles are `pref`, `rhoref`,
  `thvref` and `exnref`; half level profiles are `prefh`, `rhorefh`,
  `thvrefh` and `exnrefh`. `thl0` and `qt0` are the initial profiles of the
  liquid water potential temperature and the total water mixing ratio.
  """

  _PROFILES = ('pref', 'prefh', 'rhoref', 'rhorefh', 'thvref', 'thvrefh',
               'exnref', 'exnrefh', 'thl0', 'qt0')

  def __init__(
      self,
      grid: GridParametrization,
      ps: float,
      max_iterations: int = saturation.DEFAULT_MAX_ITERATIONS,
      tolerance: float = saturation.DEFAULT_TOLERANCE,
  ):
    """Allocates the reference profiles.

    Args:
      grid: The grid parametrization.
      ps: The surface pressure [Pa].
      max_iterations: The maximum number of iterations of the saturation
        adjustment.
      tolerance: The relative tolerance of the saturation adjustment.
    """
    self._grid = grid
    self.ps = ps
    self._max_iterations = max_iterations
    self._tolerance = tolerance
    for name in self._PROFILES:
      setattr(self, name, tf.zeros((grid.kcells,), dtype=_TF_DTYPE))

  def init_profiles(
      self,
      thl: Sequence[float],
      qt: Sequence[float],
  ) -> None:
    """Sets `thl0` and `qt0` from interior profiles, ghost cells included."""
    self.thl0 = tf.constant(
        fill_profile_ghost_cells(thl, self._grid), dtype=_TF_DTYPE)
    self.qt0 = tf.constant(
        fill_profile_ghost_cells(qt, self._grid), dtype=_TF_DTYPE)

  def _interp(self, f: tf.Tensor, k: int) -> tf.Tensor:
    """Interpolates a full level profile to half level `k`."""
    if self._grid.spatial_order == 2:
      return interpolation.interp2(f[k - 1], f[k])
    return interpolation.interp4(f[k - 2], f[k - 1], f[k], f[k + 1])

  def _thermo_state(self, s, qt, p, ex):
    """Computes 𝜃ᵥ and the density after the saturation adjustment."""
    sat = saturation.saturation_adjustment(
        s, qt, p, ex, self._max_iterations, self._tolerance)
    thv = buoyancy.virtual_potential_temperature(s, qt, sat.ql, ex)
    rho = p / (constants.R_D * ex * thv)
    return thv, rho, sat.num_unconverged

  def calc_base_state(
      self,
      thl_mean: Optional[Profile] = None,
      qt_mean: Optional[Profile] = None,
  ) -> BaseState:
    """Computes the hydrostatic base state from mean profiles.

    Args:
      thl_mean: The horizontal mean of the liquid water potential temperature
        at full levels, ghost cells included. `thl0` is used if not provided.
      qt_mean: The horizontal mean of the total water mixing ratio at full
        levels, ghost cells included. `qt0` is used if not provided.

    Returns:
      A `BaseState` with the pressure, density, virtual potential temperature
      and Exner function profiles at full and half levels, and the number of
      unconverged saturation adjustments. No profile of this object is
      modified.

    Raises:
      HydrostaticIntegrationError: If a hydrostatic step is ill-posed.
    """
    grid = self._grid
    ks, ke, kcells = grid.kstart, grid.kend, grid.kcells
    gc = grid.kgc

    thl = tf.reshape(tf.convert_to_tensor(
        self.thl0 if thl_mean is None else thl_mean, dtype=_TF_DTYPE), [-1])
    qt = tf.reshape(tf.convert_to_tensor(
        self.qt0 if qt_mean is None else qt_mean, dtype=_TF_DTYPE), [-1])

    pref = [None] * kcells
    prefh = [None] * kcells
    rho = [None] * kcells
    rhoh = [None] * kcells
    thv = [None] * kcells
    thvh = [None] * kcells
    ex = [None] * kcells
    exh = [None] * kcells
    num_unconverged = []

    # Surface values.
    ps = tf.constant(self.ps, dtype=_TF_DTYPE)
    prefh[ks] = ps
    exh[ks] = saturation.exner(ps)
    thvh[ks], rhoh[ks], n = self._thermo_state(
        self._interp(thl, ks), self._interp(qt, ks), ps, exh[ks])
    num_unconverged.append(n)

    pref[ks] = hydrostatic_pressure(ps, grid.z[ks], thvh[ks])

    for k in range(ks + 1, ke + 1):
      ex[k - 1] = saturation.exner(pref[k - 1])
      thv[k - 1], rho[k - 1], n = self._thermo_state(
          thl[k - 1], qt[k - 1], pref[k - 1], ex[k - 1])
      num_unconverged.append(n)

      prefh[k] = hydrostatic_pressure(prefh[k - 1], grid.dz[k - 1], thv[k - 1])

      exh[k] = saturation.exner(prefh[k])
      thvh[k], rhoh[k], n = self._thermo_state(
          self._interp(thl, k), self._interp(qt, k), prefh[k], exh[k])
      num_unconverged.append(n)

      # The full level pressure above the domain top is a ghost cell.
      if k < ke:
        pref[k] = hydrostatic_pressure(pref[k - 1], grid.dzh[k], thvh[k])

    if gc == 1:
      pref[ks - 1] = 2.0 * prefh[ks] - pref[ks]
      pref[ke] = 2.0 * prefh[ke] - pref[ke - 1]
    else:
      pref[ks - 1] = (8.0 / 3.0 * prefh[ks] - 2.0 * pref[ks] +
                      1.0 / 3.0 * pref[ks + 1])
      pref[ks - 2] = 8.0 * prefh[ks] - 9.0 * pref[ks] + 2.0 * pref[ks + 1]
      pref[ke] = (8.0 / 3.0 * prefh[ke] - 2.0 * pref[ke - 1] +
                  1.0 / 3.0 * pref[ke - 2])
      pref[ke + 1] = 8.0 * prefh[ke] - 9.0 * pref[ke - 1] + 2.0 * pref[ke - 2]

    ghost_levels = list(range(ks)) + list(range(ke, kcells))
    for k in ghost_levels:
      ex[k] = saturation.exner(pref[k])
      thv[k], rho[k], n = self._thermo_state(thl[k], qt[k], pref[k], ex[k])
      num_unconverged.append(n)

    # Half level ghost cells are extrapolated linearly through the boundary.
    for profile in (prefh, rhoh, thvh, exh):
      for k in range(ks):
        profile[k] = 2.0 * profile[ks] - profile[2 * ks - k]
      for k in range(ke + 1, kcells):
        profile[k] = 2.0 * profile[ke] - profile[2 * ke - k]

    return BaseState(
        pref=tf.stack(pref),
        prefh=tf.stack(prefh),
        rho=tf.stack(rho),
        rhoh=tf.stack(rhoh),
        thv=tf.stack(thv),
        thvh=tf.stack(thvh),
        ex=tf.stack(ex),
        exh=tf.stack(exh),
        num_unconverged=tf.math.add_n(num_unconverged),
    )

  def set_base_state(self, state: BaseState) -> None:
    """Replaces all reference profiles by `state`."""
    self.set_pressure(state)
    self.rhoref = state.rho
    self.rhorefh = state.rhoh
    self.thvref = state.thv
    self.thvrefh = state.thvh
    logging.info('Reference state: ps = %f, thvref[kstart] = %s.', self.ps,
                 self.thvref[self._grid.kstart])

  def set_pressure(self, state: BaseState) -> None:
    """Replaces only the pressure and the Exner function profiles."""
    self.pref = state.pref
    self.prefh = state.prefh
    self.exnref = state.ex
    self.exnrefh = state.exh
