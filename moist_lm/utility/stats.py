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
"""A library for conditionally sampled vertical profiles and time series.

Profiles are sampled under a mask: a field of 0s and 1s at full levels and
half levels, with the number of selected cells at each level. A masked mean is
the sum of the selected values divided by the number of selected cells; levels
without selected cells get 0. All operators return profiles of length `kcells`
that are 0 outside the levels they define.
"""

import dataclasses
from typing import Dict, Iterable, Optional

from absl import logging
from moist_lm.communication import communicator as communicator_lib
from moist_lm.numerics import interpolation
from moist_lm.physics.atmosphere import cloud_mask
from moist_lm.utility import common_ops
from moist_lm.utility import grid_parametrization
from moist_lm.utility import types
import numpy as np
import tensorflow as tf

FlowFieldVal = types.FlowFieldVal
Profile = types.Profile
GridParametrization = grid_parametrization.GridParametrization
Communicator = communicator_lib.Communicator
MaskResult = cloud_mask.MaskResult

_TF_DTYPE = types.TF_DTYPE

DEFAULT_MASK = 'default'


@dataclasses.dataclass
class Variable:
  """The description of a sampled quantity."""
  name: str
  long_name: str
  units: str
  # 'z' for full levels, 'zh' for half levels, '' for time series.
  zloc: str = ''


@dataclasses.dataclass
class Mask:
  """The profiles and time series sampled under one mask."""
  name: str
  profs: Dict[str, tf.Tensor] = dataclasses.field(default_factory=dict)
  tseries: Dict[str, tf.Tensor] = dataclasses.field(default_factory=dict)


def _pad_levels(f: FlowFieldVal, k_lo: int, kcells: int) -> FlowFieldVal:
  """Places levels starting at `k_lo` in a field of `kcells` levels."""
  n = f.get_shape().as_list()[0]
  return tf.pad(f, [[k_lo, kcells - k_lo - n], [0, 0], [0, 0]])


def _masked_mean(
    f: FlowFieldVal,
    mask: FlowFieldVal,
    nmask: tf.Tensor,
    grid: GridParametrization,
    communicator: Communicator,
) -> tf.Tensor:
  total = common_ops.horizontal_sum(f * mask, grid, communicator)
  return tf.math.divide_no_nan(total, tf.cast(nmask, total.dtype))


def calc_mean(
    f: FlowFieldVal,
    mask: FlowFieldVal,
    nmask: tf.Tensor,
    grid: GridParametrization,
    communicator: Communicator,
    offset: float = 0.0,
) -> tf.Tensor:
  """Computes the masked mean of `f + offset` at every level."""
  return _masked_mean(f + offset, mask, nmask, grid, communicator)


def calc_moment(
    f: FlowFieldVal,
    fmean: Profile,
    power: int,
    mask: FlowFieldVal,
    nmask: tf.Tensor,
    grid: GridParametrization,
    communicator: Communicator,
) -> tf.Tensor:
  """Computes the masked central moment of order `power` at every level."""
  anomaly = f - common_ops.as_profile(fmean, f.dtype)
  return _masked_mean(anomaly**power, mask, nmask, grid, communicator)


def calc_grad_2nd(
    f: FlowFieldVal,
    dzhi: Profile,
    maskh: FlowFieldVal,
    nmaskh: tf.Tensor,
    grid: GridParametrization,
    communicator: Communicator,
) -> tf.Tensor:
  """Computes the masked mean vertical gradient at half levels, 2nd order."""
  ks, ke = grid.kstart, grid.kend
  grad = interpolation.half_level_gradient(f, dzhi, 2, ks, ke + 1)
  return _masked_mean(
      _pad_levels(grad, ks, grid.kcells), maskh, nmaskh, grid, communicator)


def calc_grad_4th(
    f: FlowFieldVal,
    dzhi4: Profile,
    maskh: FlowFieldVal,
    nmaskh: tf.Tensor,
    grid: GridParametrization,
    communicator: Communicator,
) -> tf.Tensor:
  """Computes the masked mean vertical gradient at half levels, 4th order."""
  ks, ke = grid.kstart, grid.kend
  grad = interpolation.half_level_gradient(f, dzhi4, 4, ks, ke + 1)
  return _masked_mean(
      _pad_levels(grad, ks, grid.kcells), maskh, nmaskh, grid, communicator)


def calc_flux_2nd(
    f: FlowFieldVal,
    fmean: Profile,
    w: FlowFieldVal,
    maskh: FlowFieldVal,
    nmaskh: tf.Tensor,
    grid: GridParametrization,
    communicator: Communicator,
) -> tf.Tensor:
  """Computes the masked turbulent flux w'f' at half levels, 2nd order.

  The anomalies are taken with respect to the mean of `f` and the masked mean
  of `w`.

  Args:
    f: A field at full levels.
    fmean: The mean profile of `f` at full levels.
    w: The vertical velocity at half levels.
    maskh: The mask at half levels.
    nmaskh: The number of selected cells at each half level.
    grid: The grid parametrization.
    communicator: The context for the reductions.

  Returns:
    The flux profile at half levels `kstart <= k <= kend`.
  """
  ks, ke, kcells = grid.kstart, grid.kend, grid.kcells
  wmean = _masked_mean(w, maskh, nmaskh, grid, communicator)
  fh = interpolation.half_level_values(f, 2, ks, ke + 1)
  fmeanh = interpolation.half_level_values(
      common_ops.as_profile(fmean, f.dtype), 2, ks, ke + 1)
  flux = (fh - fmeanh) * (w[ks:ke + 1] -
                          common_ops.as_profile(wmean)[ks:ke + 1])
  return _masked_mean(
      _pad_levels(flux, ks, kcells), maskh, nmaskh, grid, communicator)


def calc_flux_4th(
    f: FlowFieldVal,
    w: FlowFieldVal,
    maskh: FlowFieldVal,
    nmaskh: tf.Tensor,
    grid: GridParametrization,
    communicator: Communicator,
) -> tf.Tensor:
  """Computes the masked advective flux w f at half levels, 4th order."""
  ks, ke = grid.kstart, grid.kend
  flux = interpolation.half_level_values(f, 4, ks, ke + 1) * w[ks:ke + 1]
  return _masked_mean(
      _pad_levels(flux, ks, grid.kcells), maskh, nmaskh, grid, communicator)


def calc_diff_2nd(
    f: FlowFieldVal,
    evisc: FlowFieldVal,
    dzhi: Profile,
    fluxbot: FlowFieldVal,
    fluxtop: FlowFieldVal,
    tpr: float,
    maskh: FlowFieldVal,
    nmaskh: tf.Tensor,
    grid: GridParametrization,
    communicator: Communicator,
) -> tf.Tensor:
  """Computes the masked diffusive flux with an eddy diffusivity.

  The flux at interior half levels is -𝜈ₜ / Prₜ ∂f/∂z with the eddy viscosity
  interpolated to the half level. The fluxes at the surface and at the domain
  top are the prescribed boundary fluxes.

  Args:
    f: A field at full levels.
    evisc: The eddy viscosity at full levels.
    dzhi: The inverse of the distance between full levels.
    fluxbot: The flux of `f` through the surface, with shape [nx, ny].
    fluxtop: The flux of `f` through the domain top, with shape [nx, ny].
    tpr: The turbulent Prandtl number.
    maskh: The mask at half levels.
    nmaskh: The number of selected cells at each half level.
    grid: The grid parametrization.
    communicator: The context for the reductions.

  Returns:
    The diffusive flux profile at half levels `kstart <= k <= kend`.
  """
  ks, ke = grid.kstart, grid.kend
  interior = -interpolation.half_level_values(evisc, 2, ks + 1, ke) / tpr * (
      interpolation.half_level_gradient(f, dzhi, 2, ks + 1, ke))
  flux = tf.concat(
      [fluxbot[tf.newaxis, ...], interior, fluxtop[tf.newaxis, ...]], axis=0)
  return _masked_mean(
      _pad_levels(flux, ks, grid.kcells), maskh, nmaskh, grid, communicator)


def calc_diff_4th(
    f: FlowFieldVal,
    dzhi4: Profile,
    visc: float,
    maskh: FlowFieldVal,
    nmaskh: tf.Tensor,
    grid: GridParametrization,
    communicator: Communicator,
) -> tf.Tensor:
  """Computes the masked diffusive flux with a constant diffusivity."""
  ks, ke = grid.kstart, grid.kend
  flux = -visc * interpolation.half_level_gradient(
      f, dzhi4, grid.spatial_order, ks, ke + 1)
  return _masked_mean(
      _pad_levels(flux, ks, grid.kcells), maskh, nmaskh, grid, communicator)


def add_fluxes(turbulent: tf.Tensor, diffusive: tf.Tensor) -> tf.Tensor:
  return turbulent + diffusive


def calc_count(
    f: FlowFieldVal,
    mask: FlowFieldVal,
    threshold: float,
    grid: GridParametrization,
    communicator: Communicator,
) -> tf.Tensor:
  """Computes the fraction of the domain where `f > threshold` in the mask."""
  selected = tf.cast(f > threshold, f.dtype) * mask
  total = common_ops.horizontal_sum(selected, grid, communicator)
  return total / tf.cast(grid.ijtot, total.dtype)


def calc_cover(
    f: FlowFieldVal,
    threshold: float,
    grid: GridParametrization,
    communicator: Communicator,
) -> tf.Tensor:
  """Computes the fraction of columns where `f > threshold` at any level."""
  ks, ke = grid.kstart, grid.kend
  column = tf.math.reduce_max(
      tf.cast(f[ks:ke] > threshold, f.dtype), axis=0, keepdims=True)
  total = common_ops.horizontal_sum(column, grid, communicator)
  return total[0] / tf.cast(grid.ijtot, total.dtype)


def calc_path(
    f: FlowFieldVal,
    rhoref: Profile,
    grid: GridParametrization,
    communicator: Communicator,
) -> tf.Tensor:
  """Computes the mean density weighted vertical integral of `f`."""
  ks, ke = grid.kstart, grid.kend
  weight = common_ops.as_profile(rhoref, f.dtype) * common_ops.as_profile(
      grid.dz, f.dtype)
  column = tf.math.reduce_sum(
      (weight * f)[ks:ke], axis=0, keepdims=True)
  total = common_ops.horizontal_sum(column, grid, communicator)
  return total[0] / tf.cast(grid.ijtot, total.dtype)


class Statistics:
  """A sink for the profiles and time series of the moist thermodynamics."""

  def __init__(
      self,
      grid: GridParametrization,
      communicator: Communicator,
      enabled: bool = True,
      masks: Optional[Iterable[str]] = None,
  ):
    """Initializes the sink with the default mask and the requested masks.

    Args:
      grid: The grid parametrization.
      communicator: The context for the reductions.
      enabled: Whether statistics are collected.
      masks: The names of the conditional masks in addition to the default
        mask that selects all cells.
    """
    self.grid = grid
    self.communicator = communicator
    self.enabled = enabled

    self.fixed_profs: Dict[str, tf.Tensor] = {}
    self.variables: Dict[str, Variable] = {}
    self.masks: Dict[str, Mask] = {DEFAULT_MASK: Mask(DEFAULT_MASK)}
    for name in masks or ():
      self.masks.setdefault(name, Mask(name))

    self.set_mask(self.default_mask())

  def default_mask(self) -> MaskResult:
    """Returns the mask that selects all cells of the domain."""
    grid = self.grid
    ks, ke, kcells = grid.kstart, grid.kend, grid.kcells
    ones = tf.ones(grid.field_shape, dtype=_TF_DTYPE)
    nmask = np.zeros(kcells, dtype=np.int32)
    nmaskh = np.zeros(kcells, dtype=np.int32)
    nmask[ks:ke] = grid.ijtot
    nmaskh[ks:ke + 1] = grid.ijtot
    return MaskResult(ones, ones, tf.constant(nmask), tf.constant(nmaskh))

  def set_mask(self, mask: MaskResult) -> None:
    """Sets the mask that the subsequent profiles are sampled with."""
    self.mask = mask.mask
    self.maskh = mask.maskh
    self.nmask = mask.nmask
    self.nmaskh = mask.nmaskh

  def add_fixed_prof(self, name: str, long_name: str, units: str, zloc: str,
                     data: Profile) -> None:
    self.variables[name] = Variable(name, long_name, units, zloc)
    self.fixed_profs[name] = tf.convert_to_tensor(data, dtype=_TF_DTYPE)

  def add_prof(self, name: str, long_name: str, units: str,
               zloc: str) -> None:
    """Registers a profile that is sampled under every mask."""
    self.variables[name] = Variable(name, long_name, units, zloc)
    for mask in self.masks.values():
      mask.profs[name] = tf.zeros((self.grid.kcells,), dtype=_TF_DTYPE)

  def add_tseries(self, name: str, long_name: str, units: str) -> None:
    """Registers a time series that is sampled under every mask."""
    self.variables[name] = Variable(name, long_name, units)
    for mask in self.masks.values():
      mask.tseries[name] = tf.constant(0.0, dtype=_TF_DTYPE)

  def get_mask(self, name: str) -> Mask:
    """Returns the sampled data of a mask.

    Args:
      name: The name of the mask.

    Returns:
      The `Mask` that holds the sampled profiles and time series.

    Raises:
      KeyError: If the mask is not registered.
    """
    if name not in self.masks:
      raise KeyError(f'Mask "{name}" is not registered. Available masks: '
                     f'{sorted(self.masks)}.')
    return self.masks[name]

  def log_summary(self, name: str = DEFAULT_MASK) -> None:
    """Logs the time series of a mask."""
    for key, value in sorted(self.get_mask(name).tseries.items()):
      logging.info('[%s] %s = %s', name, key, value)
