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

"""Conditional masks of cloudy and buoyant cloud core grid cells.

A mask is a field of 0s and 1s at full levels (`mask`) and half levels
(`maskh`), with the number of 1s in the interior of the full horizontal domain
at each level (`nmask`, `nmaskh`). The counts at the half levels of the
surface and of the domain top are 0 since there is no flux through the rigid
boundaries.
"""

import collections
from typing import Optional

from moist_lm.communication import communicator as communicator_lib
from moist_lm.communication import halo_exchange
from moist_lm.utility import common_ops
from moist_lm.utility import grid_parametrization
from moist_lm.utility import types
import numpy as np
import tensorflow as tf

FlowFieldVal = types.FlowFieldVal
Profile = types.Profile
GridParametrization = grid_parametrization.GridParametrization

MaskResult = collections.namedtuple(
    'MaskResult', ('mask', 'maskh', 'nmask', 'nmaskh'))


def _build_mask(
    full: tf.Tensor,
    half: tf.Tensor,
    grid: GridParametrization,
    communicator: communicator_lib.Communicator,
) -> MaskResult:
  """Pads the predicates to fields, exchanges halos and reduces the counts.

  Args:
    full: The boolean predicate at full levels `kstart <= k < kend` on the
      horizontal interior.
    half: The boolean predicate at half levels `kstart <= k <= kend` on the
      horizontal interior.
    grid: The grid parametrization.
    communicator: The context for the halo exchange and the reduction.

  Returns:
    The `MaskResult`.
  """
  ks, ke, kcells = grid.kstart, grid.kend, grid.kcells
  dtype = types.TF_DTYPE

  mask = tf.pad(tf.cast(full, dtype), [[ks, kcells - ke], [0, 0], [0, 0]])
  maskh = tf.pad(
      tf.cast(half, dtype), [[ks, kcells - ke - 1], [0, 0], [0, 0]])
  mask = common_ops.pad_horizontal(mask, grid)
  maskh = common_ops.pad_horizontal(maskh, grid)

  nmask = common_ops.horizontal_sum(mask, grid, communicator)
  nmaskh = common_ops.horizontal_sum(maskh, grid, communicator)

  boundary = np.ones(kcells, dtype=types.NP_DTYPE)
  boundary[ks] = 0.0
  boundary[ke] = 0.0
  nmaskh = nmaskh * boundary

  mask = halo_exchange.inplace_periodic_halo_exchange(
      mask, grid.halo_width, communicator)
  maskh = halo_exchange.inplace_periodic_halo_exchange(
      maskh, grid.halo_width, communicator)

  def to_count(n):
    return tf.cast(tf.math.round(n), tf.int32)

  return MaskResult(mask, maskh, to_count(nmask), to_count(nmaskh))


def calc_mask_ql(
    ql: FlowFieldVal,
    grid: GridParametrization,
    communicator: communicator_lib.Communicator,
) -> MaskResult:
  """Computes the mask of cells with liquid water.

  A full level cell is cloudy if `ql > 0`. A half level cell is cloudy if the
  sum of `ql` at the two adjacent full levels is positive.

  Args:
    ql: The liquid water mixing ratio field, vertical ghost cells included.
    grid: The grid parametrization.
    communicator: The context for the halo exchange and the reduction.

  Returns:
    The `MaskResult` of the cloud mask.
  """
  return calc_mask_qlcore(ql, None, None, grid, communicator)


def calc_mask_qlcore(
    ql: FlowFieldVal,
    b: Optional[FlowFieldVal],
    bmean: Optional[Profile],
    grid: GridParametrization,
    communicator: communicator_lib.Communicator,
) -> MaskResult:
  """Computes the mask of cloudy cells that are more buoyant than the mean.

  Args:
    ql: The liquid water mixing ratio field, vertical ghost cells included.
    b: The buoyancy field. If `None`, the buoyancy condition is not applied
      and the result is the cloud mask.
    bmean: The horizontal mean of `b` at full levels.
    grid: The grid parametrization.
    communicator: The context for the halo exchange and the reduction.

  Returns:
    The `MaskResult` of the cloud core mask.
  """
  ks, ke = grid.kstart, grid.kend
  ql = common_ops.strip_horizontal_halos(ql, grid)

  full = ql[ks:ke] > 0.0
  half = (ql[ks - 1:ke] + ql[ks:ke + 1]) > 0.0

  if b is not None:
    b = common_ops.strip_horizontal_halos(b, grid)
    b_anomaly = b - common_ops.as_profile(bmean, b.dtype)
    full = tf.logical_and(full, b_anomaly[ks:ke] > 0.0)
    half = tf.logical_and(
        half, (b_anomaly[ks - 1:ke] + b_anomaly[ks:ke + 1]) > 0.0)

  return _build_mask(full, half, grid, communicator)
