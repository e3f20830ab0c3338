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

"""Library for common operations on 3D fields and vertical profiles."""

from moist_lm.communication import communicator as communicator_lib
from moist_lm.utility import grid_parametrization
from moist_lm.utility import types
import tensorflow as tf

FlowFieldVal = types.FlowFieldVal
Profile = types.Profile

_TF_DTYPE = types.TF_DTYPE


def as_profile(profile: Profile, dtype: tf.DType = _TF_DTYPE) -> tf.Tensor:
  """Converts a vertical profile to a tensor broadcastable to [nz, nx, ny]."""
  return tf.reshape(tf.convert_to_tensor(profile, dtype=dtype), (-1, 1, 1))


def strip_horizontal_halos(
    f: FlowFieldVal,
    grid: grid_parametrization.GridParametrization,
) -> FlowFieldVal:
  """Removes the horizontal ghost cells and keeps all levels."""
  return f[:, grid.istart:grid.iend, grid.jstart:grid.jend]


def local_horizontal_sum(
    f: FlowFieldVal,
    grid: grid_parametrization.GridParametrization,
) -> tf.Tensor:
  """Sums `f` over the interior of the local horizontal sub-domain per level."""
  return tf.math.reduce_sum(strip_horizontal_halos(f, grid), axis=(1, 2))


def horizontal_sum(
    f: FlowFieldVal,
    grid: grid_parametrization.GridParametrization,
    communicator: communicator_lib.Communicator,
) -> tf.Tensor:
  """Sums `f` over the interior of the full horizontal domain per level.

  Args:
    f: A 3D tensor with shape [nz, nx, ny] including ghost cells.
    grid: The grid that defines the interior index range.
    communicator: The context that sums the partial results of all replicas.

  Returns:
    A 1D tensor of length nz.
  """
  return communicator.sum(local_horizontal_sum(f, grid))


def horizontal_mean(
    f: FlowFieldVal,
    grid: grid_parametrization.GridParametrization,
    communicator: communicator_lib.Communicator,
) -> tf.Tensor:
  """Computes the horizontal mean of `f` per level over the full domain.

  Args:
    f: A 3D tensor with shape [nz, nx, ny] including ghost cells.
    grid: The grid that defines the interior index range.
    communicator: The context that sums the partial results of all replicas.

  Returns:
    A 1D tensor of length nz with the mean at every level, including the
    vertical ghost levels.
  """
  return horizontal_sum(f, grid, communicator) / tf.cast(grid.ijtot, f.dtype)


def pad_horizontal(
    f: FlowFieldVal,
    grid: grid_parametrization.GridParametrization,
    value: float = 0.0,
) -> FlowFieldVal:
  """Pads an interior-only field with horizontal ghost cells of `value`."""
  paddings = [[0, 0], [grid.igc, grid.igc], [grid.jgc, grid.jgc]]
  return tf.pad(f, paddings, constant_values=value)
