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

"""A library for the interpolation and gradient stencils on a staggered grid.

* An array evaluated on full levels has index k <==> coordinate location z_k
* An array evaluated on half levels has index k <==> coordinate location
  z_{k-1/2}

The scalar stencils accept python floats, numpy arrays and `tf.Tensor`s alike.
The vertical field operators act on 3D tensors with shape [nz, nx, ny].
"""

from typing import TypeVar

from moist_lm.utility import types
import tensorflow as tf

FlowFieldVal = types.FlowFieldVal

T = TypeVar('T')

# Weights of the 4th order interpolation from nodes to faces.
_CI = (-1.0 / 16.0, 9.0 / 16.0, 9.0 / 16.0, -1.0 / 16.0)
# Weights of the 4th order gradient from nodes to faces.
_CG = (1.0 / 24.0, -27.0 / 24.0, 27.0 / 24.0, -1.0 / 24.0)


def interp2(a: T, b: T) -> T:
  """Performs centered 2nd-order interpolation of two neighboring values."""
  return 0.5 * (a + b)


def interp4(a: T, b: T, c: T, d: T) -> T:
  """Performs 4th-order interpolation from 4 nodes to the central face.

    v_face = (-a + 9 b + 9 c - d) / 16

  Args:
    a: The value 3/2 grid spacings below the face.
    b: The value 1/2 grid spacing below the face.
    c: The value 1/2 grid spacing above the face.
    d: The value 3/2 grid spacings above the face.

  Returns:
    The interpolated value at the face.
  """
  return _CI[0] * a + _CI[1] * b + _CI[2] * c + _CI[3] * d


def grad4(a: T, b: T, c: T, d: T) -> T:
  """Computes the 4th-order difference over 4 nodes, not scaled by spacing."""
  return _CG[0] * a + _CG[1] * b + _CG[2] * c + _CG[3] * d


def half_level_values(
    f: FlowFieldVal,
    spatial_order: int,
    k_lo: int,
    k_hi: int,
) -> FlowFieldVal:
  """Interpolates a full-level field to half levels `k_lo <= k < k_hi`.

  Args:
    f: A 3D tensor with shape [nz, nx, ny] evaluated on full levels.
    spatial_order: 2 for the 2-point centered stencil, 4 for the 4-point
      stencil with weights (-1, 9, 9, -1) / 16.
    k_lo: The first half level to evaluate.
    k_hi: One past the last half level to evaluate.

  Returns:
    A 3D tensor with shape [k_hi - k_lo, nx, ny] on half levels.

  Raises:
    ValueError: If `spatial_order` is not 2 or 4.
  """
  if spatial_order == 2:
    return interp2(f[k_lo - 1:k_hi - 1], f[k_lo:k_hi])
  elif spatial_order == 4:
    return interp4(
        f[k_lo - 2:k_hi - 2],
        f[k_lo - 1:k_hi - 1],
        f[k_lo:k_hi],
        f[k_lo + 1:k_hi + 1],
    )
  raise ValueError(
      f'Spatial order must be 2 or 4, but {spatial_order} is provided.'
  )


def half_level_gradient(
    f: FlowFieldVal,
    dzhi: types.Profile,
    spatial_order: int,
    k_lo: int,
    k_hi: int,
) -> FlowFieldVal:
  """Computes the vertical gradient of a full-level field at half levels.

  Args:
    f: A 3D tensor with shape [nz, nx, ny] evaluated on full levels.
    dzhi: The inverse of the distance between full levels (`dzhi` for the 2nd
      order stencil, `dzhi4` for the 4th order stencil).
    spatial_order: The order of the gradient stencil, 2 or 4.
    k_lo: The first half level to evaluate.
    k_hi: One past the last half level to evaluate.

  Returns:
    A 3D tensor with shape [k_hi - k_lo, nx, ny].

  Raises:
    ValueError: If `spatial_order` is not 2 or 4.
  """
  scale = tf.reshape(
      tf.convert_to_tensor(dzhi[k_lo:k_hi], dtype=f.dtype), (-1, 1, 1)
  )
  if spatial_order == 2:
    return (f[k_lo:k_hi] - f[k_lo - 1:k_hi - 1]) * scale
  elif spatial_order == 4:
    return grad4(
        f[k_lo - 2:k_hi - 2],
        f[k_lo - 1:k_hi - 1],
        f[k_lo:k_hi],
        f[k_lo + 1:k_hi + 1],
    ) * scale
  raise ValueError(
      f'Spatial order must be 2 or 4, but {spatial_order} is provided.'
  )


def centered_gradient_4th(f: FlowFieldVal, dim: int, h: float,
                          halo_width: int) -> FlowFieldVal:
  """Computes the 4th-order centered gradient of a collocated field.

    df/dx_i = (f_{i-2} - 8 f_{i-1} + 8 f_{i+1} - f_{i+2}) / (12 h)

  Args:
    f: A 3D tensor with shape [nz, nx, ny].
    dim: The dimension of the gradient, 0 for x and 1 for y.
    h: The grid spacing along `dim`.
    halo_width: The number of ghost cells in `dim`, at least 2.

  Returns:
    The gradient on the interior points along `dim`; the shape along `dim` is
    reduced by `2 * halo_width`.

  Raises:
    ValueError: If `dim` is not 0 or 1, or the halo is narrower than 2.
  """
  if halo_width < 2:
    raise ValueError('The 4th order gradient requires at least 2 ghost cells.')
  axis = {0: 1, 1: 2}.get(dim)
  if axis is None:
    raise ValueError(f'`dim` has to be one of 0 or 1, but {dim} is provided.')

  n = f.shape[axis]

  def shifted(offset):
    begin = [0, 0, 0]
    size = [-1, -1, -1]
    begin[axis] = halo_width + offset
    size[axis] = n - 2 * halo_width
    return tf.slice(f, begin, size)

  return (shifted(-2) - 8.0 * shifted(-1) + 8.0 * shifted(1) -
          shifted(2)) / (12.0 * h)
