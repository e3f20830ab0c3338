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

"""Helper library for filling ghost cells of 3D fields.

Horizontal ghost cells are periodic and filled through a `Communicator`, since
the domain is decomposed along x. Vertical ghost cells are filled locally from
boundary conditions at the surface and at the domain top.
"""

import enum
from typing import Optional

from moist_lm.communication import communicator as communicator_lib
from moist_lm.utility import types
import tensorflow as tf

FlowFieldVal = types.FlowFieldVal


class BCType(enum.Enum):
  """The type of the vertical boundary condition."""
  # The value at the boundary face is prescribed.
  DIRICHLET = 1
  # The gradient across the boundary face is zero.
  NEUMANN = 2


def inplace_periodic_halo_exchange(
    f: FlowFieldVal,
    halo_width: int,
    communicator: communicator_lib.Communicator,
) -> FlowFieldVal:
  """Fills the horizontal ghost cells of `f` periodically.

  Args:
    f: A 3D tensor with shape [nz, nx, ny] including ghost cells.
    halo_width: The number of ghost cells on each side in x and y.
    communicator: The context that exchanges the x-boundary strips with the
      neighboring sub-domains.

  Returns:
    A copy of `f` with the horizontal ghost cells filled. The vertical ghost
    cells are untouched.
  """
  h = halo_width
  interior_x = f[:, h:-h, :]
  low_halo, high_halo = communicator.exchange_x(
      interior_x[:, :h, :], interior_x[:, -h:, :]
  )
  f = tf.concat([low_halo, interior_x, high_halo], axis=1)

  # The domain is not decomposed along y.
  interior_y = f[:, :, h:-h]
  return tf.concat(
      [interior_y[:, :, -h:], interior_y, interior_y[:, :, :h]], axis=2
  )


def apply_vertical_bc(
    f: FlowFieldVal,
    halo_width: int,
    bot: Optional[tf.Tensor] = None,
    bot_type: BCType = BCType.DIRICHLET,
    top: Optional[tf.Tensor] = None,
    top_type: BCType = BCType.NEUMANN,
) -> FlowFieldVal:
  """Fills the vertical ghost cells of `f` from boundary conditions.

  A Dirichlet condition prescribes the value at the boundary face, which is
  imposed by a linear (1 ghost cell) or cubic (2 ghost cells) extrapolation
  through the boundary value. A Neumann condition here is always
  homogeneous, which mirrors the interior values into the ghost cells.

  Args:
    f: A 3D tensor with shape [nz, nx, ny] including ghost cells.
    halo_width: The number of ghost cells at each vertical end, 1 or 2.
    bot: The 2D surface value with shape [nx, ny]. Required if `bot_type` is
      `DIRICHLET`.
    bot_type: The type of the boundary condition at the surface.
    top: The 2D value at the domain top with shape [nx, ny]. Required if
      `top_type` is `DIRICHLET`.
    top_type: The type of the boundary condition at the domain top.

  Returns:
    A copy of `f` with the vertical ghost cells filled.

  Raises:
    ValueError: If a Dirichlet condition is requested without a value, or the
      halo width is not 1 or 2.
  """
  if halo_width not in (1, 2):
    raise ValueError(f'Halo width must be 1 or 2, but {halo_width} is given.')

  h = halo_width
  interior = f[h:-h]

  def dirichlet_ghosts(value, first, second):
    """Returns ghost planes ordered outward from the boundary face."""
    if h == 1:
      return [2.0 * value - first]
    return [
        8.0 / 3.0 * value - 2.0 * first + 1.0 / 3.0 * second,
        8.0 * value - 9.0 * first + 2.0 * second,
    ]

  def ghosts(bc_type, value, near_planes):
    if bc_type == BCType.DIRICHLET:
      if value is None:
        raise ValueError('A Dirichlet boundary condition requires a value.')
      return dirichlet_ghosts(value, near_planes[0], near_planes[1])
    return [near_planes[n] for n in range(h)]

  lower = ghosts(bot_type, bot, [interior[0], interior[1]])
  upper = ghosts(top_type, top, [interior[-1], interior[-2]])

  lower_planes = [plane[tf.newaxis, ...] for plane in reversed(lower)]
  upper_planes = [plane[tf.newaxis, ...] for plane in upper]
  return tf.concat(lower_planes + [interior] + upper_planes, axis=0)
