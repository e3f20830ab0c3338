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

"""A sink for 2D cross sections of 3D fields.

Cross sections are stored in memory, keyed by the variable name and by the
kind and index of the section:
  * ('xz', j): a vertical slice at the interior y index `j`;
  * ('xy', k): a horizontal slice at the interior z index `k`;
  * ('path', 0): a density weighted vertical integral;
  * ('plane', 0): a 2D field such as a surface value.
Indices count interior cells only, i.e. ghost cells are not included.
"""

from typing import Dict, Sequence, Tuple

from absl import logging
from moist_lm.communication import communicator as communicator_lib
from moist_lm.communication import halo_exchange
from moist_lm.numerics import interpolation
from moist_lm.utility import common_ops
from moist_lm.utility import grid_parametrization
from moist_lm.utility import types
import numpy as np
import tensorflow as tf

FlowFieldVal = types.FlowFieldVal
Profile = types.Profile
GridParametrization = grid_parametrization.GridParametrization

SectionKey = Tuple[str, int]


class CrossSections:
  """Stores the cross sections of the fields requested at run time."""

  def __init__(
      self,
      grid: GridParametrization,
      communicator: communicator_lib.Communicator,
      jxz: Sequence[int] = (),
      kxy: Sequence[int] = (),
  ):
    """Initializes the sink.

    Args:
      grid: The grid parametrization.
      communicator: The context for the halo exchange.
      jxz: The interior y indices of the xz cross sections.
      kxy: The interior z indices of the xy cross sections.

    Raises:
      ValueError: If an index is outside the domain.
    """
    for j in jxz:
      if not 0 <= j < grid.jtot:
        raise ValueError(f'xz cross section at j = {j} is outside [0, '
                         f'{grid.jtot}).')
    for k in kxy:
      if not 0 <= k < grid.ktot:
        raise ValueError(f'xy cross section at k = {k} is outside [0, '
                         f'{grid.ktot}).')

    self._grid = grid
    self._communicator = communicator
    self.jxz = list(jxz)
    self.kxy = list(kxy)
    self.sections: Dict[str, Dict[SectionKey, tf.Tensor]] = {}
    logging.info('Cross sections at jxz = %s, kxy = %s.', self.jxz, self.kxy)

  def _store(self, name: str, key: SectionKey, data: tf.Tensor) -> None:
    self.sections.setdefault(name, {})[key] = data

  def simple(self, data: FlowFieldVal, name: str) -> None:
    """Stores the xz and xy cross sections of a 3D field."""
    grid = self._grid
    interior = common_ops.strip_horizontal_halos(data, grid)
    for j in self.jxz:
      self._store(name, ('xz', j), interior[grid.kstart:grid.kend, :, j])
    for k in self.kxy:
      self._store(name, ('xy', k), interior[grid.kstart + k])

  def lngrad(self, data: FlowFieldVal, dzi4: Profile, name: str) -> None:
    """Stores the cross sections of the logarithm of the gradient magnitude.

    The horizontal derivatives use the 4th order centered stencil. The
    vertical derivative is the difference of the 4th order interpolated half
    level values. Both require two ghost cells.

    Args:
      data: A 3D field at full levels.
      dzi4: The inverse of the 4th order grid spacing at full levels.
      name: The name of the cross section.

    Raises:
      ValueError: If the grid has fewer than 2 ghost cells.
    """
    grid = self._grid
    if grid.halo_width < 2:
      raise ValueError('The gradient cross section requires a 4th order grid.')

    h = grid.halo_width
    ks, ke = grid.kstart, grid.kend
    data = halo_exchange.inplace_periodic_halo_exchange(
        data, h, self._communicator)

    dfdx = interpolation.centered_gradient_4th(data, 0, grid.dx, h)[:, :, h:-h]
    dfdy = interpolation.centered_gradient_4th(data, 1, grid.dy, h)[:, h:-h, :]
    fh = interpolation.half_level_values(data, 4, ks, ke + 1)
    dfdz = (fh[1:] - fh[:-1]) * common_ops.as_profile(dzi4, data.dtype)[ks:ke]
    dfdz = common_ops.strip_horizontal_halos(dfdz, grid)

    magnitude = tf.math.sqrt(dfdx[ks:ke]**2 + dfdy[ks:ke]**2 + dfdz**2)
    lngrad = tf.math.log(
        tf.math.maximum(magnitude, np.finfo(types.NP_DTYPE).tiny))

    lngrad = common_ops.pad_horizontal(
        tf.pad(lngrad, [[ks, grid.kcells - ke], [0, 0], [0, 0]]), grid)
    self.simple(lngrad, name)

  def path(self, data: FlowFieldVal, rhoref: Profile, name: str) -> None:
    """Stores the density weighted vertical integral of a 3D field."""
    grid = self._grid
    ks, ke = grid.kstart, grid.kend
    weight = common_ops.as_profile(rhoref, data.dtype) * common_ops.as_profile(
        grid.dz, data.dtype)
    interior = common_ops.strip_horizontal_halos(weight * data, grid)
    self._store(name, ('path', 0), tf.math.reduce_sum(interior[ks:ke], axis=0))

  def plane(self, data: FlowFieldVal, name: str) -> None:
    """Stores the interior of a 2D field with shape [nx, ny]."""
    grid = self._grid
    self._store(name, ('plane', 0),
                data[grid.istart:grid.iend, grid.jstart:grid.jend])
