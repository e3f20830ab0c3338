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

"""A library for the parametrization of the staggered structured grid.

The vertical grid is staggered: scalars live at full levels `z` (cell centers)
and the vertical velocity lives at half levels `zh` (cell faces). Half level
`k` is the lower face of the cell centered at full level `k`, so `zh[kstart]`
is the surface and `zh[kend]` is the domain top. All vertical arrays have
length `kcells` and include `halo_width` ghost cells below and above the
physical domain. The horizontal domain is periodic and decomposed along x into
`npx` sub-domains of equal size.
"""

from typing import Sequence

from absl import logging
from moist_lm.base import parameters_schema
from moist_lm.numerics import interpolation
from moist_lm.utility import types
import numpy as np

from google.protobuf import text_format

_NP_DTYPE = types.NP_DTYPE


def params_from_text_proto(
    text_proto: str) -> parameters_schema.GridParameters:
  """Returns a `GridParameters` protobuf from a text-formatted proto."""
  return text_format.Parse(text_proto, parameters_schema.GridParameters())


def _halo_width_from_spatial_order(spatial_order: int) -> int:
  """Number of ghost cells required by the interpolation stencils."""
  if spatial_order == 2:
    return 1
  if spatial_order == 4:
    return 2
  raise ValueError(
      f'Spatial order must be 2 or 4, but {spatial_order} is provided.'
  )


class GridParametrization(object):
  """Holds the index ranges and the vertical coordinates of the grid."""

  def __init__(self, params: parameters_schema.GridParameters):
    """Creates an object from protobuf.

    Args:
      params: An instance of the `GridParameters` proto.

    Raises:
      ValueError: If the spatial order is not 2 or 4, if `itot` is not
        divisible by `npx`, or if the size of the explicit vertical grid
        differs from `ktot`.
    """
    self.grid_params_proto = params
    self.spatial_order = params.spatial_order
    self.halo_width = _halo_width_from_spatial_order(self.spatial_order)

    self.itot = params.itot
    self.jtot = params.jtot
    self.ktot = params.ktot
    self.xsize = params.xsize
    self.ysize = params.ysize
    self.zsize = params.zsize
    self.npx = params.npx

    if self.npx <= 0 or self.itot % self.npx != 0:
      raise ValueError(
          f'`itot` ({self.itot}) must be divisible by `npx` ({self.npx}).'
      )

    self.dx = self.xsize / self.itot
    self.dy = self.ysize / self.jtot

    # Sizes of the local sub-domain.
    self.imax = self.itot // self.npx
    self.jmax = self.jtot
    self.kmax = self.ktot

    self.igc = self.jgc = self.kgc = self.halo_width
    self.icells = self.imax + 2 * self.igc
    self.jcells = self.jmax + 2 * self.jgc
    self.kcells = self.kmax + 2 * self.kgc

    self.istart, self.iend = self.igc, self.igc + self.imax
    self.jstart, self.jend = self.jgc, self.jgc + self.jmax
    self.kstart, self.kend = self.kgc, self.kgc + self.kmax

    if params.z:
      if len(params.z) != self.ktot:
        raise ValueError(
            f'The explicit vertical grid has {len(params.z)} levels but '
            f'`ktot` is {self.ktot}.'
        )
      z_interior = np.array(params.z, dtype=_NP_DTYPE)
    else:
      dz = self.zsize / self.ktot
      z_interior = (np.arange(self.ktot, dtype=_NP_DTYPE) + 0.5) * dz

    self._build_vertical_grid(z_interior)

    logging.info('Created grid: %s', self)

  def _build_vertical_grid(self, z_interior: Sequence[float]):
    """Computes full and half level heights and the grid spacings."""
    kstart, kend, kcells = self.kstart, self.kend, self.kcells
    zsize = self.zsize

    z = np.zeros(kcells, dtype=_NP_DTYPE)
    zh = np.zeros(kcells, dtype=_NP_DTYPE)
    z[kstart:kend] = z_interior

    # Ghost cells are mirrored about the surface and the domain top.
    for n in range(1, self.kgc + 1):
      z[kstart - n] = -z[kstart + n - 1]
      z[kend + n - 1] = 2.0 * zsize - z[kend - n]

    if self.spatial_order == 2:
      for k in range(kstart + 1, kend):
        zh[k] = interpolation.interp2(z[k - 1], z[k])
    else:
      for k in range(kstart + 1, kend):
        zh[k] = interpolation.interp4(z[k - 2], z[k - 1], z[k], z[k + 1])
    zh[kstart] = 0.0
    zh[kend] = zsize
    for n in range(1, self.kgc + 1):
      zh[kstart - n] = -zh[kstart + n]
    for n in range(1, self.kgc):
      zh[kend + n] = 2.0 * zsize - zh[kend - n]

    dz = np.zeros(kcells, dtype=_NP_DTYPE)
    dzh = np.zeros(kcells, dtype=_NP_DTYPE)
    dz[:-1] = zh[1:] - zh[:-1]
    dz[-1] = dz[-2]
    dzh[1:] = z[1:] - z[:-1]
    dzh[0] = dzh[1]

    self.z = z
    self.zh = zh
    self.dz = dz
    self.dzh = dzh
    self.dzi = 1.0 / dz
    self.dzhi = 1.0 / dzh

    # The 4th order inverse grid spacings use the same stencil as the
    # gradient operator so that the derivative of `z` is exactly 1.
    self.dzi4 = self.dzi.copy()
    self.dzhi4 = self.dzhi.copy()
    if self.spatial_order == 4:
      for k in range(kstart, kend):
        self.dzi4[k] = 1.0 / interpolation.grad4(
            zh[k - 1], zh[k], zh[k + 1], zh[k + 2]
        )
      for k in range(kstart, kend + 1):
        self.dzhi4[k] = 1.0 / interpolation.grad4(
            z[k - 2], z[k - 1], z[k], z[k + 1]
        )

  def __str__(self):
    return ('itot: {}, jtot: {}, ktot: {}, npx: {}, imax: {}, jmax: {}, '
            'xsize: {}, ysize: {}, zsize: {}, spatial_order: {}, '
            'halo_width: {}'.format(
                self.itot, self.jtot, self.ktot, self.npx, self.imax,
                self.jmax, self.xsize, self.ysize, self.zsize,
                self.spatial_order, self.halo_width))

  @property
  def ijtot(self) -> int:
    """The number of horizontal grid points in the full domain."""
    return self.itot * self.jtot

  @property
  def field_shape(self) -> tuple[int, int, int]:
    """The shape of a local 3D field, [nz, nx, ny], including ghost cells."""
    return (self.kcells, self.icells, self.jcells)

  @property
  def plane_shape(self) -> tuple[int, int]:
    """The shape of a local 2D horizontal slice, including ghost cells."""
    return (self.icells, self.jcells)
