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

"""A registry of the 3D fields the moist thermodynamics operates on."""

import dataclasses
import enum
from typing import Mapping, Optional

from absl import logging
from moist_lm.communication import communicator as communicator_lib
from moist_lm.communication import halo_exchange
from moist_lm.utility import common_ops
from moist_lm.utility import grid_parametrization
from moist_lm.utility import types
import tensorflow as tf

FlowFieldVal = types.FlowFieldVal
GridParametrization = grid_parametrization.GridParametrization

_TF_DTYPE = types.TF_DTYPE


class FieldName(enum.Enum):
  """The prognostic scalars of the moist thermodynamics."""
  # The liquid water potential temperature, in K.
  S = 's'
  # The total water mixing ratio, in kg/kg.
  QT = 'qt'


_DESCRIPTIONS = {
    FieldName.S: ('Liquid water potential temperature', 'K'),
    FieldName.QT: ('Total water mixing ratio', 'kg kg-1'),
}


@dataclasses.dataclass
class Field3d:
  """A 3D field with its boundary values and molecular diffusivity."""
  name: str
  long_name: str
  units: str
  # The field with shape [nz, nx, ny], ghost cells included.
  data: tf.Tensor
  # The value at the surface, with shape [nx, ny].
  bot: tf.Tensor
  # The flux through the surface, with shape [nx, ny].
  fluxbot: tf.Tensor
  # The flux through the domain top, with shape [nx, ny].
  fluxtop: tf.Tensor
  # The molecular diffusivity, in m²/s.
  visc: float = 0.0


class Fields:
  """Owns the prognostic scalars, the vertical velocity and its tendency.

  Fields are immutable tensors, so every update replaces the tensor held in
  the registry.
  """

  def __init__(
      self,
      grid: GridParametrization,
      communicator: communicator_lib.Communicator,
      svisc: Mapping[FieldName, float],
  ):
    """Allocates all fields with zeros.

    Args:
      grid: The grid parametrization.
      communicator: The context for the halo exchange and the reductions.
      svisc: The molecular diffusivity of each prognostic scalar.

    Raises:
      ValueError: If the diffusivity of a prognostic scalar is missing.
    """
    self.grid = grid
    self.communicator = communicator

    zeros = tf.zeros(grid.field_shape, dtype=_TF_DTYPE)
    plane = tf.zeros(grid.plane_shape, dtype=_TF_DTYPE)

    self.sp = {}
    for name in FieldName:
      if name not in svisc:
        raise ValueError(f'The diffusivity of `{name.value}` is missing.')
      long_name, units = _DESCRIPTIONS[name]
      self.sp[name] = Field3d(
          name=name.value,
          long_name=long_name,
          units=units,
          data=zeros,
          bot=plane,
          fluxbot=plane,
          fluxtop=plane,
          visc=svisc[name],
      )
      logging.info('Initialized prognostic field `%s` (%s, %s) with visc %g.',
                   name.value, long_name, units, svisc[name])

    # The vertical velocity and its tendency on half levels.
    self.w = zeros
    self.wt = zeros
    # The eddy viscosity, provided by the turbulence closure if there is one.
    self.evisc: Optional[tf.Tensor] = None

  def __getitem__(self, name: FieldName) -> Field3d:
    return self.sp[name]

  def mean(self, name: FieldName) -> tf.Tensor:
    """Computes the horizontal mean profile of a prognostic scalar."""
    return common_ops.horizontal_mean(
        self.sp[name].data, self.grid, self.communicator)

  def set_vertical_ghosts(self) -> None:
    """Fills the ghost cells of the prognostic scalars.

    The surface value `bot` is imposed as a Dirichlet condition, and the
    gradient at the domain top is zero. The horizontal ghost cells are
    periodic.
    """
    for field in self.sp.values():
      data = halo_exchange.apply_vertical_bc(
          field.data,
          self.grid.halo_width,
          bot=field.bot,
          bot_type=halo_exchange.BCType.DIRICHLET,
          top_type=halo_exchange.BCType.NEUMANN,
      )
      field.data = halo_exchange.inplace_periodic_halo_exchange(
          data, self.grid.halo_width, self.communicator)
