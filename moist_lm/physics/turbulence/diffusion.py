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
"""The diffusivity exposed by the active diffusion scheme.

The thermodynamics only needs to know the diffusivity of the scalars to
diagnose diffusive fluxes. A large-eddy closure provides a spatially varying
eddy viscosity 𝜈ₜ, and the eddy diffusivity of scalars is 𝜈ₜ / Prₜ. Without a
closure the constant molecular diffusivity of each scalar is used.
"""

import abc
from typing import Optional

from absl import logging
from moist_lm.base import fields as fields_lib
from moist_lm.base import parameters_schema
import tensorflow as tf

FieldName = fields_lib.FieldName


class DiffusionModel(abc.ABC):
  """An interface for the diffusivity of the active diffusion scheme."""

  @property
  @abc.abstractmethod
  def provides_eddy_diffusivity(self) -> bool:
    """Whether the scheme provides a spatially varying eddy viscosity."""

  @property
  @abc.abstractmethod
  def turbulent_prandtl(self) -> float:
    """The turbulent Prandtl number."""

  @abc.abstractmethod
  def eddy_viscosity(self, fields: fields_lib.Fields) -> Optional[tf.Tensor]:
    """Returns the eddy viscosity field, or `None` if there is none."""

  def diffusivity(self, fields: fields_lib.Fields, name: FieldName) -> float:
    """Returns the molecular diffusivity of a prognostic scalar."""
    return fields[name].visc


class Smagorinsky2(DiffusionModel):
  """The 2nd order Smagorinsky closure, which provides an eddy viscosity."""

  def __init__(self, tpr: float):
    if tpr <= 0.0:
      raise ValueError(
          f'The turbulent Prandtl number must be positive, but is {tpr}.')
    self._tpr = tpr

  @property
  def provides_eddy_diffusivity(self) -> bool:
    return True

  @property
  def turbulent_prandtl(self) -> float:
    return self._tpr

  def eddy_viscosity(self, fields: fields_lib.Fields) -> tf.Tensor:
    """Returns the eddy viscosity computed by the closure.

    Args:
      fields: The field registry that holds the eddy viscosity.

    Returns:
      The eddy viscosity field.

    Raises:
      ValueError: If the eddy viscosity has not been computed.
    """
    if fields.evisc is None:
      raise ValueError(
          'The eddy viscosity is required by the Smagorinsky scheme but has '
          'not been computed.')
    return fields.evisc


class ConstantDiffusion(DiffusionModel):
  """A direct numerical simulation with constant molecular diffusivities."""

  @property
  def provides_eddy_diffusivity(self) -> bool:
    return False

  @property
  def turbulent_prandtl(self) -> float:
    return 1.0

  def eddy_viscosity(self, fields: fields_lib.Fields) -> None:
    del fields
    return None


def diffusion_factory(
    params: parameters_schema.DiffusionParameters) -> DiffusionModel:
  """Creates the diffusion model selected in the configuration.

  Args:
    params: The diffusion section of the configuration.

  Returns:
    A `Smagorinsky2` model for the `smag2` scheme, or a `ConstantDiffusion`
    model for the `dns` scheme.

  Raises:
    ValueError: If the scheme is unknown.
  """
  if params.scheme == 'smag2':
    model = Smagorinsky2(params.tpr)
  elif params.scheme == 'dns':
    model = ConstantDiffusion()
  else:
    raise ValueError(
        f'Unknown diffusion scheme "{params.scheme}". Supported schemes are '
        '"smag2" and "dns".')
  logging.info('Using the "%s" diffusion scheme.', params.scheme)
  return model
