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

"""A library for the parameters of a moist thermodynamics simulation."""

from typing import Dict, List

from absl import flags
from absl import logging
from moist_lm.base import fields as fields_lib
from moist_lm.base import parameters_schema
from moist_lm.utility import grid_parametrization
import tensorflow as tf

from google.protobuf import text_format

FieldName = fields_lib.FieldName

flags.DEFINE_string(
    'config_filepath', None,
    'The full path to the text proto file that stores all input parameters.'
)

FLAGS = flags.FLAGS


def parse_text_proto(text_proto: str) -> parameters_schema.MoistLMParameters:
  """Parses a text proto into a `MoistLMParameters` proto."""
  return text_format.Parse(text_proto, parameters_schema.MoistLMParameters())


def config_errors(config: parameters_schema.MoistLMParameters) -> List[str]:
  """Collects the errors of a configuration.

  Args:
    config: An instance of the `MoistLMParameters` proto.

  Returns:
    A list with one message per error. The list is empty for a valid
    configuration.
  """
  errors = []
  grid = config.grid
  thermo = config.thermo

  if grid.spatial_order not in (2, 4):
    errors.append(f'[grid] spatial_order must be 2 or 4, but is '
                  f'{grid.spatial_order}.')
  if grid.npx <= 0 or grid.itot % grid.npx != 0:
    errors.append(f'[grid] itot ({grid.itot}) must be divisible by npx '
                  f'({grid.npx}).')
  if grid.z and len(grid.z) != grid.ktot:
    errors.append(f'[grid] z has {len(grid.z)} levels but ktot is '
                  f'{grid.ktot}.')
  if grid.ktot < 2:
    errors.append(f'[grid] ktot must be at least 2, but is {grid.ktot}.')

  if not thermo.HasField('ps'):
    errors.append('[thermo] ps is required.')
  elif thermo.ps <= 0.0:
    errors.append(f'[thermo] ps must be positive, but is {thermo.ps}.')
  for name in ('thl_profile', 'qt_profile'):
    n = len(getattr(thermo, name))
    if n != grid.ktot:
      errors.append(f'[thermo] {name} has {n} levels but ktot is '
                    f'{grid.ktot}.')

  svisc = {visc.name for visc in config.fields.svisc}
  for name in FieldName:
    if name.value not in svisc:
      errors.append(f'[fields] svisc of "{name.value}" is required.')

  return errors


class MoistLMParameters(grid_parametrization.GridParametrization):
  """Parameters for running the moist thermodynamics."""

  def __init__(self, config: parameters_schema.MoistLMParameters):
    """Initializes the MoistLMParameters object.

    Args:
      config: An instance of the `MoistLMParameters` proto.

    Raises:
      ValueError: If the configuration has errors. Every error is logged
        before the exception is raised.
    """
    errors = config_errors(config)
    if errors:
      for error in errors:
        logging.error('Configuration error: %s', error)
      raise ValueError(
          f'The configuration has {len(errors)} error(s): {errors}')

    super(MoistLMParameters, self).__init__(config.grid)

    self.moist_lm_parameters_proto = config
    self.ps = config.thermo.ps
    self.crosslist = list(config.thermo.crosslist)
    self.swupdatebasestate = config.thermo.swupdatebasestate
    self.thl_profile = list(config.thermo.thl_profile)
    self.qt_profile = list(config.thermo.qt_profile)
    self.max_saturation_iterations = config.thermo.max_saturation_iterations
    self.saturation_tolerance = config.thermo.saturation_tolerance
    self.stats_enabled = config.stats.enabled
    self.stats_masks = list(config.stats.masks)
    self.jxz = list(config.cross.jxz)
    self.kxy = list(config.cross.kxy)

  @classmethod
  def config_from_text_proto(cls, text_proto: str) -> 'MoistLMParameters':
    """Parses the config proto in text format into MoistLMParameters."""
    return cls(parse_text_proto(text_proto))

  @classmethod
  def config_from_file(cls, config_filepath: str) -> 'MoistLMParameters':
    """Reads the config text proto file."""
    with tf.io.gfile.GFile(config_filepath, 'r') as f:
      text_proto = f.read()
    logging.info('Loaded the configuration from "%s".', config_filepath)
    return cls.config_from_text_proto(text_proto)

  @property
  def svisc(self) -> Dict[FieldName, float]:
    """The molecular diffusivity of each prognostic scalar."""
    values = {
        visc.name: visc.value
        for visc in self.moist_lm_parameters_proto.fields.svisc
    }
    return {name: values[name.value] for name in FieldName}

  @property
  def diffusion(self) -> parameters_schema.DiffusionParameters:
    return self.moist_lm_parameters_proto.diffusion


def params_from_config_file_flag() -> MoistLMParameters:
  """Returns parameters loaded from --config_filepath flag."""
  if not FLAGS.config_filepath:
    raise ValueError('Flag --config_filepath is not set.')

  return MoistLMParameters.config_from_file(FLAGS.config_filepath)
