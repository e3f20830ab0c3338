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

r"""The executable that evaluates the moist thermodynamics on a single replica.

The prognostic scalars are initialized from the configured profiles with a
random perturbation in the lowest levels. Every step adds the buoyancy to the
tendency of the vertical velocity; the tendency is not integrated in time since
there is no dynamical core. Statistics and cross sections are sampled after
the last step and logged.

Usage:
  moist_lm_driver --config_filepath=/path/to/config.textpb --num_steps=2
"""

from absl import app
from absl import flags
from absl import logging
from moist_lm.base import fields as fields_lib
from moist_lm.base import parameters as parameters_lib
from moist_lm.communication import communicator as communicator_lib
from moist_lm.physics.thermodynamics import thermo_moist
from moist_lm.physics.turbulence import diffusion
from moist_lm.utility import common_ops
from moist_lm.utility import cross_section
from moist_lm.utility import stats as stats_lib
from moist_lm.utility import types
import numpy as np
import tensorflow as tf

FieldName = fields_lib.FieldName

_NUM_STEPS = flags.DEFINE_integer(
    'num_steps', 1, 'The number of steps to evaluate the buoyancy tendency.')
_PERTURBATION = flags.DEFINE_float(
    'perturbation', 0.1,
    'The amplitude of the random perturbation of `s` in K.')
_PERTURBATION_LEVELS = flags.DEFINE_integer(
    'perturbation_levels', 4,
    'The number of interior levels from the surface that are perturbed.')
_SEED = flags.DEFINE_integer('seed', 0, 'The seed of the random perturbation.')


def init_fields(
    params: parameters_lib.MoistLMParameters,
    fields: fields_lib.Fields,
    thermo: thermo_moist.ThermoMoist,
    perturbation: float,
    perturbation_levels: int,
    seed: int,
) -> None:
  """Initializes the prognostic scalars from the reference profiles."""
  rng = np.random.RandomState(seed)
  ks = params.kstart
  profiles = {
      FieldName.S: thermo.reference.thl0,
      FieldName.QT: thermo.reference.qt0,
  }
  for name, profile in profiles.items():
    data = common_ops.as_profile(profile) * tf.ones(
        params.field_shape, dtype=types.TF_DTYPE)
    if name == FieldName.S and perturbation > 0.0:
      noise = np.zeros(params.field_shape, dtype=types.NP_DTYPE)
      k_hi = min(ks + perturbation_levels, params.kend)
      noise[ks:k_hi] = perturbation * rng.uniform(
          -1.0, 1.0, size=noise[ks:k_hi].shape)
      data += noise
    field = fields[name]
    field.data = data
    # The ghost cells of the profiles are mirrored about the surface value.
    field.bot = 0.5 * (profile[ks - 1] + profile[ks]) * tf.ones(
        params.plane_shape, dtype=types.TF_DTYPE)
  fields.set_vertical_ghosts()


def solver(
    params: parameters_lib.MoistLMParameters,
    num_steps: int,
    perturbation: float = 0.0,
    perturbation_levels: int = 0,
    seed: int = 0,
) -> int:
  """Runs the moist thermodynamics.

  Args:
    params: The simulation parameters.
    num_steps: The number of evaluations of the buoyancy tendency.
    perturbation: The amplitude of the random perturbation of `s` in K.
    perturbation_levels: The number of perturbed levels above the surface.
    seed: The seed of the random perturbation.

  Returns:
    The total number of unconverged saturation adjustments.
  """
  communicator = communicator_lib.LocalCommunicator()
  fields = fields_lib.Fields(params, communicator, params.svisc)
  diffusion_model = diffusion.diffusion_factory(params.diffusion)
  if diffusion_model.provides_eddy_diffusivity:
    # Without a turbulence closure a uniform eddy viscosity is assumed.
    fields.evisc = params.svisc[FieldName.S] * tf.ones(
        params.field_shape, dtype=types.TF_DTYPE)

  stats = stats_lib.Statistics(
      params, communicator, params.stats_enabled, params.stats_masks)
  cross = cross_section.CrossSections(
      params, communicator, params.jxz, params.kxy)
  thermo = thermo_moist.ThermoMoist(
      params, fields, diffusion_model, stats, cross)

  num_errors = int(thermo.create())
  init_fields(params, fields, thermo, perturbation, perturbation_levels, seed)

  for step in range(num_steps):
    step_errors = int(thermo.exec_step())
    num_errors += step_errors
    logging.info('Step %d: max |wt| = %g, errors = %d.', step,
                 float(tf.math.reduce_max(tf.math.abs(fields.wt))),
                 step_errors)

  if stats.enabled:
    for name in stats.masks:
      if name == stats_lib.DEFAULT_MASK:
        stats.set_mask(stats.default_mask())
      else:
        stats.set_mask(thermo.get_mask(name))
      num_errors += int(thermo.exec_stats(name))
      stats.log_summary(name)

  num_errors += int(thermo.exec_cross())
  logging.info('Stored cross sections: %s.', sorted(cross.sections))
  return num_errors


def main(_):
  params = parameters_lib.params_from_config_file_flag()
  num_errors = solver(params, _NUM_STEPS.value, _PERTURBATION.value,
                      _PERTURBATION_LEVELS.value, _SEED.value)
  if num_errors:
    logging.error('The simulation finished with %d errors.', num_errors)
    return 1
  logging.info('The simulation finished successfully.')
  return 0


def run():
  app.run(main)


if __name__ == '__main__':
  run()
