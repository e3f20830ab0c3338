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
"""Saturation adjustment for the liquid-water potential temperature system.

The prognostic variables are the liquid water potential temperature 𝜃ₗ
(denoted `s`) and the total water mixing ratio qₜ. Given the pressure p and
the Exner function Π(p), the liquid water mixing ratio qₗ follows from the
implicit balance
  T = 𝜃ₗΠ + Lᵥ / cₚ qₗ,  qₗ = max(0, qₜ - qₛ(p, T)),
where the saturation mixing ratio is
  qₛ = 𝜀 eₛ(T) / (p - (1 - 𝜀) eₛ(T)),  𝜀 = R_d / Rᵥ,
and eₛ(T) is an 8th order polynomial fit of the saturation vapor pressure over
liquid water. The balance is solved for T with the Newton method starting from
the liquid water temperature Tₗ = 𝜃ₗΠ.

All functions in this module are elementwise and accept tensors of any shape
that broadcast against each other, e.g. a 3D field [nz, nx, ny] with pressure
and Exner profiles of shape [nz, 1, 1].
"""

import collections
from typing import Optional

from moist_lm.numerics import root_finder
from moist_lm.physics import constants
from moist_lm.utility import types
import tensorflow as tf

FlowFieldVal = types.FlowFieldVal

_TF_DTYPE = types.TF_DTYPE

# The default relative tolerance of the temperature in the Newton iterations.
DEFAULT_TOLERANCE = 1e-5
# The default maximum number of Newton iterations.
DEFAULT_MAX_ITERATIONS = 100

SaturationResult = collections.namedtuple(
    'SaturationResult', ('ql', 'temperature', 'num_unconverged'))


def _to_tensor(value) -> tf.Tensor:
  return tf.convert_to_tensor(value, dtype=_TF_DTYPE)


def exner(p):
  """Computes the Exner function Π = (p / p₀)^(R_d / cₚ).

  Args:
    p: The pressure [Pa], a python float, a numpy array or a `tf.Tensor`.

  Returns:
    The Exner function, of the same kind as `p`.
  """
  return (p / constants.P0)**(constants.R_D / constants.CP)


def exner_polynomial(p):
  """Approximates the Exner function with a 7th order polynomial in p - p₀."""
  dp = p - constants.P0
  result = constants.EXNER_POLY[-1]
  for coeff in reversed(constants.EXNER_POLY[:-1]):
    result = coeff + dp * result
  return 1.0 + dp * result


def esat_liquid(t: FlowFieldVal) -> tf.Tensor:
  """Computes the saturation vapor pressure over liquid water [Pa].

  The polynomial is valid down to 80 K below the melting point; colder
  temperatures are clamped to that limit.

  Args:
    t: The temperature [K].

  Returns:
    The saturation vapor pressure.
  """
  x = tf.math.maximum(_to_tensor(t) - constants.T_MELT,
                      constants.ESAT_T_MIN_OFFSET)
  result = constants.ESAT_POLY[-1]
  for coeff in reversed(constants.ESAT_POLY[:-1]):
    result = coeff + x * result
  return result


def qsat_liquid(p: FlowFieldVal, t: FlowFieldVal) -> tf.Tensor:
  """Computes the saturation mixing ratio over liquid water [kg/kg].

  Args:
    p: The pressure [Pa].
    t: The temperature [K].

  Returns:
    qₛ = 𝜀 eₛ / (p - (1 - 𝜀) eₛ).
  """
  es = esat_liquid(t)
  return constants.EP * es / (_to_tensor(p) - (1.0 - constants.EP) * es)


def saturation_adjustment(
    s: FlowFieldVal,
    qt: FlowFieldVal,
    p: FlowFieldVal,
    ex: FlowFieldVal,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE,
    active: Optional[tf.Tensor] = None,
) -> SaturationResult:
  """Solves the saturation adjustment for the liquid water mixing ratio.

  The Newton update of the temperature is
    T ← T - (T + Lᵥ/cₚ qₛ(T) - Tₗ - Lᵥ/cₚ qₜ) / (1 + Lᵥ² qₛ / (Rᵥ cₚ T²)),
  where the denominator is the derivative of the balance with respect to T
  following the Clausius-Clapeyron relation.

  Args:
    s: The liquid water potential temperature [K].
    qt: The total water mixing ratio [kg/kg].
    p: The pressure [Pa].
    ex: The Exner function at `p`.
    max_iterations: The maximum number of Newton iterations.
    tolerance: The relative change of the temperature below which an element
      is considered converged.
    active: An optional boolean mask of the elements to solve. Inactive
      elements get `ql = 0` and do not take part in the iterations.

  Returns:
    A `SaturationResult` with the liquid water mixing ratio `ql >= 0`, the
    adjusted temperature, and the number of active elements that did not
    converge within `max_iterations`.
  """
  s = _to_tensor(s)
  qt = _to_tensor(qt)
  p = _to_tensor(p)
  ex = _to_tensor(ex)

  tl = s * ex
  # The initial guess must carry the broadcast shape of all inputs.
  t0 = tl + tf.zeros_like(qt) + tf.zeros_like(p)
  lv_cp = constants.LV / constants.CP

  def objective_fn(t):
    return t + lv_cp * qsat_liquid(p, t) - tl - lv_cp * qt

  def derivative_fn(t):
    qs = qsat_liquid(p, t)
    return 1.0 + constants.LV**2 * qs / (constants.R_V * constants.CP * t**2)

  if active is not None:
    active = tf.broadcast_to(active, tf.shape(t0))

  result = root_finder.newton_method(
      objective_fn, derivative_fn, t0, max_iterations, tolerance, active)

  ql = tf.math.maximum(qt - qsat_liquid(p, result.x), 0.0)
  if active is not None:
    ql = tf.where(active, ql, tf.zeros_like(ql))

  num_unconverged = tf.math.reduce_sum(
      tf.cast(tf.logical_not(result.converged), tf.int32))

  return SaturationResult(ql, result.x, num_unconverged)


def liquid_water(
    s: FlowFieldVal,
    qt: FlowFieldVal,
    p: FlowFieldVal,
    ex: FlowFieldVal,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE,
) -> SaturationResult:
  """Computes qₗ, solving the saturation adjustment only where it is needed.

  A first estimate qₜ - qₛ(p, Tₗ) is evaluated at the liquid water temperature.
  Because condensation heats the air and raises qₛ, an element with a
  non-positive estimate is unsaturated and gets exactly `ql = 0` without
  iterations. The Newton solve runs only for the remaining elements.

  Args:
    s: The liquid water potential temperature [K].
    qt: The total water mixing ratio [kg/kg].
    p: The pressure [Pa].
    ex: The Exner function at `p`.
    max_iterations: The maximum number of Newton iterations.
    tolerance: The relative tolerance of the temperature.

  Returns:
    A `SaturationResult`. The temperature of unsaturated elements is Tₗ.
  """
  s = _to_tensor(s)
  qt = _to_tensor(qt)
  ql_estimate = qt - qsat_liquid(p, s * _to_tensor(ex))
  return saturation_adjustment(
      s, qt, p, ex, max_iterations, tolerance, active=ql_estimate > 0.0)
