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

"""A library for root finding methods."""

import collections
from typing import Callable, Optional

import tensorflow as tf

NewtonResult = collections.namedtuple(
    'NewtonResult', ('x', 'converged', 'num_iterations'))


def newton_method(
    objective_fn: Callable[[tf.Tensor], tf.Tensor],
    derivative_fn: Callable[[tf.Tensor], tf.Tensor],
    initial_position: tf.Tensor,
    max_iterations: int,
    position_tolerance: float,
    active: Optional[tf.Tensor] = None,
) -> NewtonResult:
  """Finds the roots of an elementwise scalar function with the Newton method.

  Every element of `initial_position` is an independent problem. The
  iterations stop when the relative change of all active elements falls below
  `position_tolerance`, or when `max_iterations` iterations have been
  performed. In the latter case the last iterate is returned as the best
  estimate and the unconverged elements are flagged in the result.

  Args:
    objective_fn: The function whose roots are sought, applied elementwise.
    derivative_fn: The derivative of `objective_fn` with respect to its input.
    initial_position: The initial guess of the solution.
    max_iterations: The maximum number of Newton iterations.
    position_tolerance: The maximum relative change of the solution between two
      successive iterations for an element to be considered converged.
    active: An optional boolean tensor with the same shape as
      `initial_position`. Inactive elements keep their initial value, are
      reported as converged, and never extend the iterations.

  Returns:
    A `NewtonResult` with the solution `x`, a boolean tensor `converged`, and
    the number of iterations performed.

  Raises:
    ValueError: If `position_tolerance` is negative.
  """
  if position_tolerance < 0:
    raise ValueError(
        f'Tolerance should be non-negative: {position_tolerance} < 0.')

  x0 = tf.convert_to_tensor(initial_position)
  if active is None:
    active = tf.ones_like(x0, dtype=tf.bool)

  if max_iterations <= 0:
    return NewtonResult(x0, tf.logical_not(active), tf.constant(0))

  def cond(i, x, converged):
    del x
    pending = tf.logical_and(active, tf.logical_not(converged))
    return tf.logical_and(i < max_iterations, tf.reduce_any(pending))

  def body(i, x, converged):
    del converged
    dx = tf.math.divide_no_nan(objective_fn(x), derivative_fn(x))
    x_new = tf.where(active, x - dx, x)
    converged = (
        tf.math.abs(x_new - x) <= position_tolerance * tf.math.abs(x)
    )
    return i + 1, x_new, converged

  i, x, converged = tf.while_loop(
      cond,
      body,
      (tf.constant(0), x0, tf.zeros_like(x0, dtype=tf.bool)),
  )

  return NewtonResult(x, tf.logical_or(converged, tf.logical_not(active)), i)
