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

"""Communication contexts for horizontally decomposed domains.

The horizontal domain is split along x into sub-domains, one per replica. Each
replica owns the full vertical column range of its sub-domain. A communicator
is passed explicitly to every operation that needs a cross-replica reduction or
a halo exchange; there is no process-wide communication state.
"""

import abc
from typing import Tuple

from absl import logging
import tensorflow as tf


class Communicator(abc.ABC):
  """An interface for cross-replica reductions and periodic halo exchange."""

  @property
  @abc.abstractmethod
  def num_replicas(self) -> int:
    """The number of replicas that share the horizontal domain."""

  @abc.abstractmethod
  def sum(self, value: tf.Tensor) -> tf.Tensor:
    """Sums `value` across all replicas.

    Args:
      value: A tensor with the same shape on all replicas.

    Returns:
      The elementwise sum of `value` over all replicas, available on every
      replica.
    """

  @abc.abstractmethod
  def exchange_x(
      self, low_strip: tf.Tensor, high_strip: tf.Tensor
  ) -> Tuple[tf.Tensor, tf.Tensor]:
    """Exchanges the interior boundary strips with the x-neighbors.

    The neighbors are periodic: the predecessor of the first replica is the
    last replica.

    Args:
      low_strip: The lowest `halo_width` interior planes along x. They become
        the high halo of the predecessor.
      high_strip: The highest `halo_width` interior planes along x. They
        become the low halo of the successor.

    Returns:
      A tuple (low_halo, high_halo) for the local sub-domain.
    """


class LocalCommunicator(Communicator):
  """A communicator for a single replica that owns the whole domain."""

  @property
  def num_replicas(self) -> int:
    return 1

  def sum(self, value: tf.Tensor) -> tf.Tensor:
    return tf.convert_to_tensor(value)

  def exchange_x(
      self, low_strip: tf.Tensor, high_strip: tf.Tensor
  ) -> Tuple[tf.Tensor, tf.Tensor]:
    return high_strip, low_strip


class ReplicaContextCommunicator(Communicator):
  """A communicator backed by a `tf.distribute` replica context.

  The methods of this communicator must be called from a function that runs
  inside `tf.distribute.Strategy.run`. The replica with id `n` in the sync
  group owns the n-th sub-domain along x.
  """

  def __init__(self, num_replicas: int):
    self._num_replicas = num_replicas
    logging.info(
        'Created a replica context communicator with %d replicas.',
        num_replicas,
    )

  @property
  def num_replicas(self) -> int:
    return self._num_replicas

  def _replica_context(self) -> tf.distribute.ReplicaContext:
    ctx = tf.distribute.get_replica_context()
    if ctx is None:
      raise RuntimeError(
          '`ReplicaContextCommunicator` must be used in a replica context, '
          'e.g. inside `tf.distribute.Strategy.run`.'
      )
    if ctx.num_replicas_in_sync != self._num_replicas:
      raise ValueError(
          f'The replica context has {ctx.num_replicas_in_sync} replicas but '
          f'{self._num_replicas} are expected.'
      )
    return ctx

  def sum(self, value: tf.Tensor) -> tf.Tensor:
    ctx = self._replica_context()
    return ctx.all_reduce(tf.distribute.ReduceOp.SUM, value)

  def exchange_x(
      self, low_strip: tf.Tensor, high_strip: tf.Tensor
  ) -> Tuple[tf.Tensor, tf.Tensor]:
    ctx = self._replica_context()
    n = self._num_replicas
    replica_id = ctx.replica_id_in_sync_group

    all_low = ctx.all_gather(low_strip[tf.newaxis, ...], axis=0)
    all_high = ctx.all_gather(high_strip[tf.newaxis, ...], axis=0)

    low_halo = tf.gather(all_high, (replica_id - 1) % n)
    high_halo = tf.gather(all_low, (replica_id + 1) % n)
    return low_halo, high_halo
