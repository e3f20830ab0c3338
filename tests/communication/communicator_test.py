"""Tests for moist_lm.communication.communicator."""

from moist_lm.communication import communicator as communicator_lib
import numpy as np
import tensorflow as tf


class LocalCommunicatorTest(tf.test.TestCase):

  def testSumIsTheLocalValue(self):
    comm = communicator_lib.LocalCommunicator()

    self.assertEqual(1, comm.num_replicas)
    self.assertAllEqual([1.0, 2.0], self.evaluate(comm.sum([1.0, 2.0])))

  def testExchangeXSwapsTheStrips(self):
    comm = communicator_lib.LocalCommunicator()
    low = tf.constant([[[1.0]]])
    high = tf.constant([[[2.0]]])

    low_halo, high_halo = comm.exchange_x(low, high)

    self.assertAllEqual([[[2.0]]], self.evaluate(low_halo))
    self.assertAllEqual([[[1.0]]], self.evaluate(high_halo))


class ReplicaContextCommunicatorTest(tf.test.TestCase):

  def testSumAndExchangeInMirroredStrategy(self):
    strategy = tf.distribute.MirroredStrategy(['/cpu:0'])
    low = tf.constant(np.ones((2, 1, 3)))
    high = tf.constant(2.0 * np.ones((2, 1, 3)))

    @tf.function
    def step():

      def replica_fn():
        comm = communicator_lib.ReplicaContextCommunicator(1)
        total = comm.sum(tf.constant([1.0, 3.0], dtype=tf.float64))
        low_halo, high_halo = comm.exchange_x(low, high)
        return total, low_halo, high_halo

      return strategy.run(replica_fn)

    total, low_halo, high_halo = [
        self.evaluate(strategy.experimental_local_results(value)[0])
        for value in step()
    ]

    self.assertAllEqual([1.0, 3.0], total)
    self.assertAllEqual(self.evaluate(high), low_halo)
    self.assertAllEqual(self.evaluate(low), high_halo)

  def testCrossReplicaContextRaisesRuntimeError(self):
    strategy = tf.distribute.MirroredStrategy(['/cpu:0'])
    comm = communicator_lib.ReplicaContextCommunicator(1)

    with strategy.scope():
      with self.assertRaisesRegex(RuntimeError, 'replica context'):
        comm.sum(tf.constant(1.0))

  def testMismatchedNumberOfReplicasRaisesValueError(self):
    comm = communicator_lib.ReplicaContextCommunicator(4)

    with self.assertRaisesRegex(ValueError, '4 are expected'):
      comm.sum(tf.constant(1.0))


if __name__ == '__main__':
  tf.test.main()
