import unittest

import numpy as np

from src.treednn.domain._errors import HyperparameterError
from src.treednn.domain._training_context import TrainingContext
from src.treednn.infrastructure.layers._batchnorm import BatchNorm


def _numeric_grad(f, arr: np.ndarray, eps: float = 1e-6) -> np.ndarray:
    grad = np.zeros_like(arr)
    it = np.nditer(arr, flags=["multi_index"])
    for _ in it:
        idx = it.multi_index
        old = arr[idx]
        arr[idx] = old + eps
        hi = f()
        arr[idx] = old - eps
        lo = f()
        arr[idx] = old
        grad[idx] = (hi - lo) / (2 * eps)
    return grad


class TestBatchNormConstruction(unittest.TestCase):
    def test_initial_state(self):
        bn = BatchNorm(3)
        np.testing.assert_array_equal(bn.scale, np.ones(3))
        np.testing.assert_array_equal(bn.offset, np.zeros(3))
        self.assertEqual(float(bn.running_mean), 0.0)
        self.assertEqual(float(bn.running_variance), 1.0)

    def test_only_affine_parameters_are_learnable(self):
        tree = BatchNorm(3).parameter_tree()
        self.assertEqual(tree.addresses(), [("scale",), ("offset",)])
        names = [name for name, _ in BatchNorm(3).named_buffers()]
        self.assertEqual(names, ["running_mean", "running_variance"])

    def test_rejects_bad_hyperparameters(self):
        with self.assertRaises(HyperparameterError):
            BatchNorm(3, momentum=1.5)
        with self.assertRaises(HyperparameterError):
            BatchNorm(3, epsilon=-1.0)
        with self.assertRaises(ValueError):
            BatchNorm(0)


class TestBatchNormTraining(unittest.TestCase):
    def setUp(self):
        self.rng = np.random.default_rng(0)
        self.x = self.rng.standard_normal((16, 3)) * 2.0 + 5.0

    def test_training_output_is_normalized(self):
        bn = BatchNorm(3, epsilon=0.0)
        y = bn(self.x, TrainingContext.train())
        np.testing.assert_allclose(y.mean(axis=0), np.zeros(3), atol=1e-10)
        np.testing.assert_allclose(y.var(axis=0), np.ones(3), atol=1e-8)

    def test_running_statistics_converge_geometrically(self):
        momentum = 0.9
        bn = BatchNorm(3, momentum=momentum)
        mean = self.x.mean(axis=0, keepdims=True)
        var = self.x.var(axis=0, keepdims=True)
        for n in range(1, 6):
            bn(self.x, TrainingContext.train())
            np.testing.assert_allclose(
                np.abs(bn.running_mean - mean), momentum**n * np.abs(0.0 - mean), rtol=1e-4
            )
            np.testing.assert_allclose(
                np.abs(bn.running_variance - var), momentum**n * np.abs(1.0 - var), rtol=1e-4
            )

    def test_momentum_one_freezes_statistics(self):
        bn = BatchNorm(3, momentum=1.0)
        bn(self.x, TrainingContext.train())
        np.testing.assert_allclose(bn.running_mean, 0.0)
        np.testing.assert_allclose(bn.running_variance, 1.0)

    def test_inference_does_not_mutate_state(self):
        bn = BatchNorm(3)
        bn(self.x, TrainingContext.train())
        mean_before = np.array(bn.running_mean)
        var_before = np.array(bn.running_variance)
        bn(self.x, TrainingContext.inference())
        bn(self.x * 10.0, TrainingContext.inference())
        np.testing.assert_array_equal(bn.running_mean, mean_before)
        np.testing.assert_array_equal(bn.running_variance, var_before)

    def test_inference_uses_running_statistics(self):
        bn = BatchNorm(3, epsilon=0.0)
        bn.scale = np.array([1.0, 2.0, 3.0])
        bn.offset = np.array([0.5, 0.0, -0.5])
        y = bn(self.x, TrainingContext.inference())
        np.testing.assert_allclose(y, self.x * bn.scale + bn.offset, rtol=1e-6)

    def test_reduced_axes_on_nhwc(self):
        bn = BatchNorm(4, axis=(0, 1, 2))
        x = self.rng.standard_normal((2, 3, 3, 4))
        y = bn(x, TrainingContext.train())
        self.assertEqual(y.shape, x.shape)
        self.assertEqual(bn.running_mean.shape, (1, 1, 1, 4))

    def test_rejects_wrong_feature_count(self):
        with self.assertRaises(ValueError):
            BatchNorm(3)(np.zeros((4, 2)))


class TestBatchNormGradients(unittest.TestCase):
    def _check(self, context):
        rng = np.random.default_rng(1)
        bn = BatchNorm(3, momentum=0.5)
        bn.scale = rng.standard_normal(3)
        bn.offset = rng.standard_normal(3)
        bn(rng.standard_normal((8, 3)), TrainingContext.train())
        x = rng.standard_normal((6, 3))
        y, pullback = bn.value_with_pullback(x, context)
        r = rng.standard_normal(y.shape)
        grads, grad_x = pullback(r)

        def loss():
            return float(np.sum(bn.forward(x, context) * r))

        # snapshot so repeated training-mode calls do not change the reference
        mean, var = np.array(bn.running_mean), np.array(bn.running_variance)
        num_scale = _numeric_grad(loss, bn.scale)
        num_offset = _numeric_grad(loss, bn.offset)
        num_x = _numeric_grad(loss, x)
        bn.running_mean, bn.running_variance = mean, var

        np.testing.assert_allclose(grads.get("scale"), num_scale, rtol=1e-5, atol=1e-6)
        np.testing.assert_allclose(grads.get("offset"), num_offset, rtol=1e-5, atol=1e-6)
        np.testing.assert_allclose(grad_x, num_x, rtol=1e-4, atol=1e-6)

    def test_training_mode_gradients(self):
        self._check(TrainingContext.train())

    def test_inference_mode_gradients(self):
        self._check(TrainingContext.inference())


if __name__ == "__main__":
    unittest.main()
