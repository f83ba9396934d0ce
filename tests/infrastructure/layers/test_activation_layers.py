import unittest

import numpy as np

from src.treednn.infrastructure._activations import Flatten, LogSoftmax, ReLU, Sigmoid
from src.treednn.infrastructure._function import log_softmax, sigmoid


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


class TestActivationValues(unittest.TestCase):
    def test_sigmoid_is_stable_for_large_inputs(self):
        y = sigmoid(np.array([-1000.0, 0.0, 1000.0]))
        self.assertTrue(np.all(np.isfinite(y)))
        np.testing.assert_allclose(y, [0.0, 0.5, 1.0], atol=1e-12)

    def test_log_softmax_rows_normalize(self):
        x = np.random.default_rng(0).standard_normal((4, 10)) * 50.0
        np.testing.assert_allclose(np.exp(log_softmax(x)).sum(axis=-1), np.ones(4))

    def test_relu(self):
        np.testing.assert_array_equal(ReLU()(np.array([-2.0, 0.0, 3.0])), [0.0, 0.0, 3.0])

    def test_flatten(self):
        x = np.zeros((2, 3, 4, 5))
        self.assertEqual(Flatten()(x).shape, (2, 60))

    def test_layers_have_empty_parameter_trees(self):
        for layer in (Sigmoid(), ReLU(), LogSoftmax(), Flatten()):
            self.assertEqual(len(layer.parameter_tree()), 0)


class TestActivationGradients(unittest.TestCase):
    def _check(self, layer, x):
        rng = np.random.default_rng(2)
        y, pullback = layer.value_with_pullback(x)
        r = rng.standard_normal(y.shape)
        grads, grad_x = pullback(r)
        self.assertEqual(len(grads), 0)
        expected = _numeric_grad(lambda: float(np.sum(layer(x) * r)), x)
        np.testing.assert_allclose(grad_x, expected, rtol=1e-5, atol=1e-7)

    def test_sigmoid(self):
        self._check(Sigmoid(), np.random.default_rng(0).standard_normal((3, 4)))

    def test_relu_away_from_kink(self):
        x = np.array([[-1.5, 0.3], [2.0, -0.2]])
        self._check(ReLU(), x)

    def test_log_softmax(self):
        self._check(LogSoftmax(), np.random.default_rng(1).standard_normal((3, 5)))

    def test_flatten(self):
        self._check(Flatten(), np.random.default_rng(3).standard_normal((2, 2, 3)))


if __name__ == "__main__":
    unittest.main()
