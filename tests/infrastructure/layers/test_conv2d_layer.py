import unittest

import numpy as np

from src.treednn.domain._errors import ShapeError
from src.treednn.domain._pooling import Padding
from src.treednn.infrastructure.convolution._conv2d_module import Conv2D


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


def _reference_conv_valid(x, w, stride):
    n, h, wd, _ = x.shape
    kh, kw, _, cout = w.shape
    oh = (h - kh) // stride + 1
    ow = (wd - kw) // stride + 1
    y = np.zeros((n, oh, ow, cout))
    for i in range(oh):
        for j in range(ow):
            patch = x[:, i * stride : i * stride + kh, j * stride : j * stride + kw, :]
            y[:, i, j, :] = np.tensordot(patch, w, axes=([1, 2, 3], [0, 1, 2]))
    return y


class TestConv2D(unittest.TestCase):
    def setUp(self):
        self.rng = np.random.default_rng(0)

    def _layer(self, padding, strides=(1, 1)):
        layer = Conv2D((3, 3, 2, 4), strides=strides, padding=padding, rng=self.rng)
        layer.filter = self.rng.standard_normal((3, 3, 2, 4))
        return layer

    def test_output_shapes(self):
        x = self.rng.standard_normal((2, 7, 6, 2))
        self.assertEqual(self._layer("valid")(x).shape, (2, 5, 4, 4))
        self.assertEqual(self._layer("same")(x).shape, (2, 7, 6, 4))
        self.assertEqual(self._layer("same", strides=2)(x).shape, (2, 4, 3, 4))
        self.assertEqual(self._layer("valid", strides=2)(x).shape, (2, 3, 2, 4))

    def test_valid_matches_reference(self):
        x = self.rng.standard_normal((2, 6, 6, 2))
        layer = self._layer(Padding.VALID, strides=2)
        np.testing.assert_allclose(
            layer(x), _reference_conv_valid(x, layer.filter, 2), rtol=1e-10, atol=1e-10
        )

    def test_same_matches_zero_padded_reference(self):
        x = self.rng.standard_normal((1, 5, 5, 2))
        layer = self._layer(Padding.SAME)
        padded = np.pad(x, ((0, 0), (1, 1), (1, 1), (0, 0)))
        np.testing.assert_allclose(
            layer(x), _reference_conv_valid(padded, layer.filter, 1), rtol=1e-10, atol=1e-10
        )

    def _check_gradients(self, padding, strides):
        layer = self._layer(padding, strides)
        x = self.rng.standard_normal((2, 5, 6, 2))
        y, pullback = layer.value_with_pullback(x)
        r = self.rng.standard_normal(y.shape)
        grads, grad_x = pullback(r)

        def loss():
            return float(np.sum(layer(x) * r))

        np.testing.assert_allclose(
            grads.get("filter"), _numeric_grad(loss, layer.filter), rtol=1e-5, atol=1e-7
        )
        np.testing.assert_allclose(grad_x, _numeric_grad(loss, x), rtol=1e-5, atol=1e-7)

    def test_gradients_valid(self):
        self._check_gradients("valid", (1, 1))

    def test_gradients_same(self):
        self._check_gradients("same", (1, 1))

    def test_gradients_same_strided(self):
        self._check_gradients("same", (2, 2))

    def test_glorot_bound_uses_channel_fans(self):
        layer = Conv2D((3, 3, 8, 16), rng=np.random.default_rng(3))
        self.assertTrue(np.all(np.abs(layer.filter) <= np.float32(np.sqrt(6.0 / (8 + 16)))))

    def test_invalid_configuration(self):
        with self.assertRaises(ValueError):
            Conv2D((3, 3, 2))
        with self.assertRaises(ValueError):
            Conv2D((3, 3, 2, 4), strides=0)
        with self.assertRaises(ValueError):
            Conv2D((3, 3, 2, 4), padding="full")

    def test_zero_channel_fans_raise_shape_error(self):
        with self.assertRaises(ShapeError):
            Conv2D.from_filter(np.zeros((3, 3, 0, 0)))
        with self.assertRaises(ShapeError):
            Conv2D((3, 3, 0, 0), kernel_initializer="zeros")

    def test_from_filter(self):
        layer = Conv2D.from_filter(np.ones((1, 1, 1, 1)))
        np.testing.assert_allclose(layer(np.full((1, 2, 2, 1), 3.0)), np.full((1, 2, 2, 1), 3.0))


if __name__ == "__main__":
    unittest.main()
