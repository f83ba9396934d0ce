import math
import unittest

import numpy as np

from src.treednn.domain._errors import ShapeError
from src.treednn.infrastructure.utils.weight_initializer import (
    WeightInitializer,
    glorot_limit,
)


class TestWeightInitializerRegistry(unittest.TestCase):
    def test_builtins_registered(self):
        for name in ("glorot_uniform", "glorot_normal", "zeros", "ones"):
            self.assertIn(name, WeightInitializer.available())

    def test_unknown_name(self):
        with self.assertRaises(ValueError):
            WeightInitializer("orthogonal")

    def test_duplicate_registration_rejected(self):
        with self.assertRaises(ValueError):
            WeightInitializer.register_initializer("zeros")(lambda *a, **k: None)

    def test_constants(self):
        np.testing.assert_array_equal(WeightInitializer("zeros")((2, 3)), np.zeros((2, 3)))
        ones = WeightInitializer("ones")((4,))
        np.testing.assert_array_equal(ones, np.ones(4))
        self.assertEqual(ones.dtype, np.float32)


class TestGlorot(unittest.TestCase):
    def test_limit(self):
        self.assertAlmostEqual(glorot_limit((784, 30)), math.sqrt(6.0 / 814))
        self.assertAlmostEqual(glorot_limit((5, 5, 3, 7)), math.sqrt(6.0 / 10))

    def test_uniform_within_bound(self):
        for shape in ((784, 30), (30, 10), (3, 3, 8, 16)):
            w = WeightInitializer("glorot_uniform")(shape, rng=np.random.default_rng(0))
            self.assertEqual(w.shape, shape)
            self.assertTrue(np.all(np.abs(w) <= np.float32(glorot_limit(shape))))

    def test_uniform_fills_the_interval(self):
        shape = (200, 100)
        w = WeightInitializer("glorot_uniform")(shape, rng=np.random.default_rng(1))
        limit = glorot_limit(shape)
        self.assertGreater(w.max(), 0.95 * limit)
        self.assertLess(w.min(), -0.95 * limit)
        self.assertAlmostEqual(float(w.mean()), 0.0, delta=0.03 * limit)

    def test_normal_std(self):
        shape = (300, 200)
        w = WeightInitializer("glorot_normal")(shape, rng=np.random.default_rng(2))
        self.assertAlmostEqual(float(w.std()), math.sqrt(2.0 / 500), delta=0.002)

    def test_seeded_generator_is_reproducible(self):
        init = WeightInitializer("glorot_uniform")
        a = init((4, 4), rng=np.random.default_rng(7))
        b = init((4, 4), rng=np.random.default_rng(7))
        np.testing.assert_array_equal(a, b)

    def test_global_seed_is_reproducible(self):
        init = WeightInitializer("glorot_uniform")
        np.random.seed(3)
        a = init((4, 4))
        np.random.seed(3)
        b = init((4, 4))
        np.testing.assert_array_equal(a, b)

    def test_degenerate_shapes(self):
        with self.assertRaises(ShapeError):
            WeightInitializer("glorot_uniform")((0, 0))
        with self.assertRaises(ShapeError):
            WeightInitializer("glorot_uniform")((10,))


if __name__ == "__main__":
    unittest.main()
