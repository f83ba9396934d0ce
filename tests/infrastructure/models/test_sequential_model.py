import unittest

import numpy as np

from src.treednn.domain._errors import StructuralMismatchError
from src.treednn.domain._training_context import TrainingContext
from src.treednn.infrastructure._activations import Flatten, ReLU, Sigmoid
from src.treednn.infrastructure._autodiff import value_with_gradient
from src.treednn.infrastructure._losses import mean_squared_error
from src.treednn.infrastructure._parameter_tree import ParameterTree
from src.treednn.infrastructure.convolution._conv2d_module import Conv2D
from src.treednn.infrastructure.fully_connected._dense import Dense
from src.treednn.infrastructure.layers._batchnorm import BatchNorm
from src.treednn.infrastructure.models._sequential import Sequential
from src.treednn.infrastructure.optimizers import SGD
from src.treednn.infrastructure.pooling._pooling_module import MaxPool2D


def _to_float64(model) -> None:
    for layer in _walk(model):
        for name, p in list(layer._parameters.items()):
            setattr(layer, name, p.astype(np.float64))


def _walk(layer):
    yield layer
    for _, child in layer.children():
        yield from _walk(child)


class TestSequentialStructure(unittest.TestCase):
    def test_children_are_indexed(self):
        model = Sequential(Dense(4, 3), Sigmoid(), Dense(3, 2))
        self.assertEqual(len(model), 3)
        self.assertIsInstance(model[1], Sigmoid)
        self.assertEqual([name for name, _ in model.children()], ["0", "1", "2"])
        self.assertEqual(
            model.parameter_tree().addresses(),
            [("0", "weight"), ("0", "bias"), ("2", "weight"), ("2", "bias")],
        )

    def test_add_with_name(self):
        model = Sequential()
        model.add(Dense(2, 2), name="hidden")
        self.assertIn(("hidden", "weight"), model.parameter_tree())
        with self.assertRaises(ValueError):
            model.add(Dense(2, 2), name="hidden")

    def test_default_names_skip_explicit_indices(self):
        model = Sequential()
        model.add(ReLU(), name="1")
        model.add(ReLU())
        model.add(Sigmoid())
        self.assertEqual([name for name, _ in model.children()], ["1", "2", "3"])

    def test_add_rejects_names_shadowing_methods(self):
        model = Sequential()
        with self.assertRaises(ValueError):
            model.add(Dense(2, 2), name="forward")
        self.assertEqual(len(model), 0)
        y = model.forward(np.ones((1, 2)))
        np.testing.assert_array_equal(y, np.ones((1, 2)))

    def test_add_rejects_non_layers(self):
        with self.assertRaises(TypeError):
            Sequential().add(lambda x: x)  # type: ignore[arg-type]

    def test_parameter_tree_leaves_are_live(self):
        model = Sequential(Dense(2, 2))
        model.parameter_tree().get(("0", "bias"))[...] = 7.0
        np.testing.assert_array_equal(model[0].bias, [7.0, 7.0])

    def test_load_parameter_tree(self):
        a = Sequential(Dense(3, 2, rng=np.random.default_rng(0)))
        b = Sequential(Dense(3, 2, rng=np.random.default_rng(1)))
        b.load_parameter_tree(a.parameter_tree())
        np.testing.assert_array_equal(a[0].weight, b[0].weight)
        with self.assertRaises(StructuralMismatchError):
            b.load_parameter_tree(ParameterTree({"0": {"weight": np.zeros((3, 2))}}))

    def test_summary_counts_parameters(self):
        model = Sequential(Dense(4, 3), Dense(3, 2))
        self.assertTrue(model.summary().endswith("total params=23"))


class TestSequentialGradients(unittest.TestCase):
    def test_value_with_gradient_matches_finite_differences(self):
        np.random.seed(0)
        model = Sequential(
            Conv2D((3, 3, 1, 2), padding="same"),
            BatchNorm(2, axis=(0, 1, 2)),
            ReLU(),
            MaxPool2D(pool_size=2),
            Flatten(),
            Dense(8, 3),
        )
        _to_float64(model)
        rng = np.random.default_rng(1)
        x = rng.standard_normal((4, 4, 4, 1))
        target = rng.standard_normal((4, 3))

        loss, grads = value_with_gradient(model, x, mean_squared_error, target)
        self.assertTrue(grads.is_congruent(model.parameter_tree()))
        self.assertAlmostEqual(loss, mean_squared_error(model(x, TrainingContext.train()), target))

        eps = 1e-6
        for address, leaf in model.parameter_tree().enumerate():
            numeric = np.zeros_like(leaf)
            it = np.nditer(leaf, flags=["multi_index"])
            for _ in it:
                idx = it.multi_index
                old = leaf[idx]
                leaf[idx] = old + eps
                hi = mean_squared_error(model(x, TrainingContext.train()), target)
                leaf[idx] = old - eps
                lo = mean_squared_error(model(x, TrainingContext.train()), target)
                leaf[idx] = old
                numeric[idx] = (hi - lo) / (2 * eps)
            np.testing.assert_allclose(
                grads.get(address), numeric, rtol=1e-4, atol=1e-7, err_msg=str(address)
            )

    def test_train_on_batch_reduces_loss(self):
        rng = np.random.default_rng(0)
        model = Sequential(Dense(3, 8, rng=rng), Sigmoid(), Dense(8, 1, rng=rng))
        x = rng.standard_normal((32, 3)).astype(np.float32)
        y = (x @ np.array([[1.0], [-2.0], [0.5]])).astype(np.float32)
        opt = SGD(learning_rate=0.05)
        first = model.train_on_batch(x, y, loss="mean_squared_error", optimizer=opt)["loss"]
        for _ in range(200):
            last = model.train_on_batch(x, y, loss="mean_squared_error", optimizer=opt)["loss"]
        self.assertLess(last, first)
        self.assertEqual(opt.step, 201)

    def test_evaluate_uses_inference_mode(self):
        model = Sequential(Dense(3, 3), BatchNorm(3))
        x = np.random.default_rng(0).standard_normal((6, 3))
        before = np.array(model[1].running_mean)
        logs = model.evaluate(x, np.zeros((6, 3)), loss="mean_squared_error")
        self.assertIn("loss", logs)
        np.testing.assert_array_equal(model[1].running_mean, before)


if __name__ == "__main__":
    unittest.main()
