import io
import unittest
import warnings
from contextlib import redirect_stdout

import numpy as np

from src.treednn.infrastructure._autodiff import value_with_gradient
from src.treednn.infrastructure._losses import negative_log_likelihood
from src.treednn.infrastructure.models._history import History
from src.treednn.infrastructure.models._metrics import categorical_accuracy
from src.treednn.infrastructure.models._mnist_classifier import MNISTClassifier
from src.treednn.infrastructure.optimizers import RMSProp


def _synthetic_digits(n: int, rng: np.random.Generator):
    """Ten classes, each lighting a disjoint block of the 784 pixels."""
    labels = np.arange(n) % 10
    rng.shuffle(labels)
    x = rng.uniform(0.0, 0.1, size=(n, 784))
    for i, k in enumerate(labels):
        x[i, k * 78 : (k + 1) * 78] += 0.8
    y = np.zeros((n, 10), dtype=np.float32)
    y[np.arange(n), labels] = 1.0
    return x.astype(np.float32), y


class TestMNISTClassifier(unittest.TestCase):
    def test_parameter_addresses(self):
        model = MNISTClassifier()
        self.assertEqual(
            model.parameter_tree().signature(),
            [
                (("l1", "weight"), (784, 30)),
                (("l1", "bias"), (30,)),
                (("l2", "weight"), (30, 10)),
                (("l2", "bias"), (10,)),
            ],
        )

    def test_outputs_are_log_probabilities(self):
        model = MNISTClassifier(hidden_size=8, rng=np.random.default_rng(0))
        y = model.predict(np.random.default_rng(1).uniform(size=(5, 784)))
        self.assertEqual(y.shape, (5, 10))
        np.testing.assert_allclose(np.exp(y).sum(axis=1), np.ones(5), rtol=1e-5)

    def test_gradient_matches_finite_differences(self):
        model = MNISTClassifier(hidden_size=4, input_size=6, num_classes=3)
        rng = np.random.default_rng(0)
        for layer in (model.l1, model.l2):
            layer.weight = rng.standard_normal(layer.weight.shape)
            layer.bias = rng.standard_normal(layer.bias.shape)
        x = rng.standard_normal((5, 6))
        target = np.eye(3)[[0, 2, 1, 1, 0]]

        _, grads = value_with_gradient(model, x, negative_log_likelihood, target)
        eps = 1e-6
        for address, leaf in model.parameter_tree().enumerate():
            numeric = np.zeros_like(leaf)
            it = np.nditer(leaf, flags=["multi_index"])
            for _ in it:
                idx = it.multi_index
                old = leaf[idx]
                leaf[idx] = old + eps
                hi = negative_log_likelihood(model(x), target)
                leaf[idx] = old - eps
                lo = negative_log_likelihood(model(x), target)
                leaf[idx] = old
                numeric[idx] = (hi - lo) / (2 * eps)
            np.testing.assert_allclose(grads.get(address), numeric, rtol=1e-5, atol=1e-8)

    def test_get_config(self):
        self.assertEqual(
            MNISTClassifier(hidden_size=12).get_config(),
            {"hidden_size": 12, "input_size": 784, "num_classes": 10},
        )


class TestClassifierTraining(unittest.TestCase):
    def test_end_to_end_rmsprop(self):
        rng = np.random.default_rng(0)
        x, y = _synthetic_digits(100, rng)
        model = MNISTClassifier(hidden_size=30, rng=rng)
        history = model.fit(
            x,
            y,
            loss=negative_log_likelihood,
            optimizer=RMSProp(learning_rate=0.2),
            metrics=[categorical_accuracy],
            batch_size=10,
            epochs=20,
            drop_remainder=True,
            rng=rng,
            verbose=0,
        )

        self.assertIsInstance(history, History)
        self.assertEqual(history.epoch, list(range(20)))
        losses = history["loss"]
        self.assertTrue(all(np.isfinite(losses)))
        self.assertLessEqual(losses[-1], losses[0])
        self.assertGreater(history["categorical_accuracy"][-1], 0.1)
        self.assertGreater(categorical_accuracy(y, model.predict(x)), 0.1)

    def test_fit_with_optimizer_name(self):
        rng = np.random.default_rng(1)
        x, y = _synthetic_digits(20, rng)
        model = MNISTClassifier(hidden_size=5, rng=rng)
        history = model.fit(
            x, y, loss="negative_log_likelihood", optimizer="sgd", batch_size=10, verbose=0
        )
        self.assertEqual(set(history.last()), {"loss"})

    def test_drop_remainder_warns(self):
        rng = np.random.default_rng(2)
        x, y = _synthetic_digits(25, rng)
        model = MNISTClassifier(hidden_size=5, rng=rng)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            model.fit(
                x,
                y,
                loss=negative_log_likelihood,
                optimizer=RMSProp(),
                batch_size=10,
                drop_remainder=True,
                verbose=0,
            )
        self.assertTrue(any(issubclass(w.category, RuntimeWarning) for w in caught))

    def test_fit_validates_arguments(self):
        model = MNISTClassifier(hidden_size=5)
        x, y = _synthetic_digits(10, np.random.default_rng(3))
        with self.assertRaises(ValueError):
            model.fit(x, y, loss=negative_log_likelihood, optimizer="sgd", epochs=0)
        with self.assertRaises(ValueError):
            model.fit(x, y, loss=negative_log_likelihood, optimizer="sgd", batch_size=0)
        with self.assertRaises(ValueError):
            model.fit(
                x, y, loss=negative_log_likelihood, optimizer="sgd",
                batch_size=20, drop_remainder=True,
            )
        with self.assertRaises(ValueError):
            model.fit(x, y[:5], loss=negative_log_likelihood, optimizer="sgd", verbose=0)

    def test_verbose_prints_epoch_lines(self):
        model = MNISTClassifier(hidden_size=5, rng=np.random.default_rng(4))
        x, y = _synthetic_digits(10, np.random.default_rng(5))
        buf = io.StringIO()
        with redirect_stdout(buf):
            model.fit(
                x, y, loss=negative_log_likelihood, optimizer="rmsprop",
                metrics=[categorical_accuracy], batch_size=5, epochs=2,
            )
        lines = buf.getvalue().strip().splitlines()
        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[0].startswith("Epoch 1/2 - loss: "))
        self.assertIn("categorical_accuracy: ", lines[1])
        self.assertTrue(lines[1].endswith("seen: 10"))


if __name__ == "__main__":
    unittest.main()
