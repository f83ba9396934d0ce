import unittest

import numpy as np

from src.treednn.infrastructure.models._history import History
from src.treednn.infrastructure.models._metrics import categorical_accuracy


class TestHistory(unittest.TestCase):
    def test_append_and_last(self):
        h = History()
        h.append_epoch(0, {"loss": 2.0, "categorical_accuracy": 0.1})
        h.append_epoch(1, {"loss": 1.0, "categorical_accuracy": 0.5})
        self.assertEqual(h.epoch, [0, 1])
        self.assertEqual(h["loss"], [2.0, 1.0])
        self.assertEqual(h.last(), {"loss": 1.0, "categorical_accuracy": 0.5})


class TestCategoricalAccuracy(unittest.TestCase):
    def test_one_hot_labels(self):
        y_true = np.eye(3)[[0, 1, 2, 1]]
        y_pred = np.array([[0.9, 0.1, 0.0], [0.2, 0.7, 0.1], [0.5, 0.4, 0.1], [0, 1, 0]])
        self.assertAlmostEqual(categorical_accuracy(y_true, y_pred), 0.75)

    def test_integer_labels(self):
        y_pred = np.log(np.array([[0.1, 0.9], [0.8, 0.2]]))
        self.assertAlmostEqual(categorical_accuracy(np.array([1, 1]), y_pred), 0.5)

    def test_empty_batch(self):
        self.assertEqual(categorical_accuracy(np.zeros((0, 3)), np.zeros((0, 3))), 0.0)


if __name__ == "__main__":
    unittest.main()
