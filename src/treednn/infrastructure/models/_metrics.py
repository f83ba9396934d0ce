"""
Batch metrics reported by the training loop.

Metrics follow the ``metric(y_true, y_pred) -> float`` convention.
"""

import numpy as np


def categorical_accuracy(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Fraction of rows whose predicted class matches the label.

    Parameters
    ----------
    y_true : np.ndarray
        One-hot labels of shape (N, K), or integer class ids of shape (N,).
    y_pred : np.ndarray
        Scores, probabilities or log-probabilities of shape (N, K).

    Returns
    -------
    float
        Accuracy in ``[0, 1]``; 0 for an empty batch.
    """
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    if y_pred.shape[0] == 0:
        return 0.0
    labels = y_true if y_true.ndim == 1 else y_true.argmax(axis=-1)
    return float(np.mean(y_pred.argmax(axis=-1) == labels))
