#!/usr/bin/env python3
"""
Train the two-layer MNIST classifier.

Reads the gzip-compressed IDX training files, builds a
784 -> hidden -> 10 classifier and trains it with minibatch updates, printing
per-epoch loss and accuracy.

Example
-------
    python scripts/train_mnist.py \
        --images data/train-images-idx3-ubyte.gz \
        --labels data/train-labels-idx1-ubyte.gz
"""

import argparse
import os
import sys

# Ensure repo_root/src is importable when running this file directly:
# repo_root/
#   src/treednn/...
#   scripts/train_mnist.py
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
ROOT_DIR = os.path.abspath(os.path.join(THIS_DIR, ".."))
SRC_DIR = os.path.join(ROOT_DIR, "src")

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

import numpy as np

from treednn.infrastructure._losses import negative_log_likelihood
from treednn.infrastructure.datasets._mnist import read_images, read_labels, one_hot
from treednn.infrastructure.models._metrics import categorical_accuracy
from treednn.infrastructure.models._mnist_classifier import MNISTClassifier
from treednn.infrastructure.optimizers import build_optimizer


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Train a 784-hidden-10 MNIST classifier.")
    p.add_argument("--images", default="data/train-images-idx3-ubyte.gz")
    p.add_argument("--labels", default="data/train-labels-idx1-ubyte.gz")
    p.add_argument("--epochs", type=int, default=20)
    p.add_argument("--batch-size", type=int, default=10)
    p.add_argument("--hidden-size", type=int, default=30)
    p.add_argument("--optimizer", default="rmsprop")
    p.add_argument("--learning-rate", type=float, default=0.2)
    p.add_argument("--seed", type=int, default=None)
    return p.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    rng = np.random.default_rng(args.seed)

    print("Reading data.")
    images = read_images(args.images)
    labels = read_labels(args.labels)
    if len(images) != len(labels):
        raise SystemExit(
            f"image/label count mismatch: {len(images)} images, {len(labels)} labels"
        )

    print("Constructing data tensors.")
    targets = one_hot(labels, 10)

    model = MNISTClassifier(hidden_size=args.hidden_size, rng=rng)
    optimizer = build_optimizer(args.optimizer, learning_rate=args.learning_rate)

    history = model.fit(
        images,
        targets,
        loss=negative_log_likelihood,
        optimizer=optimizer,
        metrics=[categorical_accuracy],
        batch_size=args.batch_size,
        epochs=args.epochs,
        shuffle=True,
        drop_remainder=True,
        rng=rng,
    )

    final = history.last()
    seen = (len(images) // args.batch_size) * args.batch_size
    correct = int(round(final["categorical_accuracy"] * seen))
    print(f"Final epoch: {correct}/{seen} correct, loss {final['loss']:.6f}")


if __name__ == "__main__":
    main()
