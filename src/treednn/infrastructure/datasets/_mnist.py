"""
MNIST IDX readers.

The MNIST distribution ships four gzip-compressed IDX files. Image files
carry a 16-byte header (magic, count, rows, cols) followed by one unsigned
byte per pixel; label files carry an 8-byte header (magic, count) followed by
one unsigned byte per label.

Images are returned flattened to ``(N, rows * cols)`` float32 with pixels
scaled to ``[0, 1]``; labels are returned as integer class ids.
"""

import gzip
from typing import Tuple

import numpy as np

IMAGE_HEADER_BYTES = 16
LABEL_HEADER_BYTES = 8
IMAGE_MAGIC = 2051
LABEL_MAGIC = 2049


def _read_gzip(path: str) -> bytes:
    with gzip.open(path, "rb") as f:
        return f.read()


def _header(raw: bytes, n_fields: int) -> Tuple[int, ...]:
    return tuple(int(v) for v in np.frombuffer(raw, dtype=">u4", count=n_fields))


def read_images(path: str) -> np.ndarray:
    """
    Read a gzip-compressed IDX image file.

    Parameters
    ----------
    path : str
        Path to e.g. ``train-images-idx3-ubyte.gz``.

    Returns
    -------
    np.ndarray
        Float32 array of shape (N, rows * cols) with values in ``[0, 1]``.

    Raises
    ------
    ValueError
        If the file is truncated or does not carry the image magic number.
    """
    raw = _read_gzip(path)
    if len(raw) < IMAGE_HEADER_BYTES:
        raise ValueError(f"{path}: too short for an IDX image header")
    magic, count, rows, cols = _header(raw, 4)
    if magic != IMAGE_MAGIC:
        raise ValueError(f"{path}: bad image magic number {magic}, expected {IMAGE_MAGIC}")

    pixels = np.frombuffer(raw, dtype=np.uint8, offset=IMAGE_HEADER_BYTES)
    if pixels.size != count * rows * cols:
        raise ValueError(
            f"{path}: expected {count * rows * cols} pixels, found {pixels.size}"
        )
    return pixels.reshape(count, rows * cols).astype(np.float32) / 255.0


def read_labels(path: str) -> np.ndarray:
    """
    Read a gzip-compressed IDX label file.

    Returns
    -------
    np.ndarray
        Int64 array of shape (N,).
    """
    raw = _read_gzip(path)
    if len(raw) < LABEL_HEADER_BYTES:
        raise ValueError(f"{path}: too short for an IDX label header")
    magic, count = _header(raw, 2)
    if magic != LABEL_MAGIC:
        raise ValueError(f"{path}: bad label magic number {magic}, expected {LABEL_MAGIC}")

    labels = np.frombuffer(raw, dtype=np.uint8, offset=LABEL_HEADER_BYTES)
    if labels.size != count:
        raise ValueError(f"{path}: expected {count} labels, found {labels.size}")
    return labels.astype(np.int64)


def one_hot(labels: np.ndarray, depth: int) -> np.ndarray:
    """
    Encode integer class ids as float32 one-hot rows.

    Raises
    ------
    ValueError
        If a label falls outside ``[0, depth)``.
    """
    labels = np.asarray(labels, dtype=np.int64)
    if labels.size and (labels.min() < 0 or labels.max() >= depth):
        raise ValueError(f"labels must lie in [0, {depth}), got range "
                         f"[{labels.min()}, {labels.max()}]")
    out = np.zeros((labels.shape[0], depth), dtype=np.float32)
    out[np.arange(labels.shape[0]), labels] = 1.0
    return out


def load_mnist(images_path: str, labels_path: str) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load one MNIST split as ``(images, one_hot_labels)``.

    Raises
    ------
    ValueError
        If the two files disagree on the number of samples.
    """
    images = read_images(images_path)
    labels = read_labels(labels_path)
    if len(images) != len(labels):
        raise ValueError(
            f"image/label count mismatch: {len(images)} images, {len(labels)} labels"
        )
    return images, one_hot(labels, 10)
