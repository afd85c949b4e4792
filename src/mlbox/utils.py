# -*- coding: utf-8 -*-
"""
mlbox.utils
===========

Small helpers shared by the tree engine and the estimators: missing value
detection, random source normalisation, class counting and the aggregation /
assessment functions used on tree and forest predictions.
"""

from __future__ import annotations
import numbers
from collections import Counter

import numpy as np


# -----------------------------------------------------------------------------
# Values
# -----------------------------------------------------------------------------
def is_missing(v) -> bool:
    """True for ``None`` and ``numpy.nan``."""
    return (v is None) or (isinstance(v, (float, np.floating)) and bool(np.isnan(v)))


def is_numeric(v) -> bool:
    return isinstance(v, (numbers.Number, np.number)) and not isinstance(v, (complex, np.complexfloating))


def labels_are_numeric(y) -> bool:
    """Whether a label vector describes a regression target."""
    y = np.asarray(y)
    if y.dtype.kind in "iufb":
        return True
    if y.dtype == object:
        return len(y) > 0 and all(is_numeric(v) for v in y)
    return False


def check_rng(rng=None) -> np.random.Generator:
    """
    Turn ``rng`` into a :class:`numpy.random.Generator`.

    ``None`` gives a freshly seeded generator, an ``int`` seeds a new one and
    an existing generator is returned unchanged.
    """
    if isinstance(rng, np.random.Generator):
        return rng
    if rng is None or isinstance(rng, (numbers.Integral, np.random.SeedSequence)):
        return np.random.default_rng(rng)
    raise ValueError(f"Cannot use {rng!r} as a random source")


# -----------------------------------------------------------------------------
# Class distributions
# -----------------------------------------------------------------------------
def class_counts(y) -> dict:
    """Count of each label, in order of first appearance."""
    return dict(Counter(y.tolist() if isinstance(y, np.ndarray) else y))


def mean_dicts(dicts, weights=None) -> dict:
    """
    Key-wise (weighted) average of a sequence of dictionaries.

    Keys absent from a dictionary count as zero for it.
    """
    dicts = list(dicts)
    if weights is None:
        weights = [1.0 / len(dicts)] * len(dicts)
    out: dict = {}
    for d, w in zip(dicts, weights):
        for k, v in d.items():
            out[k] = out.get(k, 0.0) + w * v
    return out


def mode(predictions):
    """
    Most probable class.

    Accepts a single ``{class: probability}`` dictionary or a list of them, in
    which case a list with one class per dictionary is returned. Ties keep the
    first class in the dictionary's order.
    """
    if isinstance(predictions, dict):
        return max(predictions, key=predictions.get)
    return [max(d, key=d.get) for d in predictions]


# -----------------------------------------------------------------------------
# Assessment
# -----------------------------------------------------------------------------
def accuracy(y_hat, y) -> float:
    """Share of correct predictions; probability dictionaries are reduced by :func:`mode`."""
    y_hat = list(y_hat)
    if len(y_hat) != len(y):
        raise ValueError("y_hat and y must have the same length")
    if y_hat and isinstance(y_hat[0], dict):
        y_hat = mode(y_hat)
    return float(np.mean([a == b for a, b in zip(y_hat, y)]))


def mean_relative_error(y_hat, y, *, norm_dim: bool = True, p: float = 1.0) -> float:
    """
    Mean relative error between predictions and true values.

    With ``norm_dim=True`` the error is the L-p norm of the deviations over
    the L-p norm of ``y``; otherwise it is the mean of the element-wise
    relative deviations raised to ``p``.
    """
    y_hat = np.asarray(y_hat, dtype=float)
    y = np.asarray(y, dtype=float)
    if y_hat.shape != y.shape:
        raise ValueError("y_hat and y must have the same shape")
    if norm_dim:
        return float(np.linalg.norm((y_hat - y).ravel(), p) / np.linalg.norm(y.ravel(), p))
    return float(np.mean(np.abs((y_hat - y) / y) ** p))
