# -*- coding: utf-8 -*-
"""
mlbox.forest
============

Random forests: bagging of decision trees built by :func:`mlbox.tree.build_tree`.

Each tree is trained on a bootstrap resample of the records (``N`` records
drawn with replacement) and inspects only ``max_features`` random columns at
each split, which decorrelates the trees.  The forest prediction averages the
predictions of its trees (see :func:`mlbox.tree.predict`).
"""

from __future__ import annotations
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .tree import _as_matrix, _criterion, build_tree
from .utils import check_rng, labels_are_numeric

logger = logging.getLogger(__name__)


@dataclass
class Forest(Sequence):
    """
    Ordered collection of independently built trees.

    Attributes
    ----------
    trees : list
        Root nodes of the trees.
    params : dict
        Hyperparameters shared by every tree of the forest.
    """
    trees: list = field(default_factory=list)
    params: dict = field(default_factory=dict)

    def __getitem__(self, i):
        return self.trees[i]

    def __len__(self) -> int:
        return len(self.trees)


def build_forest(x, y, n_trees: int = 30, *, max_depth: Optional[int] = None, min_gain: float = 0.0,
                 min_records: int = 2, max_features: Optional[int] = None,
                 splitting_criterion: Optional[str] = None, force_classification: bool = False,
                 rng=None) -> Forest:
    """
    Build (define and train) a forest of decision trees.

    The parameters are those of :func:`mlbox.tree.build_tree`, plus ``n_trees``,
    except that ``max_features`` defaults to ``round(sqrt(n_features))``.

    Every tree gets its own generator spawned from ``rng``: the bootstrap draw
    and the random choices of one tree never depend on those of another.

    Returns
    -------
    Forest
        Exactly ``n_trees`` trees.
    """
    x = _as_matrix(x)
    y = np.asarray(y)
    n, d = x.shape
    if n != len(y):
        raise ValueError(f"x and y have a different number of records: {n} vs {len(y)}")
    if int(n_trees) < 1:
        raise ValueError("n_trees must be at least 1")
    if force_classification and labels_are_numeric(y):
        y = np.array([str(v) for v in y.tolist()], dtype=object)
    if splitting_criterion is None:
        splitting_criterion = "variance" if labels_are_numeric(y) else "gini"
    _criterion(splitting_criterion)

    params = dict(
        max_depth=n if max_depth is None else int(max_depth),
        min_gain=float(min_gain),
        min_records=int(min_records),
        max_features=max(1, int(round(np.sqrt(d)))) if max_features is None else int(max_features),
        splitting_criterion=splitting_criterion,
    )
    forest = Forest(trees=[], params=dict(params, force_classification=bool(force_classification)))
    for i, tree_rng in enumerate(check_rng(rng).spawn(int(n_trees))):
        to_sample = tree_rng.integers(0, n, size=n)
        forest.trees.append(build_tree(x[to_sample], y[to_sample], rng=tree_rng, **params))
        logger.debug("tree %d/%d built", i + 1, n_trees)
    return forest
