# -*- coding: utf-8 -*-
"""
mlbox.tree
==========

Decision tree engine: impurity metrics, split predicates, the partitioner,
the best split search, recursive tree construction and prediction.

Trees can be used for regression or classification depending on the type of
the labels (numeric or not).  Classification can be forced on numeric labels
with ``force_classification=True``, typically when integer labels encode
categories rather than cardinal measures.

Features may mix numeric and categorical columns and may contain missing
values (``None`` or ``numpy.nan``).  Numeric values are split with ``>=``
questions, categorical values with ``==`` questions.  During training,
records missing the questioned feature are sent at random to either branch in
proportion to the records that do have it; during prediction they follow both
branches and the two predictions are combined with the same proportions.

A tree is represented by its root node, either a :class:`Leaf` or a
:class:`DecisionNode`.  A forest (see :mod:`mlbox.forest`) is any sequence of
trees; :func:`predict` accepts both.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import numpy as np

from .utils import (check_rng, class_counts, is_missing, is_numeric,
                    labels_are_numeric, mean_dicts, mode)

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Impurity metrics
# -----------------------------------------------------------------------------
def _frequencies(y) -> np.ndarray:
    counts = np.fromiter(class_counts(y).values(), dtype=float)
    return counts / counts.sum()

def gini_impurity(y) -> float:
    """Gini impurity ``1 - sum(p_i ** 2)`` of a categorical label vector."""
    p = _frequencies(y)
    return float(1.0 - np.sum(p * p))

def entropy(y) -> float:
    """Entropy ``-sum(p_i * log2(p_i))`` of a categorical label vector."""
    p = _frequencies(y)
    return float(-np.sum(p * np.log2(p)))

def variance(y) -> float:
    """Population variance (denominator ``n``) of a numeric label vector."""
    return float(np.var(np.asarray(y, dtype=float)))

_CRITERIA = {"gini": gini_impurity, "entropy": entropy, "variance": variance}

def _criterion(name: str):
    try:
        return _CRITERIA[name]
    except KeyError:
        raise ValueError(
            f"Splitting criterion not supported: {name!r} (use one of {sorted(_CRITERIA)})"
        ) from None


# -----------------------------------------------------------------------------
# Nodes
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Question:
    """
    A question used to partition a dataset.

    Records a column index and a reference value.  Numeric values are compared
    with ``>=``, anything else with ``==``.
    """
    column: int
    value: Any

    @property
    def condition(self) -> str:
        return ">=" if is_numeric(self.value) else "=="

    def __str__(self) -> str:
        return f"Is col {self.column} {self.condition} {self.value} ?"


@dataclass(frozen=True, eq=False)
class Leaf:
    """
    Terminal node of a tree.

    Attributes
    ----------
    raw_predictions : ndarray
        Labels of the training records that ended in this leaf.
    predictions : float or dict
        Mean of the labels (regression) or mapping class -> relative
        frequency (classification).
    depth : int
        Depth of the node, the root being at depth 1.
    """
    raw_predictions: np.ndarray
    predictions: Union[float, dict]
    depth: int

    @classmethod
    def from_labels(cls, y, depth: int) -> "Leaf":
        y = np.asarray(y)
        if labels_are_numeric(y):
            return cls(y, float(np.mean(y.astype(float))), depth)
        counts = class_counts(y)
        total = sum(counts.values())
        return cls(y, {k: c / total for k, c in counts.items()}, depth)


@dataclass(frozen=True, eq=False)
class DecisionNode:
    """
    Non-terminal node of a tree.

    ``p_true`` is the share of the training records having the questioned
    feature that matched the question; it weights the two branches when a
    record to predict misses that feature.
    """
    question: Question
    true_branch: Union[Leaf, "DecisionNode"]
    false_branch: Union[Leaf, "DecisionNode"]
    depth: int
    p_true: float = 0.5


def _as_matrix(x) -> np.ndarray:
    x = np.asarray(x, dtype=object)
    if x.ndim != 2:
        raise ValueError(f"Expected a 2D feature matrix, got an array of shape {x.shape}")
    return x


# -----------------------------------------------------------------------------
# Questions and partitions
# -----------------------------------------------------------------------------
def match(question: Question, x) -> bool:
    """
    Answer ``question`` for the feature record ``x``.

    Numeric features are compared by inequality (``>=``), categorical ones by
    equality.  ``x`` must not be missing the questioned feature.
    """
    return _answer(question, x[question.column])


def _answer(question: Question, val) -> bool:
    if is_numeric(val) and is_numeric(question.value):
        return bool(val >= question.value)
    return bool(val == question.value)


def _split_column(question: Question, col: np.ndarray, rng: np.random.Generator):
    n = len(col)
    missing_idx = np.fromiter((is_missing(v) for v in col), dtype=bool, count=n)
    true_idx = np.zeros(n, dtype=bool)
    for i in np.flatnonzero(~missing_idx):
        true_idx[i] = _answer(question, col[i])
    false_idx = ~missing_idx & ~true_idx
    n_true, n_false = int(true_idx.sum()), int(false_idx.sum())
    p_true = n_true / (n_true + n_false) if (n_true + n_false) > 0 else 0.5
    miss = np.flatnonzero(missing_idx)
    if miss.size:
        to_true = rng.random(miss.size) < p_true
        true_idx[miss[to_true]] = True
        false_idx[miss[~to_true]] = True
    return true_idx, false_idx, p_true


def partition(question: Question, x, rng=None):
    """
    Split the records of ``x`` into those matching ``question`` and the others.

    Records missing the questioned feature are assigned to the "true" side with
    probability ``p``, the share of non-missing records that matched, by
    independent draws from ``rng``.  No record is dropped.

    Returns
    -------
    (ndarray of bool, ndarray of bool)
        The ``true`` and ``false`` masks; they are disjoint and cover all rows.
    """
    x = _as_matrix(x)
    true_idx, false_idx, _ = _split_column(question, x[:, question.column], check_rng(rng))
    return true_idx, false_idx


# -----------------------------------------------------------------------------
# Split search
# -----------------------------------------------------------------------------
def info_gain(left_y, right_y, parent_uncertainty: float, *, splitting_criterion: str) -> float:
    """
    Information gain of a partition.

    Difference between the impurity of the parent labels and the impurity of
    the two children weighted by their number of records.
    """
    crit = _criterion(splitting_criterion)
    p = len(left_y) / (len(left_y) + len(right_y))
    return parent_uncertainty - p * crit(left_y) - (1 - p) * crit(right_y)


def _search_split(x, y, max_features, splitting_criterion, rng):
    current_uncertainty = _criterion(splitting_criterion)(y)
    best_gain, best = 0.0, None
    for d in rng.permutation(x.shape[1])[:max_features]:
        col = x[:, d]
        for val in dict.fromkeys(v for v in col if not is_missing(v)):
            question = Question(int(d), val)
            true_idx, false_idx, p_true = _split_column(question, col, rng)
            if not true_idx.any() or not false_idx.any():
                continue
            gain = info_gain(y[true_idx], y[false_idx], current_uncertainty,
                             splitting_criterion=splitting_criterion)
            # ties keep the first candidate
            if gain > best_gain:
                best_gain, best = gain, (question, true_idx, false_idx, p_true)
    return best_gain, best


def find_best_split(x, y, *, max_features: Optional[int] = None,
                    splitting_criterion: Optional[str] = None, rng=None):
    """
    Find the question with the highest information gain.

    Looks at ``max_features`` randomly chosen columns and, for each of them,
    at every distinct non-missing value as a candidate question.  Candidates
    leaving a branch empty are skipped.

    Parameters
    ----------
    x : array-like of shape (n_records, n_features)
        Feature records.
    y : array-like of shape (n_records,)
        Labels.
    max_features : int, optional
        Number of randomly drawn columns to inspect.  Defaults to all of them.
    splitting_criterion : {"gini", "entropy", "variance"}, optional
        Impurity metric.  Defaults to ``"variance"`` for numeric labels and
        ``"gini"`` otherwise.
    rng : numpy.random.Generator or int, optional
        Random source for the column draw and the routing of missing values.

    Returns
    -------
    (float, Question or None)
        The best gain and its question; the question is ``None`` when nothing
        gains more than zero.
    """
    x = _as_matrix(x)
    y = np.asarray(y)
    if splitting_criterion is None:
        splitting_criterion = "variance" if labels_are_numeric(y) else "gini"
    if max_features is None:
        max_features = x.shape[1]
    gain, best = _search_split(x, y, max_features, splitting_criterion, check_rng(rng))
    return gain, (best[0] if best is not None else None)


# -----------------------------------------------------------------------------
# Tree construction
# -----------------------------------------------------------------------------
def build_tree(x, y, depth: int = 1, *, max_depth: Optional[int] = None, min_gain: float = 0.0,
               min_records: int = 2, max_features: Optional[int] = None,
               splitting_criterion: Optional[str] = None, force_classification: bool = False,
               rng=None) -> Union[Leaf, DecisionNode]:
    """
    Build (define and train) a decision tree.

    Recursively looks for the best question at each node until either the
    records are fully separated or a stopping condition is met.

    Parameters
    ----------
    x : array-like of shape (n_records, n_features)
        Features.  Cells may be missing (``None`` or ``numpy.nan``).
    y : array-like of shape (n_records,)
        Labels, numeric (regression) or categorical (classification).
    depth : int, default=1
        Depth of the node being built.
    max_depth : int, optional
        Nodes at this depth become leaves.  Defaults to ``n_records``, i.e. no
        limit.
    min_gain : float, default=0.0
        A node whose best split does not gain more than this becomes a leaf.
    min_records : int, default=2
        A node with this many records or fewer becomes a leaf.
    max_features : int, optional
        Number of random columns inspected at each split.  Defaults to all.
    splitting_criterion : {"gini", "entropy", "variance"}, optional
        Defaults to ``"gini"`` for categorical labels and ``"variance"`` for
        numeric ones.
    force_classification : bool, default=False
        Treat numeric labels as categories (they are converted to strings).
    rng : numpy.random.Generator or int, optional
        Random source for column subsampling and missing value routing.

    Returns
    -------
    Leaf or DecisionNode
        The root of the tree.
    """
    x = _as_matrix(x)
    y = np.asarray(y)
    if x.shape[0] != len(y):
        raise ValueError(f"x and y have a different number of records: {x.shape[0]} vs {len(y)}")
    if force_classification and labels_are_numeric(y):
        y = np.array([str(v) for v in y.tolist()], dtype=object)
    if splitting_criterion is None:
        splitting_criterion = "variance" if labels_are_numeric(y) else "gini"
    _criterion(splitting_criterion)
    params = dict(
        max_depth=x.shape[0] if max_depth is None else int(max_depth),
        min_gain=float(min_gain),
        min_records=int(min_records),
        max_features=x.shape[1] if max_features is None else int(max_features),
        splitting_criterion=splitting_criterion,
    )
    return _grow(x, y, depth, params, check_rng(rng))


def _grow(x, y, depth, params, rng):
    if len(y) <= params["min_records"] or depth >= params["max_depth"]:
        return Leaf.from_labels(y, depth)

    gain, best = _search_split(x, y, params["max_features"], params["splitting_criterion"], rng)
    if best is None or gain <= params["min_gain"]:
        return Leaf.from_labels(y, depth)

    question, true_idx, false_idx, p_true = best
    logger.debug("depth %d: %s (gain=%.6g, %d/%d records)",
                 depth, question, gain, int(true_idx.sum()), int(false_idx.sum()))
    true_branch = _grow(x[true_idx], y[true_idx], depth + 1, params, rng)
    false_branch = _grow(x[false_idx], y[false_idx], depth + 1, params, rng)
    return DecisionNode(question, true_branch, false_branch, depth, p_true)


# -----------------------------------------------------------------------------
# Prediction
# -----------------------------------------------------------------------------
def _combine(predictions, weights=None):
    if isinstance(predictions[0], dict):
        return mean_dicts(predictions, weights)
    return float(np.average(predictions, weights=weights))


def predict_single(model, x):
    """
    Predict a single feature record with a tree or a forest.

    Returns the leaf ``predictions`` reached by ``x``: a number for regression
    trees or a ``{class: probability}`` dictionary for classification trees.
    For a forest the predictions of its trees are averaged (key-wise for
    dictionaries, absent classes counting as zero).
    """
    if isinstance(model, Leaf):
        return model.predictions
    if isinstance(model, DecisionNode):
        if is_missing(x[model.question.column]):
            return _combine([predict_single(model.true_branch, x),
                             predict_single(model.false_branch, x)],
                            [model.p_true, 1.0 - model.p_true])
        branch = model.true_branch if match(model.question, x) else model.false_branch
        return predict_single(branch, x)
    return _combine([predict_single(tree, x) for tree in model])


def predict(model, x):
    """
    Predict the labels of a feature dataset with a tree or a forest.

    Parameters
    ----------
    model : Leaf, DecisionNode or sequence of trees
        A tree (its root) or a forest.
    x : array-like of shape (n_records, n_features)
        Records to predict.  A single 1D record is accepted too.

    Returns
    -------
    ndarray of float or list of dict
        Numeric predictions for regression models, one probability dictionary
        per record for classification models (see :func:`mlbox.utils.mode`).
    """
    x = np.asarray(x, dtype=object)
    if x.ndim == 1:
        x = x.reshape(1, -1)
    predictions = [predict_single(model, row) for row in x]
    if _is_classification(model):
        return predictions
    return np.asarray(predictions, dtype=float)


def _is_classification(model) -> bool:
    node = model if isinstance(model, (Leaf, DecisionNode)) else model[0]
    while isinstance(node, DecisionNode):
        node = node.true_branch
    return isinstance(node.predictions, dict)


# -----------------------------------------------------------------------------
# Introspection / printing / exports
# -----------------------------------------------------------------------------
def n_leaves(node) -> int:
    if isinstance(node, Leaf):
        return 1
    return n_leaves(node.true_branch) + n_leaves(node.false_branch)


def tree_depth(node) -> int:
    """Depth of the deepest leaf (a single-leaf tree has depth 1)."""
    if isinstance(node, Leaf):
        return node.depth
    return max(tree_depth(node.true_branch), tree_depth(node.false_branch))


def _feature_name(column: int, fn) -> str:
    if fn is not None and 0 <= column < len(fn):
        return str(fn[column])
    return f"col {column}"


def _describe(question: Question, fn=None, answer: bool = True) -> str:
    name = _feature_name(question.column, fn)
    if answer:
        return f"{name} {question.condition} {question.value}"
    negated = "<" if question.condition == ">=" else "!="
    return f"{name} {negated} {question.value}"


def _format_prediction(predictions) -> str:
    if isinstance(predictions, dict):
        return "{" + ", ".join(f"{k}: {v:.4g}" for k, v in predictions.items()) + "}"
    return f"{predictions:.6g}"


def print_tree(node, feature_names=None) -> None:
    """Pretty-print a decision tree to ``stdout``."""
    print("*** Printing Decision Tree: ***")
    _print_node(node, "", feature_names)


def _print_node(node, indent, fn):
    if isinstance(node, Leaf):
        print(f"{indent}  {_format_prediction(node.predictions)}")
        return
    print(f"{indent}{node.depth}. Is {_describe(node.question, fn)} ?")
    print(f"{indent}--> True :")
    _print_node(node.true_branch, indent + "\t", fn)
    print(f"{indent}--> False:")
    _print_node(node.false_branch, indent + "\t", fn)


def export_rules(node, feature_names=None) -> list[str]:
    """
    Export every root-to-leaf path as a rule string.

    Each rule has the form ``"<antecedent> => <prediction>"`` where the
    prediction is the most probable class for classification trees and
    ``value=<mean>`` for regression trees.
    """
    rules: list[str] = []
    _collect_rules(node, [], rules, feature_names)
    return rules


def _collect_rules(node, parts, rules, fn):
    if isinstance(node, Leaf):
        body = " AND ".join(parts) if parts else "<root>"
        if isinstance(node.predictions, dict):
            rules.append(f"{body} => {mode(node.predictions)}")
        else:
            rules.append(f"{body} => value={node.predictions:.6g}")
        return
    _collect_rules(node.true_branch, parts + [_describe(node.question, fn, True)], rules, fn)
    _collect_rules(node.false_branch, parts + [_describe(node.question, fn, False)], rules, fn)


def export_graphviz(node, filename: Optional[str] = None, *, feature_names=None,
                    format: str = "png") -> str:
    """
    Export a tree in Graphviz format.

    Requires the ``graphviz`` Python package.  With ``filename=None`` the DOT
    source is returned.  ``format="dot"`` writes the DOT source without
    calling the external ``dot`` binary; for other formats the binary is
    used when available, falling back to a ``.dot`` file otherwise.

    Returns
    -------
    str
        Path to the written file, or the DOT source if ``filename`` is None.
    """
    try:
        import graphviz
    except ImportError as e:
        raise RuntimeError("Graphviz is required for export_graphviz but not installed.") from e
    dot = graphviz.Digraph(format=format)
    _add_graph_nodes(dot, node, "0", feature_names)
    if filename is None:
        return dot.source
    if format.lower() == "dot":
        path = f"{filename}.dot"
        dot.save(path)
        return path
    try:
        dot.render(filename, cleanup=True)
        return f"{filename}.{format}"
    except graphviz.ExecutableNotFound:
        fallback_path = f"{filename}.dot"
        dot.save(fallback_path)
        return fallback_path


def _add_graph_nodes(dot, node, name: str, fn):
    if isinstance(node, Leaf):
        dot.node(name, f"{_format_prediction(node.predictions)}\nN={len(node.raw_predictions)}",
                 shape="box", style="filled", color="lightgrey")
        return
    dot.node(name, _describe(node.question, fn), shape="ellipse", style="filled", color="lightblue")
    t_id, f_id = name + "T", name + "F"
    _add_graph_nodes(dot, node.true_branch, t_id, fn)
    _add_graph_nodes(dot, node.false_branch, f_id, fn)
    dot.edge(name, t_id, label="True")
    dot.edge(name, f_id, label="False")
