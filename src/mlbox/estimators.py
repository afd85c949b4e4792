# -*- coding: utf-8 -*-
"""
mlbox.estimators
================

scikit-learn style wrappers around the functional tree and forest engine.

- :class:`DecisionTreeClassifier` / :class:`DecisionTreeRegressor`
- :class:`RandomForestClassifier` / :class:`RandomForestRegressor`

Hyperparameters are those of :func:`mlbox.tree.build_tree` and
:func:`mlbox.forest.build_forest`; ``random_state`` seeds the explicit random
source passed to the engine, so two fits with the same integer seed give the
same model.  Features may mix numeric and categorical columns and contain
missing values (``None`` / ``numpy.nan``); pass them as an ``object`` array
when they are mixed.

Classifiers always build classification trees, even for integer labels, and
report probabilities in the order of :attr:`classes_`.
"""

from __future__ import annotations
import logging
from typing import Optional

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin, RegressorMixin

from . import tree as _tree
from .forest import build_forest
from .utils import check_rng

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Bases
# -----------------------------------------------------------------------------
class _BaseDecisionTree(BaseEstimator):
    """
    Single decision tree.

    Parameters
    ----------
    max_depth : int or None, default=None
        Maximum depth of the tree (the root is at depth 1).  ``None`` means
        the number of training records, i.e. no limit.
    min_gain : float, default=0.0
        Minimum information gain required to split a node.
    min_records : int, default=2
        Nodes with this many records or fewer are not split.
    max_features : int or None, default=None
        Number of random features inspected at each split; all if ``None``.
    splitting_criterion : {"gini", "entropy", "variance"} or None, default=None
        ``None`` selects ``"gini"`` for classifiers and ``"variance"`` for
        regressors.
    random_state : int, numpy.random.Generator or None, default=None
        Random source for feature subsampling and missing value routing.
    feature_names : list[str] or None, default=None
        Names used by :meth:`print_tree` and :meth:`export_rules`.
    verbose : int, default=0
        When positive, a summary of the fitted model is logged at INFO level.

    Attributes
    ----------
    model_ : Leaf or DecisionNode
        Root of the fitted tree.
    n_features_in_ : int
        Number of features seen during :meth:`fit`.
    """

    _force_classification = False

    def __init__(self, *, max_depth: Optional[int] = None, min_gain: float = 0.0,
                 min_records: int = 2, max_features: Optional[int] = None,
                 splitting_criterion: Optional[str] = None, random_state=None,
                 feature_names: Optional[list[str]] = None, verbose: int = 0):
        self.max_depth = max_depth
        self.min_gain = min_gain
        self.min_records = min_records
        self.max_features = max_features
        self.splitting_criterion = splitting_criterion
        self.random_state = random_state
        self.feature_names = feature_names
        self.verbose = verbose

    def _hyperparameters(self) -> dict:
        return dict(max_depth=self.max_depth, min_gain=self.min_gain, min_records=self.min_records,
                    max_features=self.max_features, splitting_criterion=self.splitting_criterion,
                    force_classification=self._force_classification)

    def _build(self, X, y, rng):
        return _tree.build_tree(X, y, rng=rng, **self._hyperparameters())

    def _summary(self) -> str:
        return f"depth={_tree.tree_depth(self.model_)}, leaves={_tree.n_leaves(self.model_)}"

    def fit(self, X, y):
        X = np.asarray(X, dtype=object)
        y = np.asarray(y)
        if X.ndim != 2:
            raise ValueError(f"Expected a 2D feature matrix, got an array of shape {X.shape}")
        if self.feature_names is not None and len(self.feature_names) != X.shape[1]:
            raise ValueError("feature_names length must match X.shape[1]")
        self.n_features_in_ = X.shape[1]
        if self._force_classification:
            self.classes_ = np.unique(y)
        self.model_ = self._build(X, y, check_rng(self.random_state))
        if self.verbose:
            logger.info("%s fitted: %s", type(self).__name__, self._summary())
        return self

    def _check_fitted(self):
        if getattr(self, "model_", None) is None:
            raise ValueError("Estimator not fitted. Call fit(...) first.")

    def _raw_predict(self, X):
        self._check_fitted()
        return _tree.predict(self.model_, X)

    def _maybe_feature_names(self, feature_names=None):
        return feature_names if feature_names is not None else self.feature_names

    def print_tree(self, feature_names=None) -> None:
        """Pretty-print the fitted tree to ``stdout``."""
        self._check_fitted()
        _tree.print_tree(self.model_, self._maybe_feature_names(feature_names))

    def export_rules(self, *, feature_names=None) -> list[str]:
        """Export the fitted tree as ``"<antecedent> => <prediction>"`` rules."""
        self._check_fitted()
        return _tree.export_rules(self.model_, self._maybe_feature_names(feature_names))

    def export_graphviz(self, filename: Optional[str] = None, *, feature_names=None,
                        format: str = "png") -> str:
        """Export the fitted tree with Graphviz (see :func:`mlbox.tree.export_graphviz`)."""
        self._check_fitted()
        return _tree.export_graphviz(self.model_, filename,
                                     feature_names=self._maybe_feature_names(feature_names),
                                     format=format)


class _BaseRandomForest(_BaseDecisionTree):
    """
    Random forest (bagging of decision trees).

    Takes the parameters of the single tree estimators plus ``n_trees``
    (default 30); ``max_features=None`` means ``round(sqrt(n_features))``.

    Attributes
    ----------
    model_ : Forest
        The fitted trees.
    """

    def __init__(self, n_trees: int = 30, *, max_depth: Optional[int] = None, min_gain: float = 0.0,
                 min_records: int = 2, max_features: Optional[int] = None,
                 splitting_criterion: Optional[str] = None, random_state=None,
                 feature_names: Optional[list[str]] = None, verbose: int = 0):
        super().__init__(max_depth=max_depth, min_gain=min_gain, min_records=min_records,
                         max_features=max_features, splitting_criterion=splitting_criterion,
                         random_state=random_state, feature_names=feature_names, verbose=verbose)
        self.n_trees = n_trees

    def _build(self, X, y, rng):
        return build_forest(X, y, self.n_trees, rng=rng, **self._hyperparameters())

    def _summary(self) -> str:
        return f"{len(self.model_)} trees, max_features={self.model_.params['max_features']}"

    def print_tree(self, feature_names=None) -> None:
        raise ValueError("print_tree only available for single trees")

    def export_rules(self, *, feature_names=None) -> list[str]:
        raise ValueError("export_rules only available for single trees")

    def export_graphviz(self, filename=None, *, feature_names=None, format="png") -> str:
        raise ValueError("export_graphviz only available for single trees")


class _ClassifierOutput:
    """Probability and label outputs of classification trees and forests."""

    _force_classification = True

    def predict_proba(self, X):
        """
        Predict class probabilities.

        Returns
        -------
        ndarray of shape (n_samples, n_classes)
            Probabilities ordered like :attr:`classes_`.
        """
        dists = self._raw_predict(X)
        keys = [str(c) for c in self.classes_.tolist()]
        return np.array([[d.get(k, 0.0) for k in keys] for d in dists], dtype=float)

    def predict(self, X):
        """Most probable class of each sample."""
        proba = self.predict_proba(X)
        return self.classes_[np.argmax(proba, axis=1)]


class _RegressorOutput:

    def predict(self, X):
        """Predicted value of each sample."""
        return self._raw_predict(X)


# -----------------------------------------------------------------------------
# Public estimators
# -----------------------------------------------------------------------------
class DecisionTreeClassifier(ClassifierMixin, _ClassifierOutput, _BaseDecisionTree):
    """Decision tree classifier; see the parameters of the single tree estimators."""


class DecisionTreeRegressor(RegressorMixin, _RegressorOutput, _BaseDecisionTree):
    """Decision tree regressor (variance criterion by default)."""


class RandomForestClassifier(ClassifierMixin, _ClassifierOutput, _BaseRandomForest):
    """Random forest classifier averaging the class probabilities of its trees."""


class RandomForestRegressor(RegressorMixin, _RegressorOutput, _BaseRandomForest):
    """Random forest regressor averaging the predictions of its trees."""
