# mlbox/__init__.py
"""
mlbox: decision trees, random forests and gradient optimisers in pure Python.

Exports:
    - build_tree, build_forest, predict
    - DecisionTreeClassifier, DecisionTreeRegressor
    - RandomForestClassifier, RandomForestRegressor
    - SGD, ADAM, DebugOptAlg, init_opt_alg, single_update
"""
from .tree import DecisionNode, Leaf, Question, build_tree, predict, print_tree
from .forest import Forest, build_forest
from .estimators import (DecisionTreeClassifier, DecisionTreeRegressor,
                         RandomForestClassifier, RandomForestRegressor)
from .optim import ADAM, SGD, DebugOptAlg, init_opt_alg, single_update
from .utils import accuracy, mean_relative_error, mode

__all__ = [
    "Question", "Leaf", "DecisionNode", "Forest",
    "build_tree", "build_forest", "predict", "print_tree",
    "DecisionTreeClassifier", "DecisionTreeRegressor",
    "RandomForestClassifier", "RandomForestRegressor",
    "SGD", "ADAM", "DebugOptAlg", "init_opt_alg", "single_update",
    "accuracy", "mean_relative_error", "mode",
]
__version__ = "0.1.0"
