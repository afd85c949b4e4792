import numpy as np
import pytest
from mlbox.tree import (DecisionNode, Leaf, Question, build_tree, export_graphviz,
                        export_rules, find_best_split, gini_impurity, match, n_leaves,
                        partition, predict, predict_single, print_tree, tree_depth, variance)
from mlbox.utils import mode


def _tiny_dataset():
    """Return a small dataset with a numeric and a categorical feature."""
    X = np.array([[1, "a"], [2, "a"], [3, "b"], [4, "b"]], dtype=object)
    y = np.array([0, 0, 1, 1])
    return X, y


def _walk(node, parent_depth=0):
    yield node, parent_depth
    if isinstance(node, DecisionNode):
        yield from _walk(node.true_branch, node.depth)
        yield from _walk(node.false_branch, node.depth)


def _leaves(node):
    return [n for n, _ in _walk(node) if isinstance(n, Leaf)]


# ---------------------------------------------------------------- questions

def test_match_numeric_and_categorical():
    assert match(Question(0, 3), [3, "a"])
    assert not match(Question(0, 3), [2, "a"])
    assert match(Question(1, "a"), [1, "a"])
    assert not match(Question(1, "a"), [1, "b"])


def test_question_str():
    assert str(Question(0, 3)) == "Is col 0 >= 3 ?"
    assert str(Question(1, "a")) == "Is col 1 == a ?"


# ---------------------------------------------------------------- partition

def test_partition_is_complete_and_disjoint():
    X = np.array([[1], [2], [3], [None], [np.nan]], dtype=object)
    t, f = partition(Question(0, 2), X, rng=0)
    assert not np.any(t & f)
    assert np.all(t | f)
    assert t[1] and t[2] and f[0]


def test_partition_missing_routing_converges_to_true_share():
    col = ["a"] * 30 + ["b"] * 70 + [None] * 10000
    X = np.array(col, dtype=object).reshape(-1, 1)
    t, f = partition(Question(0, "a"), X, rng=np.random.default_rng(1))
    missing_to_true = t[100:].mean()
    assert missing_to_true == pytest.approx(0.3, abs=0.02)
    assert t.sum() + f.sum() == len(col)


def test_partition_all_missing_is_complete():
    X = np.array([None, np.nan] * 5000, dtype=object).reshape(-1, 1)
    t, f = partition(Question(0, 1), X, rng=np.random.default_rng(2))
    assert not np.any(t & f)
    assert np.all(t | f)
    assert t.mean() == pytest.approx(0.5, abs=0.02)


# ---------------------------------------------------------------- split search

def test_find_best_split_perfect_separation():
    X, y = _tiny_dataset()
    gain, q = find_best_split(X, y, max_features=2, splitting_criterion="variance", rng=0)
    assert gain == pytest.approx(0.25)
    t, f = partition(q, X)
    assert set(y[t].tolist()) != set(y[f].tolist())
    assert len(set(y[t].tolist())) == 1 and len(set(y[f].tolist())) == 1


def test_find_best_split_ties_keep_first_candidate():
    X = np.array([["a"], ["b"], ["c"], ["d"]], dtype=object)
    y = np.array(["0", "1", "0", "1"])
    _, q = find_best_split(X, y, rng=0)
    assert q == Question(0, "a")


def test_find_best_split_no_gain():
    X, _ = _tiny_dataset()
    gain, q = find_best_split(X, np.array(["k"] * 4))
    assert gain == 0
    assert q is None


def test_find_best_split_subsamples_features():
    X = np.array([[0, "c", i] for i in range(8)], dtype=object)
    y = np.array(["a"] * 4 + ["b"] * 4)
    questions = [find_best_split(X, y, max_features=1, rng=seed)[1] for seed in range(20)]
    assert any(q is None for q in questions)
    assert any(q is not None and q.column == 2 for q in questions)


def test_find_best_split_unknown_criterion():
    X, y = _tiny_dataset()
    with pytest.raises(ValueError):
        find_best_split(X, y, splitting_criterion="mae")


def test_selected_split_never_increases_impurity():
    rng = np.random.default_rng(3)
    X = rng.normal(size=(40, 3)).astype(object)
    y = rng.choice(["a", "b", "c"], size=40)
    _, q = find_best_split(X, y, rng=rng)
    t, f = partition(q, X)
    p = t.mean()
    assert p * gini_impurity(y[t]) + (1 - p) * gini_impurity(y[f]) <= gini_impurity(y)


# ---------------------------------------------------------------- tree building

def test_end_to_end_tiny_dataset():
    X, y = _tiny_dataset()
    tree = build_tree(X, y, splitting_criterion="variance", min_records=1, max_depth=10,
                      max_features=2, rng=0)
    assert isinstance(tree, DecisionNode)
    q = tree.question
    assert (q.column, q.value) == (0, 3) or q.column == 1
    np.testing.assert_array_equal(predict(tree, X), [0, 0, 1, 1])


@pytest.mark.parametrize("labels", [["x"] * 6, [3.5] * 6])
def test_single_label_gives_single_leaf(labels):
    X = np.arange(12).reshape(6, 2)
    tree = build_tree(X, labels, min_records=0, max_depth=50, min_gain=-1.0)
    assert isinstance(tree, Leaf)
    assert tree.depth == 1


def test_round_trip_on_training_data():
    rng = np.random.default_rng(7)
    X = rng.permutation(30).reshape(-1, 1)
    y = rng.choice(["red", "green", "blue"], size=30)
    tree = build_tree(X, y, min_records=1, min_gain=0.0, rng=rng)
    assert mode(predict(tree, X)) == y.tolist()


def test_round_trip_with_entropy_criterion():
    X = np.array([[1, "u"], [2, "v"], [3, "u"], [4, "v"], [5, "w"], [6, "w"]], dtype=object)
    y = np.array(["a", "b", "a", "c", "b", "c"])
    tree = build_tree(X, y, min_records=1, splitting_criterion="entropy", rng=0)
    assert isinstance(tree, DecisionNode)
    assert mode(predict(tree, X)) == y.tolist()


def test_round_trip_with_forced_classification():
    X = np.array([[1, "u"], [2, "v"], [3, "u"], [4, "v"], [5, "w"]], dtype=object)
    y = np.array([1, 2, 1, 3, 2])
    tree = build_tree(X, y, min_records=1, force_classification=True, rng=0)
    predictions = predict(tree, X)
    assert all(isinstance(p, dict) for p in predictions)
    assert mode(predictions) == ["1", "2", "1", "3", "2"]


def test_structure_invariants_with_missing_values():
    rng = np.random.default_rng(11)
    X = rng.normal(size=(60, 3)).astype(object)
    X[rng.random((60, 3)) < 0.2] = None
    X[:, 2] = rng.choice(["p", "q", "r"], size=60)
    y = rng.choice(["a", "b"], size=60)
    tree = build_tree(X, y, min_records=1, rng=rng)
    for node, parent_depth in _walk(tree):
        assert node.depth == parent_depth + 1
    leaves = _leaves(tree)
    # every record ends in exactly one leaf
    assert sum(len(leaf.raw_predictions) for leaf in leaves) == 60
    for leaf in leaves:
        assert sum(leaf.predictions.values()) == pytest.approx(1.0)
        assert all(v >= 0 for v in leaf.predictions.values())
    assert n_leaves(tree) == len(leaves)


def test_max_depth_and_min_gain_stop_growth():
    X, y = _tiny_dataset()
    assert isinstance(build_tree(X, y, max_depth=1), Leaf)
    assert tree_depth(build_tree(X, y, max_depth=2, min_records=1)) <= 2
    assert isinstance(build_tree(X, y, min_gain=10.0), Leaf)
    assert isinstance(build_tree(X, y, min_records=4), Leaf)


def test_regression_leaf_is_mean():
    X = np.array([[1.0], [2.0], [10.0], [11.0]])
    y = np.array([1.0, 2.0, 10.0, 12.0])
    tree = build_tree(X, y)
    assert isinstance(tree, DecisionNode)
    assert tree.true_branch.predictions == pytest.approx(11.0)
    assert tree.false_branch.predictions == pytest.approx(1.5)
    assert variance(tree.false_branch.raw_predictions) == pytest.approx(0.25)


def test_same_seed_same_tree():
    rng = np.random.default_rng(5)
    X = rng.normal(size=(50, 4)).astype(object)
    X[rng.random((50, 4)) < 0.1] = np.nan
    y = rng.normal(size=50)
    a = build_tree(X, y, max_features=2, rng=42)
    b = build_tree(X, y, max_features=2, rng=42)
    assert export_rules(a) == export_rules(b)


def test_mismatched_lengths_raise():
    X, y = _tiny_dataset()
    with pytest.raises(ValueError):
        build_tree(X, y[:3])


# ---------------------------------------------------------------- prediction

def test_predict_missing_value_combines_branches():
    X = np.array([[1], [2], [3], [4]])
    y = np.array(["a", "a", "b", "b"])
    tree = build_tree(X, y)
    assert tree.question == Question(0, 3)
    assert tree.p_true == pytest.approx(0.5)
    for missing in (None, np.nan):
        p = predict_single(tree, [missing])
        assert p == pytest.approx({"a": 0.5, "b": 0.5})


def test_predict_regression_returns_float_array():
    X = np.array([[1.0], [2.0], [3.0]])
    tree = build_tree(X, [1.0, 2.0, 3.0], min_records=1)
    out = predict(tree, X)
    assert isinstance(out, np.ndarray) and out.dtype == float
    np.testing.assert_allclose(out, [1.0, 2.0, 3.0])
    assert predict(tree, [2.0]).shape == (1,)


def test_predict_empty_input_keeps_output_type():
    empty = np.empty((0, 1), dtype=object)
    cls_tree = build_tree(np.array([[1], [2], [3], [4]]), ["a", "a", "b", "b"])
    assert predict(cls_tree, empty) == []
    assert predict(Leaf.from_labels(["a"], 1), empty) == []
    reg_tree = build_tree(np.array([[1.0], [2.0]]), [1.0, 2.0], min_records=1)
    out = predict(reg_tree, empty)
    assert isinstance(out, np.ndarray) and out.shape == (0,)


# ---------------------------------------------------------------- exports

def test_print_tree(capsys):
    tree = build_tree(np.array([[1], [2], [3], [4]]), ["a", "a", "b", "b"])
    print_tree(tree)
    out = capsys.readouterr().out
    assert "Printing Decision Tree" in out
    assert "Is col 0 >= 3 ?" in out
    assert "--> True :" in out and "--> False:" in out


def test_export_rules():
    tree = build_tree(np.array([[1], [2], [3], [4]]), ["a", "a", "b", "b"])
    assert export_rules(tree) == ["col 0 >= 3 => b", "col 0 < 3 => a"]
    assert export_rules(tree, feature_names=["num"])[0] == "num >= 3 => b"
    reg = build_tree(np.array([[1.0], [2.0]]), [1.0, 2.0], min_records=1)
    assert all("value=" in r for r in export_rules(reg))


def test_export_rules_single_leaf():
    assert export_rules(build_tree([[1], [2]], ["a", "a"])) == ["<root> => a"]


def test_export_graphviz_source():
    pytest.importorskip("graphviz")
    tree = build_tree(np.array([[1], [2], [3], [4]]), ["a", "a", "b", "b"])
    src = export_graphviz(tree, feature_names=["num"])
    assert "digraph" in src
    assert "num >= 3" in src


def test_export_graphviz_dot_file(tmp_path):
    pytest.importorskip("graphviz")
    tree = build_tree(np.array([[1], [2], [3], [4]]), ["a", "a", "b", "b"])
    path = export_graphviz(tree, str(tmp_path / "tree"), format="dot")
    assert path.endswith(".dot")
    assert (tmp_path / "tree.dot").exists()
