import numpy as np
from time import perf_counter
from sklearn.datasets import load_iris
from mlbox import RandomForestClassifier, build_tree, predict, print_tree, accuracy

data = load_iris()
feats = list(data.feature_names)
X = data.data.astype(object)
y = data.target_names[data.target]

# knock out some measurements to exercise missing value handling
rng = np.random.default_rng(0)
X[rng.random(X.shape) < 0.1] = None

t0 = perf_counter()
tree = build_tree(X, y, max_depth=4, splitting_criterion="entropy", rng=rng)
print(f"build_tree: {perf_counter()-t0:.3f} s, accuracy={accuracy(predict(tree, X), y):.3f}")
print_tree(tree, feature_names=feats)

clf = RandomForestClassifier(n_trees=25, random_state=42, verbose=1)
t0 = perf_counter(); clf.fit(X, y); print(f"forest fit: {perf_counter()-t0:.3f} s")
print(f"forest accuracy: {clf.score(X, y):.3f}")
print(np.round(clf.predict_proba(X[:5]), 3))
