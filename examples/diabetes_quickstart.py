from time import perf_counter
from sklearn.datasets import load_diabetes
from mlbox import DecisionTreeRegressor, RandomForestRegressor, mean_relative_error

data = load_diabetes()
X, y = data.data, data.target
feats = list(data.feature_names)

reg = DecisionTreeRegressor(max_depth=5, min_records=20, feature_names=feats, random_state=42)

t0 = perf_counter(); reg.fit(X, y); print(f"fit: {perf_counter()-t0:.3f} s")
print(f"tree R2: {reg.score(X, y):.3f}")
try:
    reg.export_graphviz("diabetes_tree", format="dot")
except RuntimeError as e:
    print(f"Skipping Graphviz export: {e}")
reg.print_tree()

forest = RandomForestRegressor(n_trees=20, max_depth=6, min_records=10, random_state=42)
t0 = perf_counter(); forest.fit(X, y); print(f"forest fit: {perf_counter()-t0:.3f} s")
print(f"forest mean relative error: {mean_relative_error(forest.predict(X), y):.3f}")
