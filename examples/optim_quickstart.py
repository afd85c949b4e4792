import numpy as np
from mlbox import ADAM, SGD, init_opt_alg, single_update

# least squares fit of y = 3x - 1 with mini batches
rng = np.random.default_rng(0)
x = rng.normal(size=200)
y = 3 * x - 1 + rng.normal(scale=0.1, size=200)

def gradient(params, xb, yb):
    w, b = params
    err = w * xb + b - yb
    return [np.mean(err * xb), np.mean(err)]

for opt_alg in (SGD(scale=0.1), ADAM(learning_rate=lambda t: 0.05)):
    params = [0.0, 0.0]
    batch_size, n_batches = 20, 10
    init_opt_alg(opt_alg, params, batch_size=batch_size, x=x, y=y, rng=rng)
    for epoch in range(1, 51):
        order = rng.permutation(len(x))
        for batch in range(1, n_batches + 1):
            idx = order[(batch - 1) * batch_size: batch * batch_size]
            params, stop = single_update(params, gradient(params, x[idx], y[idx]), opt_alg,
                                         n_epoch=epoch, n_batch=batch, n_batches=n_batches,
                                         x_batch=x[idx], y_batch=y[idx])
            if stop:
                break
        if stop:
            break
    print(f"{opt_alg!r}: w={params[0]:.3f}, b={params[1]:.3f}")
