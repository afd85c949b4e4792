# -*- coding: utf-8 -*-
"""
mlbox.optim
===========

Gradient based optimisation algorithms for an external training loop.

An algorithm is initialised once before the first batch with
:func:`init_opt_alg` and then called with :func:`single_update` for every
(epoch, batch), receiving the current parameters and their gradient and
returning the new parameters together with a ``stop`` flag the loop has to
honour.  Epochs and batches are numbered from 1.

Parameters and gradients may be numbers, numpy arrays or (nested) lists and
tuples of them with matching shapes; updates are applied element-wise.

Available algorithms:

- :class:`SGD`: plain stochastic gradient descent (the default);
- :class:`ADAM`: adaptive moment estimation (Kingma & Ba, 2014);
- :class:`DebugOptAlg`: leaves the parameters untouched and only logs a message.
"""

from __future__ import annotations
import logging
import warnings
from abc import ABC, abstractmethod
from typing import Any, Callable, NamedTuple, Optional

import numpy as np

logger = logging.getLogger(__name__)


class ConfigurationWarning(UserWarning):
    """Invalid configuration that does not abort execution."""


class Update(NamedTuple):
    params: Any
    stop: bool


def _tree_map(fn, *args):
    first = args[0]
    if isinstance(first, (list, tuple)):
        return type(first)(_tree_map(fn, *items) for items in zip(*args))
    return fn(*args)


def inverse_epoch_rate(t: int) -> float:
    """Learning rate ``1 / (1 + t)`` decreasing with the epoch ``t``."""
    return 1.0 / (1.0 + t)


def constant_rate(t: int) -> float:
    return 0.001


# -----------------------------------------------------------------------------
# Protocol
# -----------------------------------------------------------------------------
class OptimisationAlgorithm(ABC):
    """
    Base class of the optimisation algorithms.

    Subclasses implement :meth:`update` and, when they keep state between
    batches, :meth:`initialize`.  An instance must not be shared by concurrent
    training loops.
    """

    def initialize(self, params, *, batch_size: Optional[int] = None, x=None, y=None, rng=None) -> None:
        """Prepare the internal state before the first batch (no-op by default)."""

    @abstractmethod
    def update(self, params, gradient, *, n_epoch: int, n_batch: int, n_batches: int,
               x_batch=None, y_batch=None) -> Update:
        """Return the updated parameters and whether training should stop."""

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in vars(self).items() if not k.endswith("_"))
        return f"{type(self).__name__}({args})"


def init_opt_alg(opt_alg: OptimisationAlgorithm, params, *, batch_size: Optional[int] = None,
                 x=None, y=None, rng=None) -> None:
    """Initialise ``opt_alg`` for parameters shaped like ``params``."""
    opt_alg.initialize(params, batch_size=batch_size, x=x, y=y, rng=rng)


def single_update(params, gradient, opt_alg: OptimisationAlgorithm, *, n_epoch: int, n_batch: int,
                  n_batches: int, x_batch=None, y_batch=None) -> Update:
    """
    Apply one optimisation step.

    Returns
    -------
    Update
        Named tuple ``(params, stop)``.  The training loop must stop when
        ``stop`` is true.
    """
    return opt_alg.update(params, gradient, n_epoch=n_epoch, n_batch=n_batch, n_batches=n_batches,
                          x_batch=x_batch, y_batch=y_batch)


# -----------------------------------------------------------------------------
# SGD
# -----------------------------------------------------------------------------
class SGD(OptimisationAlgorithm):
    """
    Stochastic Gradient Descent.

    ``params <- params - gradient * learning_rate(epoch) * scale``

    Parameters
    ----------
    learning_rate : callable, default=``1 / (1 + epoch)``
        Learning rate as a function of the current epoch.
    scale : float, default=2.0
        Multiplicative constant applied to the learning rate.
    """

    def __init__(self, learning_rate: Callable[[int], float] = inverse_epoch_rate, scale: float = 2.0):
        self.learning_rate = learning_rate
        self.scale = float(scale)

    def update(self, params, gradient, *, n_epoch, n_batch, n_batches, x_batch=None, y_batch=None):
        eta = self.learning_rate(n_epoch) * self.scale
        return Update(_tree_map(lambda p, g: p - g * eta, params, gradient), False)


# -----------------------------------------------------------------------------
# ADAM
# -----------------------------------------------------------------------------
class ADAM(OptimisationAlgorithm):
    """
    Adaptive moment estimation (https://arxiv.org/pdf/1412.6980.pdf).

    Keeps exponential moving averages of the gradient (``m_``) and of the
    squared gradient (``v_``).  At the global step
    ``t = (n_epoch - 1) * n_batches + n_batch``::

        m_ <- beta1 * m_ + (1 - beta1) * gradient
        v_ <- beta2 * v_ + (1 - beta2) * gradient ** 2
        m_hat_ = m_ / (1 - beta1 ** t)
        v_hat_ = v_ / (1 - beta2 ** t)
        params <- params - learning_rate(epoch) * scale * m_hat_ / (sqrt(v_hat_) + eps)

    Parameters
    ----------
    learning_rate : callable, default=``0.001`` (constant)
        Step size as a function of the current epoch.
    scale : float, default=1.0
        Multiplicative constant applied to the learning rate.
    beta1 : float, default=0.9
        Decay rate of the first moment, in (0, 1).
    beta2 : float, default=0.999
        Decay rate of the second moment, in (0, 1).
    eps : float, default=1e-8
        Added to the denominator to avoid divisions by zero.

    Notes
    -----
    Decay rates outside (0, 1) are reported with a
    :class:`ConfigurationWarning`, at construction and again at
    initialisation; they are not rejected.
    """

    def __init__(self, learning_rate: Callable[[int], float] = constant_rate, scale: float = 1.0,
                 beta1: float = 0.9, beta2: float = 0.999, eps: float = 1e-8):
        self.learning_rate = learning_rate
        self.scale = float(scale)
        self.beta1 = float(beta1)
        self.beta2 = float(beta2)
        self.eps = float(eps)
        self.m_ = None
        self.v_ = None
        self.m_hat_ = None
        self.v_hat_ = None
        self._check_betas(stacklevel=3)

    def _check_betas(self, stacklevel: int) -> None:
        for name, beta in (("beta1", self.beta1), ("beta2", self.beta2)):
            if not 0.0 < beta < 1.0:
                warnings.warn(f"The parameter {name} must be in (0, 1), got {beta}",
                              ConfigurationWarning, stacklevel=stacklevel)

    def initialize(self, params, *, batch_size=None, x=None, y=None, rng=None) -> None:
        self.m_ = _tree_map(lambda p: np.zeros_like(p, dtype=float), params)
        self.v_ = _tree_map(lambda p: np.zeros_like(p, dtype=float), params)
        # called through init_opt_alg
        self._check_betas(stacklevel=4)

    def update(self, params, gradient, *, n_epoch, n_batch, n_batches, x_batch=None, y_batch=None):
        if self.m_ is None:
            raise ValueError("ADAM not initialised. Call init_opt_alg(...) first.")
        b1, b2, eps = self.beta1, self.beta2, self.eps
        eta = self.learning_rate(n_epoch) * self.scale
        t = (n_epoch - 1) * n_batches + n_batch
        self.m_ = _tree_map(lambda m, g: b1 * m + (1 - b1) * g, self.m_, gradient)
        self.v_ = _tree_map(lambda v, g: b2 * v + (1 - b2) * (g * g), self.v_, gradient)
        self.m_hat_ = _tree_map(lambda m: m / (1 - b1 ** t), self.m_)
        self.v_hat_ = _tree_map(lambda v: v / (1 - b2 ** t), self.v_)
        new_params = _tree_map(lambda p, mh, vh: p - (eta * mh) / (np.sqrt(vh) + eps),
                               params, self.m_hat_, self.v_hat_)
        return Update(new_params, False)


# -----------------------------------------------------------------------------
# DebugOptAlg
# -----------------------------------------------------------------------------
class DebugOptAlg(OptimisationAlgorithm):
    """
    Logs ``message`` at every update and returns the parameters unchanged.

    The message is emitted at INFO level on the ``mlbox.optim`` logger, so it
    only shows up once logging is configured, e.g. with
    ``logging.basicConfig(level=logging.INFO)``.
    """

    def __init__(self, message: str = "Hello World, I am a Debugging Algorithm. I did nothing to your Net."):
        self.message = message

    def update(self, params, gradient, *, n_epoch, n_batch, n_batches, x_batch=None, y_batch=None):
        logger.info(self.message)
        return Update(params, False)
