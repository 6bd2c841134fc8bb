"""
Single-predictor logistic regression fitted with Newton-Raphson.
Only a binary exposure flag is ever used as the predictor, so each fit works on
the four group totals instead of the per-user vectors.
"""

import math
from dataclasses import dataclass

import numpy as np

EPSILON = 1e-10


@dataclass(frozen=True)
class LogisticFit:
    """Fitted intercept/slope and diagnostics of one fit."""

    beta0: float
    beta1: float
    log_likelihood: float
    n_iter: int
    converged: bool
    singular: bool


def _sigmoid(z: float) -> float:
    z = min(max(z, -500.0), 500.0)
    return 1.0 / (1.0 + math.exp(-z))


def _bernoulli_log_likelihood(n: int, successes: int, p: float) -> float:
    if n == 0:
        return 0.0
    return successes * math.log(p + EPSILON) + (n - successes) * math.log(1.0 - p + EPSILON)


class LogisticFitter:
    """
    Fits P(y=1 | x) = sigmoid(beta0 + beta1 * x) for binary x.

    Starts from beta0 = beta1 = 0 and takes full Newton steps. Stops when both
    steps fall below ``tol``, or keeps the current estimate when the Hessian
    determinant drops below ``singular_tol`` (zero-variance or perfectly
    separating predictors). Never raises.
    """

    def __init__(self, max_iter: int = 20, tol: float = 1e-6, singular_tol: float = 1e-10):
        self.max_iter = max_iter
        self.tol = tol
        self.singular_tol = singular_tol

    def fit(self, x, y) -> LogisticFit:
        """Fit on per-user exposure flags ``x`` and outcomes ``y``."""
        x_arr = np.asarray(x, dtype=bool)
        y_arr = np.asarray(y, dtype=bool)
        n_exposed = int(x_arr.sum())
        conv_exposed = int((x_arr & y_arr).sum())
        n_unexposed = len(x_arr) - n_exposed
        conv_unexposed = int(y_arr.sum()) - conv_exposed
        return self.fit_counts(n_exposed, conv_exposed, n_unexposed, conv_unexposed)

    def fit_counts(
        self, n_exposed: int, conv_exposed: int, n_unexposed: int, conv_unexposed: int
    ) -> LogisticFit:
        """Fit from group totals: users and converters with x=1 and with x=0."""
        beta0 = 0.0
        beta1 = 0.0
        n_iter = 0
        converged = False
        singular = False

        for _ in range(self.max_iter):
            p0 = _sigmoid(beta0)
            p1 = _sigmoid(beta0 + beta1)

            # gradient of the log-likelihood
            g_exposed = conv_exposed - n_exposed * p1
            gradient0 = (conv_unexposed - n_unexposed * p0) + g_exposed
            gradient1 = g_exposed

            # x is 0/1, so sum(w*x) == sum(w*x*x)
            w_exposed = n_exposed * p1 * (1.0 - p1)
            hessian00 = n_unexposed * p0 * (1.0 - p0) + w_exposed
            hessian01 = w_exposed
            hessian11 = w_exposed

            det = hessian00 * hessian11 - hessian01 * hessian01
            if abs(det) < self.singular_tol:
                singular = True
                break

            delta0 = (hessian11 * gradient0 - hessian01 * gradient1) / det
            delta1 = (hessian00 * gradient1 - hessian01 * gradient0) / det
            beta0 += delta0
            beta1 += delta1
            n_iter += 1

            if abs(delta0) < self.tol and abs(delta1) < self.tol:
                converged = True
                break

        log_likelihood = _bernoulli_log_likelihood(
            n_unexposed, conv_unexposed, _sigmoid(beta0)
        ) + _bernoulli_log_likelihood(n_exposed, conv_exposed, _sigmoid(beta0 + beta1))

        return LogisticFit(
            beta0=beta0,
            beta1=beta1,
            # the epsilon can lift a perfect fit a hair above zero
            log_likelihood=min(log_likelihood, 0.0),
            n_iter=n_iter,
            converged=converged,
            singular=singular,
        )
