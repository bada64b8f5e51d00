"""Bernoulli distribution as exponential family.

This module provides:
- `Bernoulli`: Distribution over a single binary unit
- `Bernoullis`: Product of n independent Bernoulli distributions, the usual layer of binary units in a deep harmonium
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self, override

import jax
import jax.numpy as jnp
from jax import Array
from jax.scipy.special import xlogy

from ...geometry import Analytic, Mean, Natural, Point, Product


@dataclass(frozen=True)
class Bernoulli(Analytic):
    """Bernoulli distribution over $x \\in \\{0, 1\\}$.

    As an exponential family:
        - Sufficient statistic: $s(x) = x$
        - Log base measure: $\\log \\mu(x) = 0$
        - Natural parameter: $\\theta = \\log(p/(1-p))$ (log odds)
        - Mean parameter: $\\eta = p$
        - Log partition: $\\psi(\\theta) = \\log(1 + e^\\theta)$
        - Negative entropy: $\\phi(\\eta) = \\eta\\log\\eta + (1-\\eta)\\log(1-\\eta)$
    """

    @property
    @override
    def dim(self) -> int:
        return 1

    @property
    @override
    def data_dim(self) -> int:
        return 1

    @override
    def sufficient_statistic(self, x: Array) -> Point[Mean, Self]:
        return self.mean_point(jnp.atleast_1d(x).astype(jnp.result_type(float)))

    @override
    def log_base_measure(self, x: Array) -> Array:
        return jnp.array(0.0)

    @override
    def log_partition_function(self, params: Point[Natural, Self]) -> Array:
        return jax.nn.softplus(params.params[0])

    @override
    def negative_entropy(self, means: Point[Mean, Self]) -> Array:
        p = means.params[0]
        return xlogy(p, p) + xlogy(1 - p, 1 - p)

    @override
    def to_mean(self, params: Point[Natural, Self]) -> Point[Mean, Self]:
        return self.mean_point(jax.nn.sigmoid(params.params))

    @override
    def to_natural(self, means: Point[Mean, Self]) -> Point[Natural, Self]:
        p = means.params
        return self.natural_point(jnp.log(p) - jnp.log1p(-p))

    @override
    def sample(self, key: Array, params: Point[Natural, Self], n: int = 1) -> Array:
        """Sample binary units.

        Returns:
            Float array of shape (n, 1) with values in {0, 1}
        """
        prob = jax.nn.sigmoid(params.params[0])
        samples = jax.random.bernoulli(key, prob, shape=(n,))
        return samples.astype(params.params.dtype).reshape(n, 1)


def Bernoullis(n_units: int) -> Product[Bernoulli]:
    """Layer of `n_units` independent binary units."""
    return Product(Bernoulli(), n_units)
