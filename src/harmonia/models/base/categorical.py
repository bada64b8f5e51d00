"""The categorical distribution (probability simplex) models distributions over finite sets of elements, and has sufficient parameters to model any such distribution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self, override

import jax
import jax.numpy as jnp
from jax import Array
from jax.scipy.special import xlogy

from ...geometry import Analytic, Mean, Natural, Point


@dataclass(frozen=True)
class Categorical(Analytic):
    """Categorical distribution over $n$ states.

    The categorical distribution describes discrete probability distributions over $n$ states with probabilities $\\eta_i$ where $\\sum_{i=0}^{n-1} \\eta_i = 1$. The last state serves as the reference state, whose probability is implied by the others.

    $$p(k; \\eta) = \\eta_k$$

    As an exponential family:

    - Base measure: $\\mu(k) = 0$
    - Sufficient statistic: One-hot encoding for $k < n-1$, and the zero vector for $k = n-1$
    - Log partition: $\\psi(\\theta) = \\log(1 + \\sum_{i=0}^{n-2} e^{\\theta_i})$
    - Negative entropy: $\\phi(\\eta) = \\sum_{i=0}^{n-1} \\eta_i \\log(\\eta_i)$
    """

    n_categories: int
    """Number of categories."""

    def __post_init__(self):
        if self.n_categories < 2:
            raise ValueError(
                f"Categorical needs at least two categories, got {self.n_categories}"
            )

    @property
    @override
    def dim(self) -> int:
        """Dimension $d$ is `n_categories - 1` due to the sum-to-one constraint."""
        return self.n_categories - 1

    @property
    @override
    def data_dim(self) -> int:
        return 1

    # Categorical methods

    def from_probs(self, probs: Array) -> Point[Mean, Self]:
        """Construct the mean parameters from the complete probabilities, dropping the last element."""
        return self.mean_point(probs[:-1])

    def to_probs(self, means: Point[Mean, Self]) -> Array:
        """Return the probabilities of all labels."""
        self.check_point(means)
        last = 1 - jnp.sum(means.params)
        return jnp.concatenate([means.params, jnp.array([last])])

    # Overrides

    @override
    def sufficient_statistic(self, x: Array) -> Point[Mean, Self]:
        k = jnp.atleast_1d(x)[0]
        return self.mean_point(jax.nn.one_hot(k, self.n_categories - 1))

    @override
    def log_base_measure(self, x: Array) -> Array:
        return jnp.array(0.0)

    @override
    def log_partition_function(self, params: Point[Natural, Self]) -> Array:
        array = jnp.concatenate([params.params, jnp.zeros(1, dtype=params.params.dtype)])
        return jax.nn.logsumexp(array)

    @override
    def negative_entropy(self, means: Point[Mean, Self]) -> Array:
        probs = self.to_probs(means)
        return jnp.sum(xlogy(probs, probs))

    @override
    def to_mean(self, params: Point[Natural, Self]) -> Point[Mean, Self]:
        array = jnp.concatenate([params.params, jnp.zeros(1, dtype=params.params.dtype)])
        return self.from_probs(jax.nn.softmax(array))

    @override
    def to_natural(self, means: Point[Mean, Self]) -> Point[Natural, Self]:
        probs = self.to_probs(means)
        return self.natural_point(jnp.log(probs[:-1]) - jnp.log(probs[-1]))

    @override
    def sample(self, key: Array, params: Point[Natural, Self], n: int = 1) -> Array:
        """Sample category indices with the Gumbel-max trick.

        Returns:
            Integer array of shape (n, 1)
        """
        self.check_point(params)
        logits = jnp.concatenate(
            [params.params, jnp.zeros(1, dtype=params.params.dtype)]
        )
        g = jax.random.gumbel(key, shape=(n, self.n_categories), dtype=logits.dtype)
        return jnp.argmax(logits + g, axis=-1)[..., None]
