"""Basic classes for composing exponential families."""

from __future__ import annotations

from abc import ABC
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Self, override

import jax
import jax.numpy as jnp
from jax import Array

from ..manifold.base import Point
from ..manifold.combinators import Pair
from .base import Analytic, ExponentialFamily, Mean, Natural


class LocationShape[Location: ExponentialFamily, Shape: ExponentialFamily](
    Pair[Location, Shape], ExponentialFamily, ABC
):
    """A product exponential family with location and shape parameters.

    This structure captures distributions like the Normal distribution that decompose into a location parameter (e.g. mean) and a shape parameter (e.g. covariance).

    - The components must have matching data dimensions.
    - The sufficient statistic is the concatenation of component sufficient statistics.
    - The log-base measure by default is the log-base measure of the shape component.
    """

    # Overrides

    @property
    @override
    def data_dim(self) -> int:
        """Data dimension must match between location and shape manifolds."""
        assert self.fst_man.data_dim == self.snd_man.data_dim
        return self.fst_man.data_dim

    @override
    def sufficient_statistic(self, x: Array) -> Point[Mean, Self]:
        loc_stats = self.fst_man.sufficient_statistic(x)
        shape_stats = self.snd_man.sufficient_statistic(x)
        return self.join_params(loc_stats, shape_stats)

    @override
    def log_base_measure(self, x: Array) -> Array:
        """Base measure is assumed to come from the shape parameter (i.e. `snd_man`)."""
        return self.snd_man.log_base_measure(x)


@dataclass(frozen=True)
class Product[M: Analytic](Analytic):
    """Product distribution over `n_reps` independent copies of an analytic exponential family.

    Points are stored as flat arrays of shape `[n_reps * cmp_man.dim]`, in row-major order, and observations as flat arrays of shape `[n_reps * cmp_man.data_dim]`. Deep harmoniums use products of Bernoullis as layers of binary units.
    """

    # Fields

    cmp_man: M
    """The replicated exponential family."""
    n_reps: int
    """Number of independent copies."""

    def __post_init__(self):
        if not isinstance(self.cmp_man, Analytic):
            raise TypeError(
                f"Products require an analytic component, got {type(self.cmp_man).__name__}"
            )
        if self.n_reps < 1:
            raise ValueError(f"Products need at least one copy, got {self.n_reps}")

    # Helpers

    def map[C](self, f: Callable[[Point[C, M]], Array], p: Point[C, Self]) -> Array:
        """Apply `f` to every component of `p`, stacking the results along the leading axis."""
        self.check_point(p)
        rows = p.params.reshape(self.n_reps, -1)
        return jax.vmap(lambda row: f(self.cmp_man.point(row, p.coords)))(rows)

    # Overrides

    @property
    @override
    def dim(self) -> int:
        return self.cmp_man.dim * self.n_reps

    @property
    @override
    def data_dim(self) -> int:
        return self.cmp_man.data_dim * self.n_reps

    @override
    def sufficient_statistic(self, x: Array) -> Point[Mean, Self]:
        xs = jnp.asarray(x).reshape(self.n_reps, -1)
        stats = jax.vmap(lambda xi: self.cmp_man.sufficient_statistic(xi).params)(xs)
        return self.mean_point(stats.reshape(-1))

    @override
    def log_base_measure(self, x: Array) -> Array:
        xs = jnp.asarray(x).reshape(self.n_reps, -1)
        return jnp.sum(jax.vmap(self.cmp_man.log_base_measure)(xs))

    @override
    def initialize(
        self, key: Array, location: float = 0.0, shape: float = 0.1
    ) -> Point[Natural, Self]:
        keys = jax.random.split(key, self.n_reps)
        params = [
            self.cmp_man.initialize(k, location, shape).params for k in keys
        ]
        return self.natural_point(jnp.concatenate(params))

    @override
    def sample(self, key: Array, params: Point[Natural, Self], n: int = 1) -> Array:
        self.check_point(params)
        rep_keys = jax.random.split(key, self.n_reps)
        rows = params.params.reshape(self.n_reps, -1)

        def sample_rep(rep_key: Array, row: Array) -> Any:
            return self.cmp_man.sample(rep_key, self.cmp_man.natural_point(row), n)

        # samples dimensions: (n_reps, n, data_dim)
        samples = jax.vmap(sample_rep)(rep_keys, rows)
        return jnp.reshape(jnp.moveaxis(samples, 1, 0), (n, -1))

    @override
    def log_partition_function(self, params: Point[Natural, Self]) -> Array:
        return jnp.sum(self.map(self.cmp_man.log_partition_function, params))

    @override
    def negative_entropy(self, means: Point[Mean, Self]) -> Array:
        return jnp.sum(self.map(self.cmp_man.negative_entropy, means))
