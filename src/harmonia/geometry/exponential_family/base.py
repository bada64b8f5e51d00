"""Core definitions for exponential families and their parameterizations.

An exponential family is a collection of probability distributions with densities of the form:

$$p(x; \\theta) = \\mu(x)\\exp(\\theta \\cdot \\mathbf{s}(x) - \\psi(\\theta)),$$

where:

- $\\theta$ are the natural parameters,
- $\\mathbf{s}(x)$ is the sufficient statistic,
- $\\mu(x)$ is the base measure, and
- $\\psi(\\theta)$ is the log partition function.

Mappings between the natural and mean parameterizations are given by

- $\\eta = \\nabla\\psi(\\theta)$, and
- $\\theta = \\nabla\\phi(\\eta)$,

where $\\phi(\\eta)$ is the negative entropy, which is the convex conjugate of $\\psi(\\theta)$. In the language of `convex`, the log partition function is the potential of a Legendre manifold and the negative entropy its dual potential.

This module implements this structure through a hierarchy of classes:

- `ExponentialFamily`: Base class defining sufficient statistics and base measure
- `Generative`: Exponential families that can be sampled
- `Differentiable`: Exponential families with analytical log partition function, mapping to the mean parameters by autodifferentation.
- `Analytic`: Exponential families with analytical negative entropy, mapping to the natural parameters by autodifferentation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Self, override

import jax
import jax.numpy as jnp
from jax import Array

from ..manifold.base import Coordinates, Dual, Manifold, Point
from ..manifold.convex import DuallyFlat, Legendre

### Coordinate Systems ###


class Natural(Coordinates):
    """Natural parameters $\\theta \\in \\Theta$ defining an exponential family through:

    $$p(x; \\theta) = \\mu(x)\\exp(\\theta \\cdot \\mathbf s(x) - \\psi(\\theta))$$
    """


Mean = Dual[Natural]
"""Mean parameters $\\eta$ given by expectations of sufficient statistics:

$$\\eta = \\mathbb{E}_{p(x;\\theta)}[\\mathbf s(x)]$$
"""


class Source(Coordinates):
    """Conventional parameters of a family, e.g. the mean and covariance of a normal distribution."""


### Exponential Families ###


class ExponentialFamily(Manifold, ABC):
    """Base manifold class for exponential families.

    The base `ExponentialFamily` class includes methods that fundamentally define an exponential family, namely the base measure and sufficient statistic.
    """

    # Contract

    @property
    @abstractmethod
    def data_dim(self) -> int:
        """Dimension of the data space."""

    @abstractmethod
    def sufficient_statistic(self, x: Any) -> Point[Mean, Self]:
        """Convert a single observation to its sufficient statistic $\\mathbf s(x)$ in mean coordinates."""

    @abstractmethod
    def log_base_measure(self, x: Any) -> Array:
        """Compute log of base measure $\\mu(x)$."""

    # Templates

    def average_sufficient_statistic(self, xs: Any) -> Point[Mean, Self]:
        """Average sufficient statistics of a batch of observations.

        Args:
            xs: Batch of observations, with the batch along the leading axis

        Returns:
            Mean coordinates of average sufficient statistics
        """

        def _sufficient_statistic(x: Any) -> Array:
            return self.sufficient_statistic(x).params

        stats = jax.vmap(_sufficient_statistic)(xs)
        return self.mean_point(jnp.mean(stats, axis=0))

    def natural_point(self, params: Array) -> Point[Natural, Self]:
        """Construct a point in natural coordinates."""
        return self.point(params, Natural)

    def mean_point(self, params: Array) -> Point[Mean, Self]:
        """Construct a point in mean coordinates."""
        return self.point(params, Mean)

    def initialize(
        self,
        key: Array,
        location: float = 0.0,
        shape: float = 0.1,
    ) -> Point[Natural, Self]:
        """Randomly initialize natural parameters from a normal distribution. Families with a restricted parameter space override this."""
        return self.shape_initialize(key, Natural, location, shape)


class Generative(ExponentialFamily, ABC):
    """An `ExponentialFamily` that supports random sampling.

    Sampling is performed on distributions in natural coordinates. This enables estimation of mean parameters even when closed-form expressions for the log partition function are unavailable.
    """

    # Contract

    @abstractmethod
    def sample(self, key: Array, params: Point[Natural, Self], n: int = 1) -> Any:
        """Generate random samples from the distribution.

        Returns:
            Array of shape (n, data_dim) containing samples
        """

    # Templates

    def sample_points(self, key: Array, params: Array) -> Any:
        """Draw one sample for each row of a batch of natural parameters.

        Args:
            key: Random key, split into one key per row
            params: Array of shape (batch_size, dim) of natural parameters

        Returns:
            Samples with the batch along the leading axis
        """

        def _sample_one(key: Array, row: Array) -> Any:
            smp = self.sample(key, self.natural_point(row), 1)
            return jax.tree_util.tree_map(lambda a: a[0], smp)

        keys = jax.random.split(key, params.shape[0])
        return jax.vmap(_sample_one)(keys, params)

    def stochastic_to_mean(
        self, key: Array, params: Point[Natural, Self], n: int
    ) -> Point[Mean, Self]:
        """Estimate mean parameters via Monte Carlo sampling."""
        samples = self.sample(key, params, n)
        return self.average_sufficient_statistic(samples)


class Differentiable(Generative, Legendre, ABC):
    """Exponential family with an analytically tractable log-partition function, which permits computing the expected value of the sufficient statistic, and data-fitting via gradient descent.

    The log partition function is the potential of the family seen as a Legendre manifold, and its gradient at a point in natural coordinates returns that point in mean coordinates:

    $$
    \\eta = \\nabla \\psi(\\theta) = \\mathbb{E}_{p(x;\\theta)}[\\mathbf s(x)]
    $$
    """

    # Contract

    @abstractmethod
    def log_partition_function(self, params: Point[Natural, Self]) -> Array:
        """Compute log partition function $\\psi(\\theta)$."""

    # Overrides

    @override
    def potential(self, p: Point[Natural, Self]) -> Array:
        return self.log_partition_function(p)

    @override
    def dual_transition(self, p: Point[Natural, Self]) -> Point[Mean, Self]:
        return self.to_mean(p)

    # Templates

    def to_mean(self, params: Point[Natural, Self]) -> Point[Mean, Self]:
        """Convert from natural to mean parameters via $\\eta = \\nabla \\psi(\\theta)$."""
        return self.grad(self.log_partition_function, params)

    def log_density(self, params: Point[Natural, Self], x: Any) -> Array:
        """Compute log density at x.

        $$
        \\log p(x;\\theta) = \\theta \\cdot \\mathbf s(x) + \\log \\mu(x) - \\psi(\\theta)
        $$
        """
        suff_stats = self.sufficient_statistic(x)
        return (
            self.dot(params, suff_stats)
            + self.log_base_measure(x)
            - self.log_partition_function(params)
        )

    def density(self, params: Point[Natural, Self], x: Any) -> Array:
        """Compute density at x."""
        return jnp.exp(self.log_density(params, x))

    def average_log_density(self, params: Point[Natural, Self], xs: Any) -> Array:
        """Average log density over a batch of observations."""
        return jnp.mean(jax.vmap(self.log_density, in_axes=(None, 0))(params, xs))


class Analytic(Differentiable, DuallyFlat, ABC):
    """An exponential family comprising distributions for which the entropy can be evaluated in closed-form. The negative entropy is the convex conjugate of the log-partition function

    $$
    \\phi(\\eta) = \\sup_{\\theta} \\{\\theta \\cdot \\eta - \\psi(\\theta)\\},
    $$

    and its gradient at a point in mean coordinates returns that point in natural coordinates $\\theta = \\nabla\\phi(\\eta).$

    **NB:** This form of the negative entropy does not factor in the base measure of the distribution. It may thus differ from the entropy as traditionally defined.
    """

    # Contract

    @abstractmethod
    def negative_entropy(self, means: Point[Mean, Self]) -> Array:
        """Compute negative entropy $\\phi(\\eta)$."""

    # Overrides

    @override
    def dual_potential(self, q: Point[Mean, Self]) -> Array:
        return self.negative_entropy(q)

    @override
    def inverse_transition(self, q: Point[Mean, Self]) -> Point[Natural, Self]:
        return self.to_natural(q)

    # Templates

    def to_natural(self, means: Point[Mean, Self]) -> Point[Natural, Self]:
        """Convert mean to natural parameters via $\\theta = \\nabla\\phi(\\eta)$."""
        return self.grad(self.negative_entropy, means)

    def relative_entropy(
        self, p_means: Point[Mean, Self], q_params: Point[Natural, Self]
    ) -> Array:
        """Compute the entropy of $p$ relative to $q$.

        $D(p \\| q) = \\phi(\\eta_p) + \\psi(\\theta_q) - \\theta_q \\cdot \\eta_p$, the canonical divergence between $q$ and $p$.
        """
        return self.divergence(q_params, p_means)
