"""This module provides implementations of multivariate normal distributions in an exponential family framework. Each normal is build out of the base components:
- `Euclidean`: The location component ($\\mathbb{R}^n$)
- `Covariance`: The shape component with flexible structure
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self, override

import jax
import jax.numpy as jnp
from jax import Array

from ....geometry import (
    Analytic,
    Diagonal,
    ExponentialFamily,
    LocationShape,
    Mean,
    Natural,
    Point,
    PositiveDefinite,
    Scale,
    Source,
    SquareMap,
)

# Component Classes


@dataclass(frozen=True)
class Euclidean(Analytic):
    """Euclidean space $\\mathbb{R}^n$ of dimension $n$.

    Euclidean also serves as the location component of a Normal distribution, and on its own we treat it as a normal distribution with unit covariance, so that the natural and mean parameters both equal the mean.

    As an exponential family:
        - Sufficient statistic: Identity map $s(x) = x$
        - Log base measure: $\\log \\mu(x) = -\\frac{n}{2}\\log(2\\pi) - \\frac{1}{2}\\|x\\|^2$
        - Log partition: $\\psi(\\theta) = \\frac{1}{2}\\|\\theta\\|^2$
        - Negative entropy: $\\phi(\\eta) = \\frac{1}{2}\\|\\eta\\|^2$
    """

    # Fields

    _dim: int

    # Overrides

    @property
    @override
    def dim(self) -> int:
        """Return the dimension of the space."""
        return self._dim

    @property
    @override
    def data_dim(self) -> int:
        return self.dim

    @override
    def sufficient_statistic(self, x: Array) -> Point[Mean, Self]:
        """Identity map on the data."""
        return self.mean_point(jnp.atleast_1d(x))

    @override
    def log_base_measure(self, x: Array) -> Array:
        x = jnp.atleast_1d(x)
        return -0.5 * self.dim * jnp.log(2 * jnp.pi) - 0.5 * jnp.dot(x, x)

    @override
    def log_partition_function(self, params: Point[Natural, Self]) -> Array:
        return 0.5 * jnp.sum(params.params**2)

    @override
    def negative_entropy(self, means: Point[Mean, Self]) -> Array:
        return 0.5 * jnp.sum(means.params**2)

    @override
    def to_mean(self, params: Point[Natural, Self]) -> Point[Mean, Self]:
        return params.reinterpret(Mean)

    @override
    def to_natural(self, means: Point[Mean, Self]) -> Point[Natural, Self]:
        return means.reinterpret(Natural)

    @override
    def sample(self, key: Array, params: Point[Natural, Self], n: int = 1) -> Array:
        """Sample $x \\sim N(\\theta, I)$.

        Returns:
            Array of shape (n, dim) with samples
        """
        noise = jax.random.normal(key, (n, self.dim), dtype=params.params.dtype)
        return params.params + noise


class Covariance(SquareMap[PositiveDefinite, Euclidean], ExponentialFamily):
    """Shape component of a Normal distribution.

    This represents the covariance structure of a Normal distribution through different matrix representations:
        - `PositiveDefinite`: Full covariance matrix
        - `Diagonal`: diagonal elements
        - `Scale`: Scalar multiple of identity

    As an exponential family:
        - Sufficient statistic: Outer product $s(x) = x \\otimes x$
        - Log base measure: $\\log \\mu(x) = -\\frac{n}{2}\\log(2\\pi)$
    """

    # Constructor

    rep: PositiveDefinite

    def __init__(self, data_dim: int, rep: PositiveDefinite):
        super().__init__(rep, Euclidean(data_dim))

    # Overrides

    @property
    @override
    def data_dim(self) -> int:
        return self.shape[0]

    @override
    def sufficient_statistic(self, x: Array) -> Point[Mean, Self]:
        x = jnp.atleast_1d(x)
        return self.point(self.rep.outer_product(x, x), Mean)

    @override
    def log_base_measure(self, x: Array) -> Array:
        return -0.5 * self.data_dim * jnp.log(2 * jnp.pi)


@dataclass(frozen=True)
class Normal(LocationShape[Euclidean, Covariance], Analytic):
    """(Multivariate) Normal distributions.

    The standard expression for the Normal density is

    $$p(x; \\mu, \\Sigma) = (2\\pi)^{-d/2}|\\Sigma|^{-1/2}e^{-\\frac{1}{2}(x-\\mu) \\cdot \\Sigma^{-1} \\cdot (x-\\mu)},$$

    where

    - $\\mu$ is the mean vector,
    - $\\Sigma$ is the covariance matrix, and
    - $d$ is the dimension of the data.

    As an exponential family:
        - Sufficient statistic: $\\mathbf{s}(x) = (x, x \\otimes x)$
        - Log base measure: $\\log \\mu(x) = -\\frac{d}{2}\\log(2\\pi)$
        - Natural parameters: $\\theta_1 = \\Sigma^{-1}\\mu$, $\\theta_2 = -\\frac{1}{2}\\Sigma^{-1}$
        - Mean parameters: $\\eta_1 = \\mu$, $\\eta_2 = \\mu\\mu^T + \\Sigma$
        - Log-partition: $\\psi(\\theta) = \\frac{1}{2}\\theta_1 \\cdot \\Sigma \\cdot \\theta_1 - \\frac{1}{2}\\log|\\Sigma^{-1}|$
        - Negative entropy: $\\phi(\\eta) = -\\frac{1}{2}\\log|\\eta_2 - \\eta_1\\eta_1^T| - \\frac{d}{2}$

    The negative entropy is the exact convex conjugate of the log-partition function, so that the divergence of a distribution from itself vanishes. Different covariance structures are handled through the `rep` field.
    """

    # Fields

    _data_dim: int

    rep: PositiveDefinite = PositiveDefinite()
    """Covariance representation type."""

    # Components

    @property
    @override
    def fst_man(self) -> Euclidean:
        return Euclidean(self._data_dim)

    @property
    @override
    def snd_man(self) -> Covariance:
        return Covariance(self._data_dim, self.rep)

    @property
    def loc_man(self) -> Euclidean:
        """Location manifold."""
        return self.fst_man

    @property
    def cov_man(self) -> Covariance:
        """Covariance manifold."""
        return self.snd_man

    # Overrides

    @property
    @override
    def data_dim(self) -> int:
        return self._data_dim

    @override
    def log_base_measure(self, x: Array) -> Array:
        return -0.5 * self.data_dim * jnp.log(2 * jnp.pi)

    @override
    def log_partition_function(self, params: Point[Natural, Self]) -> Array:
        loc, precision = self.split_location_precision(params)
        covariance = self.cov_man.inverse(precision)
        mean = self.cov_man(covariance.reinterpret(Natural), loc.reinterpret(Mean))
        return 0.5 * (
            jnp.dot(loc.params, mean.params) - self.cov_man.logdet(precision)
        )

    @override
    def negative_entropy(self, means: Point[Mean, Self]) -> Array:
        _, covariance = self.split_mean_covariance(means)
        return -0.5 * self.cov_man.logdet(covariance) - 0.5 * self.data_dim

    @override
    def to_mean(self, params: Point[Natural, Self]) -> Point[Mean, Self]:
        loc, precision = self.split_location_precision(params)
        covariance = self.cov_man.inverse(precision)
        mean = self.cov_man(covariance.reinterpret(Natural), loc.reinterpret(Mean))
        return self.join_mean_covariance(
            mean.reinterpret(Mean), covariance.reinterpret(Mean)
        )

    @override
    def to_natural(self, means: Point[Mean, Self]) -> Point[Natural, Self]:
        mean, covariance = self.split_mean_covariance(means)
        precision = self.cov_man.inverse(covariance)
        loc = self.cov_man(precision, mean)
        return self.join_location_precision(loc, precision)

    @override
    def sample(self, key: Array, params: Point[Natural, Self], n: int = 1) -> Array:
        """Sample by transforming standard normal draws with the Cholesky factor of the covariance.

        Returns:
            Array of shape (n, data_dim)
        """
        mean, covariance = self.split_mean_covariance(self.to_mean(params))
        z = jax.random.normal(key, (n, self.data_dim), dtype=params.params.dtype)
        samples = self.rep.apply_cholesky(
            self.cov_man.shape, covariance.params, z
        )
        return mean.params + samples

    @override
    def initialize(
        self, key: Array, location: float = 0.0, shape: float = 0.1
    ) -> Point[Natural, Self]:
        """Initialize the mean from a normal distribution, with identity covariance."""
        mean = self.loc_man.shape_initialize(key, Mean, location, shape)
        covariance = self.cov_man.from_dense(jnp.eye(self.data_dim), Mean)
        return self.to_natural(self.join_mean_covariance(mean, covariance))

    # Methods

    def join_mean_covariance(
        self,
        mean: Point[Mean, Euclidean],
        covariance: Point[Mean, Covariance],
    ) -> Point[Mean, Self]:
        """Construct mean parameters from the mean $\\mu$ and covariance $\\Sigma$."""
        outer = self.cov_man.outer_product(mean.reinterpret(Mean), mean.reinterpret(Mean))
        return self.join_params(mean, outer + covariance)

    def split_mean_covariance(
        self, means: Point[Mean, Self]
    ) -> tuple[Point[Mean, Euclidean], Point[Mean, Covariance]]:
        """Extract the mean $\\mu$ and covariance $\\Sigma = \\eta_2 - \\mu\\mu^T$ from mean parameters."""
        mean, second_moment = self.split_params(means)
        outer = self.cov_man.outer_product(mean, mean)
        return mean, second_moment - outer

    def split_location_precision(
        self, params: Point[Natural, Self]
    ) -> tuple[Point[Natural, Euclidean], Point[Natural, Covariance]]:
        """Split natural location and precision (inverse covariance) parameters.

        The natural parameters $\\theta_2$ pair with the stored upper triangle of $x \\otimes x$, so that off-diagonal entries of $-\\frac{1}{2}\\Sigma^{-1}$ are stored doubled. For the `Scale` representation the sufficient statistic is an average over the diagonal, so that the stored parameter is $d$ times the matrix value.
        """
        loc, theta2 = self.split_params(params)
        shape = self.cov_man.shape
        prs = theta2.params
        if not isinstance(self.rep, Diagonal):
            prs = self.rep.halve_off_diagonal(shape, prs)
        scl = -2.0
        if isinstance(self.rep, Scale):
            scl = scl / self.data_dim
        return loc, self.cov_man.point(scl * prs, Natural)

    def join_location_precision(
        self,
        location: Point[Natural, Euclidean],
        precision: Point[Natural, Covariance],
    ) -> Point[Natural, Self]:
        """Join natural location and precision parameters. Inverts `split_location_precision`."""
        shape = self.cov_man.shape
        scl = -0.5
        if isinstance(self.rep, Scale):
            scl = self.data_dim * scl
        theta2 = scl * precision.params
        if not isinstance(self.rep, Diagonal):
            theta2 = self.rep.double_off_diagonal(shape, theta2)
        return self.join_params(location, self.cov_man.point(theta2, Natural))

    def to_source(self, params: Point[Natural, Self]) -> Point[Source, Self]:
        """Source coordinates are the mean followed by the covariance, in the covariance representation."""
        mean, covariance = self.split_mean_covariance(self.to_mean(params))
        return self.point(
            jnp.concatenate([mean.params, covariance.params]), Source
        )

    def from_source(self, source: Point[Source, Self]) -> Point[Natural, Self]:
        self.check_point(source)
        mean, covariance = self.split_params(source.reinterpret(Mean))
        return self.to_natural(self.join_mean_covariance(mean, covariance))

    def statistical_mean(self, params: Point[Natural, Self]) -> Array:
        """Mean vector of the distribution."""
        mean, _ = self.split_mean_covariance(self.to_mean(params))
        return mean.params

    def statistical_covariance(self, params: Point[Natural, Self]) -> Array:
        """Dense covariance matrix of the distribution."""
        _, covariance = self.split_mean_covariance(self.to_mean(params))
        return self.cov_man.to_dense(covariance)
