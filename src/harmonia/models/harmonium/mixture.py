"""Mixture Models as rectified harmoniums.

This module implements mixture models using a two-layer harmonium structure where

- the observable (bottom) layer is any differentiable exponential family, and
- the latent (top) layer is a Categorical distribution over mixture components.

Mixtures are rectified in closed form: the rectification parameters $\\rho_i = \\psi_X(\\theta_X + \\Theta_{X,i}) - \\psi_X(\\theta_X)$ make the observable density, exact sampling and expectation-maximization available without Gibbs sampling. The last category is the reference component, whose natural parameters are the observable bias itself.
"""

from __future__ import annotations

from functools import reduce
from operator import add
from typing import Any, Self, override

import jax
import jax.numpy as jnp
from jax import Array

from ...geometry import (
    AffineMap,
    Analytic,
    DeepHarmonium,
    Differentiable,
    HarmoniumStructureError,
    Mean,
    Natural,
    Point,
    Rectangular,
    Sample,
)
from ..base.categorical import Categorical


class Mixture[Observable: Differentiable](DeepHarmonium, Analytic):
    """Mixture model with a categorical latent variable.

    Parameters:
        obs_man: Base exponential family for observations
        n_categories: Number of mixture components
        int_rep: Representation of the interaction matrix, whose columns are the component offsets
    """

    def __init__(
        self,
        obs_man: Observable,
        n_categories: int,
        int_rep: Rectangular = Rectangular(),
    ):
        super().__init__((obs_man, Categorical(n_categories)), (int_rep,))

    @override
    def __post_init__(self):
        super().__post_init__()
        if not isinstance(self.layers[0], Differentiable):
            raise HarmoniumStructureError(
                f"Mixture components must be differentiable, got {type(self.layers[0]).__name__}"
            )

    @property
    def obs_man(self) -> Observable:
        """Observable manifold."""
        return self.layers[0]  # pyright: ignore[reportReturnType]

    @property
    def lat_man(self) -> Categorical:
        """Latent categorical manifold."""
        return self.layers[1]  # pyright: ignore[reportReturnType]

    @property
    def n_categories(self) -> int:
        return self.lat_man.n_categories

    # Rectification

    def mixture_likelihood_rectification_parameters(
        self, aff: Point[Natural, AffineMap[Rectangular, Categorical, Observable]]
    ) -> tuple[Array, Point[Natural, Categorical]]:
        """Compute the rectification parameters of a likelihood with a categorical latent variable.

        - $\\rho_0 = \\psi(\\theta_X)$
        - $\\rho_i = \\psi(\\theta_X + \\Theta_{X,i}) - \\rho_0$
        """
        obs_bias, int_mat = self.aff_man.split_params(aff)
        rho0 = self.obs_man.log_partition_function(obs_bias)
        rprms = [
            self.obs_man.log_partition_function(obs_bias + col) - rho0
            for col in self.int_man.to_columns(int_mat)
        ]
        return rho0, self.lat_man.natural_point(jnp.stack(rprms))

    def build_mixture_model(
        self,
        components: list[Point[Natural, Observable]],
        weights: Point[Natural, Categorical],
    ) -> Point[Natural, Self]:
        """Create a mixture model in natural coordinates from its components and weights.

        Every component but the last is re-centred on the last, and the differences become the columns of the interaction matrix. The bias of the latent layer is the weights minus the rectification parameters.
        """
        if len(components) != self.n_categories:
            raise HarmoniumStructureError(
                f"Expected {self.n_categories} components, got {len(components)}"
            )
        self.lat_man.check_point(weights)
        obs_bias = components[-1]
        int_cols = [comp - obs_bias for comp in components[:-1]]
        int_mat = self.int_man.from_columns(int_cols)
        aff = self.aff_man.join_params(obs_bias, int_mat)
        _, rprms = self.mixture_likelihood_rectification_parameters(aff)
        lat_bias = self.upr_man.to_one_harmonium(weights - rprms)
        return self.join_bottom_harmonium(aff, lat_bias)

    def split_mixture_model(
        self, p: Point[Natural, Self]
    ) -> tuple[list[Point[Natural, Observable]], Point[Natural, Categorical]]:
        """Split a mixture model in natural coordinates into its components and weights. Inverts `build_mixture_model`."""
        aff, lat_bias = self.split_bottom_harmonium(p)
        _, rprms = self.mixture_likelihood_rectification_parameters(aff)
        weights = self.upr_man.from_one_harmonium(lat_bias) + rprms
        obs_bias, int_mat = self.aff_man.split_params(aff)
        components = [obs_bias + col for col in self.int_man.to_columns(int_mat)]
        return [*components, obs_bias], weights

    def rectification_parameters(
        self, p: Point[Natural, Self]
    ) -> tuple[Array, Point[Natural, Categorical]]:
        """Rectification parameters of the likelihood of a mixture model."""
        aff, _ = self.split_bottom_harmonium(p)
        return self.mixture_likelihood_rectification_parameters(aff)

    # Densities

    def mixture_density(self, p: Point[Natural, Self], x: Array) -> Array:
        """Density of the observable variable, marginalized over the latent categories.

        $$p(x) = \\sum_i w_i p_i(x)$$
        """
        components, weights = self.split_mixture_model(p)
        probs = self.lat_man.to_probs(self.lat_man.to_mean(weights))
        densities = jnp.stack([self.obs_man.density(comp, x) for comp in components])
        return jnp.dot(probs, densities)

    def mixture_model_log_likelihood(self, p: Point[Natural, Self], x: Array) -> Array:
        """Log-likelihood of an observation under a mixture model."""
        rho0, rprms = self.rectification_parameters(p)
        return self.rectified_harmonium_log_likelihood(rho0, rprms, p, x)

    def log_observable_density(self, p: Point[Natural, Self], x: Array) -> Array:
        """Log density of the observable distribution $p(x)$."""
        return self.mixture_model_log_likelihood(p, x)

    def observable_density(self, p: Point[Natural, Self], x: Array) -> Array:
        return jnp.exp(self.log_observable_density(p, x))

    def average_log_observable_density(
        self, p: Point[Natural, Self], xs: Array
    ) -> Array:
        """Average log density over a batch of observations."""

        def _log_density(x: Array) -> Array:
            return self.log_observable_density(p, x)

        return jnp.mean(jax.vmap(_log_density)(xs))

    # Overrides

    @override
    def log_partition_function(self, params: Point[Natural, Self]) -> Array:
        """$\\psi(\\theta) = \\psi_Z(\\theta_Z + \\rho) + \\rho_0$."""
        _, lat_bias = self.split_bottom_harmonium(params)
        rho0, rprms = self.rectification_parameters(params)
        prior = self.upr_man.from_one_harmonium(lat_bias) + rprms
        return self.lat_man.log_partition_function(prior) + rho0

    @override
    def to_mean(self, params: Point[Natural, Self]) -> Point[Mean, Self]:
        """Closed-form expectations of a mixture model, weighting the component means by the mixture probabilities."""
        components, weights = self.split_mixture_model(params)
        lat_means = self.lat_man.to_mean(weights)
        probs = self.lat_man.to_probs(lat_means)
        weighted_comps = [
            prob * self.obs_man.to_mean(comp) for prob, comp in zip(probs, components)
        ]
        obs_means = reduce(add, weighted_comps)
        int_means = self.int_man.from_columns(weighted_comps[:-1])
        return self.join_bottom_harmonium(
            self.aff_man.join_params(obs_means, int_means),
            self.upr_man.to_one_harmonium(lat_means),
        )

    @override
    def to_natural(self, means: Point[Mean, Self]) -> Point[Natural, Self]:
        """Closed-form natural parameters of a mixture model, given analytic components."""
        if not isinstance(self.obs_man, Analytic):
            raise HarmoniumStructureError(
                "Natural parameters of a mixture need analytic components"
            )
        comp_means, lat_means = self.split_mean_mixture(means)
        components = [self.obs_man.to_natural(comp) for comp in comp_means]
        return self.build_mixture_model(components, self.lat_man.to_natural(lat_means))

    @override
    def negative_entropy(self, means: Point[Mean, Self]) -> Array:
        params = self.to_natural(means)
        return self.dot(params, means) - self.log_partition_function(params)

    @override
    def sample(
        self, key: Array, params: Point[Natural, Self], n: int = 1
    ) -> tuple[Array, Array]:
        """Exact sample of observations and categories from the rectified mixture."""
        _, rprms = self.rectification_parameters(params)
        smp = self.sample_rectified_harmonium(
            key, self.rct_man.join_params(rprms), params, n
        )
        return smp[0], smp[1]

    @override
    def initialize(
        self, key: Array, location: float = 0.0, shape: float = 0.1
    ) -> Point[Natural, Self]:
        """Initialize each component with the strategy of the observable manifold, and uniform weights."""
        keys = jax.random.split(key, self.n_categories)
        components = [self.obs_man.initialize(k, location, shape) for k in keys]
        weights = self.lat_man.natural_point(jnp.zeros(self.lat_man.dim))
        return self.build_mixture_model(components, weights)

    # Methods

    def observable_sample(
        self, key: Array, params: Point[Natural, Self], n: int = 1
    ) -> Array:
        """Sample observations alone."""
        xs, _ = self.sample(key, params, n)
        return xs

    def split_mean_mixture(
        self, means: Point[Mean, Self]
    ) -> tuple[list[Point[Mean, Observable]], Point[Mean, Categorical]]:
        """Split a mixture model in mean coordinates into component means and weights."""
        aff, lat_means = self.split_bottom_harmonium(means)
        obs_means, int_means = self.aff_man.split_params(aff)
        lat_means = self.upr_man.from_one_harmonium(lat_means)
        probs = self.lat_man.to_probs(lat_means)
        int_cols = self.int_man.to_columns(int_means)
        components = [col / probs[i] for i, col in enumerate(int_cols)]
        last = obs_means - reduce(add, int_cols)
        return [*components, last / probs[-1]], lat_means

    def mixture_model_expectation_maximization(
        self, params: Point[Natural, Self], xs: Array
    ) -> Point[Natural, Self]:
        """One step of expectation-maximization, computed on the transposed harmonium with the categorical variable at the bottom."""
        tns_man = self.transpose_manifold
        weights, comp_means = deep_mixture_model_expectation_step(
            tns_man, (xs,), self.transpose_harmonium(params)
        )
        components = [
            self.obs_man.to_natural(tns_man.upr_man.from_one_harmonium(comp))
            for comp in comp_means
        ]
        return self.build_mixture_model(components, weights)

    def stochastic_mixture_model_differential(
        self, params: Point[Natural, Self], xs: Array
    ) -> Point[Mean, Self]:
        """Differential of the negative average log-likelihood of observations, with respect to the natural parameters."""
        return self.to_mean(params) - self.expectation_step(params, xs)


def deep_mixture_model_expectation_step(
    man: DeepHarmonium,
    xzs: Sample,
    params: Point[Natural, Any],
) -> tuple[Point[Natural, Categorical], list[Point[Mean, DeepHarmonium]]]:
    """E-step of a deep mixture model, i.e. a deep harmonium with a categorical bottom layer.

    Returns the updated weights, and the expected sufficient statistics of the harmonium above the categorical variable for each component.

    Args:
        man: Deep harmonium whose bottom layer is categorical
        xzs: Sample of every layer above the categorical layer
        params: Natural parameters of the deep harmonium
    """
    cat_man = man.bot_man
    if not isinstance(cat_man, Categorical):
        raise HarmoniumStructureError(
            f"Deep mixture models need a categorical bottom layer, got {type(cat_man).__name__}"
        )
    aff, _ = man.split_bottom_harmonium(params)
    upr_man = man.upr_man
    nxt_man = upr_man.bot_man

    def _responsibilities(xz: Sample) -> Array:
        nxt_stats = nxt_man.sufficient_statistic(xz[0])
        return cat_man.to_mean(man.aff_man(aff, nxt_stats)).params

    def _statistics(xz: Sample) -> Array:
        return upr_man.sufficient_statistic(xz).params

    muss = jax.vmap(_responsibilities)(xzs)
    sxzs = jax.vmap(_statistics)(xzs)
    wghts = jnp.concatenate([muss, 1 - jnp.sum(muss, axis=1, keepdims=True)], axis=1)
    cmpnts = wghts.T @ sxzs
    nrms = jnp.sum(wghts, axis=0)
    weights = cat_man.to_natural(cat_man.mean_point(jnp.mean(muss, axis=0)))
    return weights, [upr_man.mean_point(cmpnt / nrm) for cmpnt, nrm in zip(cmpnts, nrms)]
