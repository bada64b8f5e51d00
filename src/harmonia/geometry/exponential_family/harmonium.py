"""Core definitions for deep harmoniums. A deep harmonium is a layered exponential family over an ordered list of random variables $x_0, x_1, \\ldots, x_{k-1}$, where each adjacent pair of layers is coupled through a bilinear interaction.

In theory, the joint distribution of a deep harmonium takes the form

$$
\\log p(x_0, \\ldots, x_{k-1}) = \\sum_{i=0}^{k-1} \\theta_i \\cdot \\mathbf s_i(x_i) + \\sum_{i=0}^{k-2} \\mathbf s_i(x_i) \\cdot \\Theta_{i} \\cdot \\mathbf s_{i+1}(x_{i+1}) - \\psi(\\theta),
$$

where:

- $\\theta_i$ are the layer biases,
- $\\Theta_i$ is the interaction matrix between layer $i$ and layer $i+1$, and
- $\\mathbf s_i$ is the sufficient statistic of layer $i$.

Coordinates are stored right-recursively: the bias $\\theta_0$ of the bottom layer, the interaction $\\Theta_0$ (a linear map with codomain layer 0 and domain layer 1), and then the coordinates of the deep harmonium over layers $1, \\ldots, k-1$. A deep harmonium with one layer has exactly the coordinates of that layer.

Samples are tuples holding one array per layer, each of shape `(n, layer.data_dim)`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Self, override

import jax
import jax.numpy as jnp
from jax import Array

from ..manifold.base import CoordinateError, Point
from ..manifold.combinators import Sum
from ..manifold.linear import AffineMap, LinearMap
from ..manifold.matrix import MatrixRep, Rectangular
from .base import Differentiable, ExponentialFamily, Generative, Mean, Natural

type Sample = tuple[Array, ...]


class HarmoniumStructureError(ValueError):
    """A layer stack is malformed, or lacks what an operation needs."""


def layer_statistics(man: ExponentialFamily, xs: Any) -> Array:
    """Sufficient statistics of a batch of observations of a single layer, as an array of shape `(n, man.dim)`."""
    return jax.vmap(lambda x: man.sufficient_statistic(x).params)(xs)


@dataclass(frozen=True)
class DeepHarmonium(ExponentialFamily):
    """A deep harmonium over an ordered list of exponential family layers.

    The first layer is the bottom of the hierarchy (typically the observations), and each subsequent layer is the next layer up. Layer stacks are validated once at construction, so every later split and join works at statically known offsets.

    Args:
        layers: Exponential families, from the bottom layer to the top layer
        int_reps: Matrix representations of the interactions between adjacent layers. Defaults to `Rectangular` for every interaction.
    """

    layers: tuple[ExponentialFamily, ...]
    int_reps: tuple[MatrixRep, ...] = ()

    def __post_init__(self):
        layers = tuple(self.layers)
        if not layers:
            raise HarmoniumStructureError("A deep harmonium needs at least one layer")
        for man in layers:
            if not isinstance(man, ExponentialFamily):
                raise HarmoniumStructureError(
                    f"Harmonium layers must be exponential families, got {type(man).__name__}"
                )
        int_reps = tuple(self.int_reps)
        if not int_reps:
            int_reps = tuple(Rectangular() for _ in layers[1:])
        if len(int_reps) != len(layers) - 1:
            raise HarmoniumStructureError(
                f"{len(layers)} layers need {len(layers) - 1} interaction "
                f"representations, got {len(int_reps)}"
            )
        object.__setattr__(self, "layers", layers)
        object.__setattr__(self, "int_reps", int_reps)

    def _require_layers(self, n: int, operation: str) -> None:
        if self.n_layers < n:
            raise HarmoniumStructureError(
                f"{operation} needs at least {n} layers, but the harmonium has {self.n_layers}"
            )

    def _require_layer(self, idx: int, capability: type, operation: str) -> Any:
        man = self.layers[idx]
        if not isinstance(man, capability):
            raise HarmoniumStructureError(
                f"{operation} needs layer {idx} to be {capability.__name__}, "
                f"got {type(man).__name__}"
            )
        return man

    # Structure

    @property
    def n_layers(self) -> int:
        return len(self.layers)

    @property
    def bot_man(self) -> ExponentialFamily:
        """Bottom layer."""
        return self.layers[0]

    @property
    def int_man(self) -> LinearMap[MatrixRep, ExponentialFamily, ExponentialFamily]:
        """Interaction between the bottom layer and the layer above it."""
        self._require_layers(2, "The interaction manifold")
        return LinearMap(self.int_reps[0], self.layers[1], self.layers[0])

    @property
    def aff_man(self) -> AffineMap[MatrixRep, ExponentialFamily, ExponentialFamily]:
        """Affine map from the layer above the bottom to the bottom layer, holding the bottom bias and the interaction."""
        self._require_layers(2, "The affine manifold")
        return AffineMap(self.int_reps[0], self.layers[1], self.layers[0])

    @property
    def upr_man(self) -> DeepHarmonium:
        """Deep harmonium over every layer above the bottom."""
        self._require_layers(2, "The upper harmonium")
        return DeepHarmonium(self.layers[1:], self.int_reps[1:])

    @property
    def rct_man(self) -> Sum:
        """Manifold of rectification parameters, with one block per layer above the bottom."""
        return Sum(self.layers[1:])

    @property
    def transpose_manifold(self) -> DeepHarmonium:
        """The deep harmonium with its layers in reverse order."""
        return DeepHarmonium(self.layers[::-1], self.int_reps[::-1])

    # Overrides

    @property
    @override
    def dim(self) -> int:
        if self.n_layers == 1:
            return self.bot_man.dim
        return self.aff_man.dim + self.upr_man.dim

    @property
    @override
    def data_dim(self) -> int:
        return sum(man.data_dim for man in self.layers)

    @override
    def sufficient_statistic(self, x: Sample) -> Point[Mean, Self]:
        """Sufficient statistic of a tuple holding one observation per layer."""
        if len(x) != self.n_layers:
            raise HarmoniumStructureError(
                f"Expected one observation per layer ({self.n_layers}), got {len(x)}"
            )
        if self.n_layers == 1:
            return self.to_one_harmonium(self.bot_man.sufficient_statistic(x[0]))
        bot_stats = self.bot_man.sufficient_statistic(x[0])
        nxt_stats = self.layers[1].sufficient_statistic(x[1])
        int_stats = self.int_man.outer_product(bot_stats, nxt_stats)
        aff_stats = self.aff_man.join_params(bot_stats, int_stats)
        return self.join_bottom_harmonium(
            aff_stats, self.upr_man.sufficient_statistic(x[1:])
        )

    @override
    def log_base_measure(self, x: Sample) -> Array:
        return sum(
            (man.log_base_measure(xi) for man, xi in zip(self.layers, x)),
            start=jnp.array(0.0),
        )

    @override
    def initialize(
        self, key: Array, location: float = 0.0, shape: float = 0.1
    ) -> Point[Natural, Self]:
        """Initialize every layer bias with the strategy of its layer, and the interactions with random entries scaled by 1/sqrt of their size."""
        if self.n_layers == 1:
            return self.to_one_harmonium(self.bot_man.initialize(key, location, shape))
        key_bot, key_int, key_upr = jax.random.split(key, 3)
        bias = self.bot_man.initialize(key_bot, location, shape)
        rows, cols = self.int_man.shape
        noise = shape / jnp.sqrt(rows * cols) * jax.random.normal(key_int, (rows, cols))
        intr = self.int_man.from_dense(noise, Natural)
        upper = self.upr_man.initialize(key_upr, location, shape)
        return self.join_bottom_harmonium(self.aff_man.join_params(bias, intr), upper)

    # Algebra

    def join_bottom_harmonium[C](
        self, aff: Point[C, AffineMap[Any, Any, Any]], upper: Point[C, DeepHarmonium]
    ) -> Point[C, Self]:
        """Add a layer, defined by an affine function, to the bottom of a deep harmonium."""
        self.aff_man.check_point(aff)
        self.upr_man.check_point(upper)
        if aff.coords != upper.coords:
            raise CoordinateError("Affine function and upper harmonium must share coordinates")
        return self.point(jnp.concatenate([aff.params, upper.params]), aff.coords)

    def split_bottom_harmonium[C](
        self, p: Point[C, Self]
    ) -> tuple[Point[C, AffineMap[Any, Any, Any]], Point[C, DeepHarmonium]]:
        """Split a deep harmonium into the affine function of its bottom layer and the harmonium above it."""
        self.check_point(p)
        aff_man = self.aff_man
        return (
            aff_man.point(p.params[: aff_man.dim], p.coords),
            self.upr_man.point(p.params[aff_man.dim :], p.coords),
        )

    def bias_bottom[C](self, delta: Point[C, Any], p: Point[C, Self]) -> Point[C, Self]:
        """Translate the bias of the bottom layer by `delta`."""
        self.check_point(p)
        bias = self.get_bottom_bias(p) + delta
        rest = p.params[self.bot_man.dim :]
        return self.point(jnp.concatenate([bias.params, rest]), p.coords)

    def get_bottom_bias[C](self, p: Point[C, Self]) -> Point[C, Any]:
        """Bias of the bottom layer."""
        self.check_point(p)
        return self.bot_man.point(p.params[: self.bot_man.dim], p.coords)

    def transpose_harmonium[C](self, p: Point[C, Self]) -> Point[C, DeepHarmonium]:
        """Reverse the layers and transpose every interaction. A one-layer harmonium is its own transpose."""
        self.check_point(p)
        if self.n_layers == 1:
            return p
        aff, upper = self.split_bottom_harmonium(p)
        bias, intr = self.aff_man.split_params(aff)
        upper_t = self.upr_man.transpose_harmonium(upper)
        intr_t = self.int_man.transpose(intr)
        params = jnp.concatenate([upper_t.params, intr_t.params, bias.params])
        return self.transpose_manifold.point(params, p.coords)

    def to_one_harmonium[C](self, p: Point[C, Any]) -> Point[C, Self]:
        """View a point on the single layer as a one-layer harmonium."""
        if self.n_layers != 1:
            raise HarmoniumStructureError(
                f"Only one-layer harmoniums wrap a single layer, this one has {self.n_layers}"
            )
        self.bot_man.check_point(p)
        return self.point(p.params, p.coords)

    def from_one_harmonium[C](self, p: Point[C, Self]) -> Point[C, Any]:
        """View a one-layer harmonium as a point on its layer."""
        if self.n_layers != 1:
            raise HarmoniumStructureError(
                f"Only one-layer harmoniums unwrap to a single layer, this one has {self.n_layers}"
            )
        self.check_point(p)
        return self.bot_man.point(p.params, p.coords)

    # Inference

    def condition_on_mean(
        self, p: Point[Natural, Self], means: Point[Mean, Any]
    ) -> Point[Natural, DeepHarmonium]:
        """The harmonium over the upper layers, conditioned on a mean distribution over the bottom layer."""
        aff, upper = self.split_bottom_harmonium(p)
        _, intr = self.aff_man.split_params(aff)
        return self.upr_man.bias_bottom(self.int_man.transpose_apply(intr, means), upper)

    def posterior_at(self, p: Point[Natural, Self], x: Any) -> Point[Natural, DeepHarmonium]:
        """The harmonium over the upper layers given an observation of the bottom layer."""
        return self.condition_on_mean(p, self.bot_man.sufficient_statistic(x))

    def infer_missing_expectations(self, p: Point[Natural, Self], x: Any) -> Point[Mean, Self]:
        """Expected sufficient statistics of a two-layer harmonium, given an observation of the bottom layer.

        These are $(\\mathbf s_0(x), \\mathbf s_0(x) \\otimes \\eta_1, \\eta_1)$, where $\\eta_1$ are the mean parameters of the posterior over the top layer.
        """
        self._require_layers(2, "Inferring missing expectations")
        if self.n_layers != 2:
            raise HarmoniumStructureError("Missing expectations are inferred for two-layer harmoniums")
        top_man = self._require_layer(1, Differentiable, "Inferring missing expectations")
        bot_stats = self.bot_man.sufficient_statistic(x)
        posterior = self.upr_man.from_one_harmonium(self.condition_on_mean(p, bot_stats))
        top_means = top_man.to_mean(posterior)
        int_means = self.int_man.outer_product(bot_stats, top_means)
        return self.join_bottom_harmonium(
            self.aff_man.join_params(bot_stats, int_means),
            self.upr_man.to_one_harmonium(top_means),
        )

    def expectation_step(self, p: Point[Natural, Self], xs: Array) -> Point[Mean, Self]:
        """Average expected sufficient statistics of a two-layer harmonium over a batch of bottom-layer observations."""

        def _infer(x: Array) -> Array:
            return self.infer_missing_expectations(p, x).params

        return self.mean_point(jnp.mean(jax.vmap(_infer)(xs), axis=0))

    def unnormalized_log_observable_density(self, p: Point[Natural, Self], x: Any) -> Array:
        """Log density of the bottom layer of a two-layer harmonium, up to the log-partition function of the harmonium.

        $$\\log \\tilde p(x) = \\theta_0 \\cdot \\mathbf s_0(x) + \\psi_1(\\theta_1 + \\mathbf s_0(x) \\cdot \\Theta_0) + \\log \\mu_0(x)$$
        """
        if self.n_layers != 2:
            raise HarmoniumStructureError("Observable densities are defined for two-layer harmoniums")
        top_man = self._require_layer(1, Differentiable, "The observable density")
        aff, _ = self.split_bottom_harmonium(p)
        bias, _ = self.aff_man.split_params(aff)
        bot_stats = self.bot_man.sufficient_statistic(x)
        posterior = self.upr_man.from_one_harmonium(self.posterior_at(p, x))
        return (
            self.bot_man.dot(bias, bot_stats)
            + top_man.log_partition_function(posterior)
            + self.bot_man.log_base_measure(x)
        )

    # Gibbs sampling

    def initial_pass(self, key: Array, p: Point[Natural, Self], xs: Array) -> Sample:
        """Generate a sample of every layer from a sample of the bottom layer, by naive upward sampling.

        Layer $i+1$ is drawn given layer $i$ alone, from $\\theta_{i+1} + \\mathbf s_i(x_i) \\cdot \\Theta_i$. This does not generate a true sample from the deep harmonium.
        """
        if self.n_layers == 1:
            return (xs,)
        nxt_man = self._require_layer(1, Generative, "The initial pass")
        aff, upper = self.split_bottom_harmonium(p)
        _, intr = self.aff_man.split_params(aff)
        nxt_bias = self.upr_man.get_bottom_bias(upper)
        nxt_params = nxt_bias.params + layer_statistics(
            self.bot_man, xs
        ) @ self.int_man.to_dense(intr)
        key_nxt, key_upr = jax.random.split(key)
        ys = nxt_man.sample_points(key_nxt, nxt_params)
        return (xs, *self.upr_man.initial_pass(key_upr, upper, ys))

    def upward_pass(self, key: Array, p: Point[Natural, Self], xzs: Sample) -> Sample:
        """Resample every layer above the bottom, holding the bottom layer fixed.

        Layers are resampled from the bottom up. Layer $i+1$ is drawn from $\\theta_{i+1} + \\Theta_{i+1} \\cdot \\mathbf s_{i+2}(x_{i+2}) + \\mathbf s_i(x_i) \\cdot \\Theta_i$, using the freshly drawn layer below and the previous state of the layer above. The top layer is drawn given the layer below alone.
        """
        if self.n_layers == 1:
            return xzs
        if self.n_layers == 2:
            return self.initial_pass(key, p, xzs[0])
        nxt_man = self._require_layer(1, Generative, "The upward pass")
        aff, upper = self.split_bottom_harmonium(p)
        _, intr = self.aff_man.split_params(aff)
        upr_aff, _ = self.upr_man.split_bottom_harmonium(upper)
        nxt_bias, upr_intr = self.upr_man.aff_man.split_params(upr_aff)
        abv_stats = layer_statistics(self.layers[2], xzs[2])
        bot_stats = layer_statistics(self.bot_man, xzs[0])
        nxt_params = (
            nxt_bias.params
            + abv_stats @ self.upr_man.int_man.to_dense(upr_intr).T
            + bot_stats @ self.int_man.to_dense(intr)
        )
        key_nxt, key_upr = jax.random.split(key)
        ys = nxt_man.sample_points(key_nxt, nxt_params)
        return (xzs[0], *self.upr_man.upward_pass(key_upr, upper, (ys, *xzs[2:])))

    def gibbs_pass(self, key: Array, p: Point[Natural, Self], xzs: Sample) -> Sample:
        """A single pass of block Gibbs sampling: resample the bottom layer given the layer above, and then every other layer with `upward_pass`."""
        self._require_layers(2, "A Gibbs pass")
        bot_man = self._require_layer(0, Generative, "A Gibbs pass")
        aff, _ = self.split_bottom_harmonium(p)
        bias, intr = self.aff_man.split_params(aff)
        bot_params = bias.params + layer_statistics(
            self.layers[1], xzs[1]
        ) @ self.int_man.to_dense(intr).T
        key_bot, key_upr = jax.random.split(key)
        xs = bot_man.sample_points(key_bot, bot_params)
        return self.upward_pass(key_upr, p, (xs, *xzs[1:]))

    # Rectification

    def marginalize_rectified_harmonium(
        self, rprms: Point[Natural, Sum], p: Point[Natural, Self]
    ) -> tuple[Point[Natural, Sum], Point[Natural, DeepHarmonium]]:
        """Marginalize the bottom layer out of a rectified deep harmonium, folding its rectification parameters into the bias of the new bottom layer."""
        rprm, rprms_upr = self.rct_man.split_first(rprms)
        _, upper = self.split_bottom_harmonium(p)
        return rprms_upr, self.upr_man.bias_bottom(rprm, upper)

    def sample_rectified_harmonium(
        self, key: Array, rprms: Point[Natural, Sum], p: Point[Natural, Self], n: int
    ) -> Sample:
        """Exact sample from a rectified deep harmonium, by a single downward pass.

        The upper harmonium is marginalized and sampled recursively, and the bottom layer is then drawn given the layer above it. The top layer is sampled directly.
        """
        self.rct_man.check_point(rprms)
        if self.n_layers == 1:
            top_man = self._require_layer(0, Generative, "Rectified sampling")
            return (top_man.sample(key, self.from_one_harmonium(p), n),)
        bot_man = self._require_layer(0, Generative, "Rectified sampling")
        rprms_upr, upper = self.marginalize_rectified_harmonium(rprms, p)
        key_upr, key_bot = jax.random.split(key)
        upr_smp = self.upr_man.sample_rectified_harmonium(key_upr, rprms_upr, upper, n)
        aff, _ = self.split_bottom_harmonium(p)
        bias, intr = self.aff_man.split_params(aff)
        bot_params = bias.params + layer_statistics(
            self.layers[1], upr_smp[0]
        ) @ self.int_man.to_dense(intr).T
        xs = bot_man.sample_points(key_bot, bot_params)
        return (xs, *upr_smp)

    def rectified_harmonium_log_likelihood(
        self,
        rho0: Array,
        rprms: Point[Natural, Any],
        p: Point[Natural, Self],
        x: Any,
    ) -> Array:
        """Log-likelihood of an observation of the bottom layer of a rectified two-layer harmonium.

        $$\\log p(x) = \\theta_0 \\cdot \\mathbf s_0(x) + \\log \\mu_0(x) + \\psi_1(\\theta_1 + \\mathbf s_0(x) \\cdot \\Theta_0) - \\psi_1(\\theta_1 + \\rho) - \\rho_0$$
        """
        if self.n_layers != 2:
            raise HarmoniumStructureError("Rectified log-likelihoods are defined for two-layer harmoniums")
        top_man = self._require_layer(1, Differentiable, "The rectified log-likelihood")
        _, upper = self.split_bottom_harmonium(p)
        prior = self.upr_man.from_one_harmonium(upper)
        return (
            self.unnormalized_log_observable_density(p, x)
            - top_man.log_partition_function(prior + rprms)
            - rho0
        )

    def rectified_bayes_rule(
        self,
        rprms: Point[Natural, Any],
        lkl: Point[Natural, AffineMap[Any, Any, Any]],
        x: Any,
        prior: Point[Natural, DeepHarmonium],
    ) -> Point[Natural, DeepHarmonium]:
        """Posterior over the upper harmonium given a rectified likelihood, an observation, and a prior."""
        joint = self.join_bottom_harmonium(lkl, self.upr_man.bias_bottom(-rprms, prior))
        return self.posterior_at(joint, x)
