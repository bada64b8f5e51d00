"""Conditional harmoniums, i.e. functions from an input variable to harmoniums.

A conditional harmonium shifts the bias of the bottom layer of a deep harmonium by a linear function of the sufficient statistic of an input $z$:

$$\\theta_0(z) = \\theta_0 + W \\cdot \\mathbf s_Z(z).$$

Coordinates are stored as the harmonium followed by the input map $W$.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Self, override

import jax
import jax.numpy as jnp
from jax import Array

from ..manifold.base import Point
from ..manifold.combinators import Pair
from ..manifold.linear import LinearMap
from ..manifold.matrix import MatrixRep, Rectangular
from .base import Differentiable, ExponentialFamily, Mean, Natural
from .harmonium import DeepHarmonium, HarmoniumStructureError, layer_statistics


@dataclass(frozen=True)
class ConditionalHarmonium(Pair[DeepHarmonium, LinearMap[MatrixRep, Any, Any]]):
    """A deep harmonium whose bottom bias depends linearly on an input.

    Args:
        hrm_man: The harmonium at every input
        inp_man: Exponential family of the input
        rep: Matrix representation of the input map
    """

    hrm_man: DeepHarmonium
    inp_man: ExponentialFamily
    rep: MatrixRep = Rectangular()

    def __post_init__(self):
        if not isinstance(self.hrm_man, DeepHarmonium):
            raise HarmoniumStructureError(
                f"Conditional harmoniums wrap deep harmoniums, got {type(self.hrm_man).__name__}"
            )

    @property
    @override
    def fst_man(self) -> DeepHarmonium:
        return self.hrm_man

    @property
    @override
    def snd_man(self) -> LinearMap[MatrixRep, Any, Any]:
        return LinearMap(self.rep, self.inp_man, self.hrm_man.bot_man)

    def initialize(
        self, key: Array, location: float = 0.0, shape: float = 0.1
    ) -> Point[Natural, Self]:
        """Initialize the harmonium with its own strategy, and the input map with small random entries."""
        key_hrm, key_inp = jax.random.split(key)
        hrm = self.hrm_man.initialize(key_hrm, location, shape)
        rows, cols = self.snd_man.shape
        noise = shape / jnp.sqrt(rows * cols) * jax.random.normal(key_inp, (rows, cols))
        return self.join_params(hrm, self.snd_man.from_dense(noise, Natural))

    def harmonium_at(self, chrm: Point[Natural, Self], z: Array) -> Point[Natural, DeepHarmonium]:
        """The harmonium given a single input."""
        hrm, inp_map = self.split_params(chrm)
        shift = self.snd_man(inp_map, self.inp_man.sufficient_statistic(z))
        return self.hrm_man.bias_bottom(shift, hrm)

    def shifted_harmoniums(self, chrm: Point[Natural, Self], mzs: Array) -> Array:
        """Natural parameters of the harmoniums at a batch of input statistics, with shape `(n, hrm_man.dim)`."""
        hrm, inp_map = self.split_params(chrm)
        shifts = mzs @ self.snd_man.to_dense(inp_map).T
        pad = self.hrm_man.dim - self.hrm_man.bot_man.dim
        return hrm.params + jnp.pad(shifts, ((0, 0), (0, pad)))

    def harmoniums_at(self, chrm: Point[Natural, Self], zs: Array) -> Array:
        """Natural parameters of the harmoniums at a batch of inputs, with shape `(n, hrm_man.dim)`."""
        return self.shifted_harmoniums(chrm, layer_statistics(self.inp_man, zs))

    def propagate(
        self, dhrms: Array, mzs: Array, chrm: Point[Natural, Self]
    ) -> tuple[Point[Mean, Self], Array]:
        """Back-propagate differentials of the harmoniums at a batch of inputs to the conditional harmonium.

        Args:
            dhrms: Differentials of the harmoniums, with shape `(n, hrm_man.dim)`
            mzs: Sufficient statistics of the inputs, with shape `(n, inp_man.dim)`
            chrm: The conditional harmonium

        Returns:
            The averaged differential, and the natural parameters of the harmoniums at the inputs
        """
        nhrms = self.shifted_harmoniums(chrm, mzs)
        dbiases = dhrms[:, : self.hrm_man.bot_man.dim]
        dmap = dbiases.T @ mzs / dhrms.shape[0]
        dchrm = self.join_params(
            self.hrm_man.mean_point(jnp.mean(dhrms, axis=0)),
            self.snd_man.from_dense(dmap, Mean),
        )
        return dchrm, nhrms

    def harmonium_means(self, nhrms: Array) -> Array:
        """Mean parameters of a batch of harmoniums in natural coordinates."""
        if not isinstance(self.hrm_man, Differentiable):
            raise HarmoniumStructureError(
                "Mean parameters of conditional harmoniums need a differentiable harmonium"
            )
        hrm_man = self.hrm_man

        def _to_mean(row: Array) -> Array:
            return hrm_man.to_mean(hrm_man.natural_point(row)).params

        return jax.vmap(_to_mean)(nhrms)

    def conditional_expectation_step(
        self, chrm: Point[Natural, Self], ys: Array, zs: Array
    ) -> Array:
        """Expected sufficient statistics of the harmonium at each input, given the matching observation of its bottom layer.

        Returns:
            Array of shape `(n, hrm_man.dim)`
        """

        def _infer(y: Array, z: Array) -> Array:
            hrm = self.harmonium_at(chrm, z)
            return self.hrm_man.infer_missing_expectations(hrm, y).params

        return jax.vmap(_infer)(ys, zs)
