"""Algorithms for fitting harmoniums.

Differentials returned by this module are in mean coordinates, and point in the direction of steepest ascent of the negative log-likelihood (or of the respective objective), so that they can be handed to an `Optimizer` as they are.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import jax
import jax.numpy as jnp
from jax import Array

from ..manifold.base import Point
from ..manifold.combinators import Sum
from ..manifold.optimizer import Optimizer, gradient_sequence
from .base import Analytic, Differentiable, ExponentialFamily, Generative, Mean, Natural
from .conditional import ConditionalHarmonium
from .harmonium import DeepHarmonium, HarmoniumStructureError, layer_statistics

logger = logging.getLogger(__name__)


### Expectation Maximization ###


def expectation_maximization[H: DeepHarmonium](
    man: H, params: Point[Natural, H], xs: Array
) -> Point[Natural, H]:
    """One iteration of expectation-maximization on a harmonium with a closed-form M-step."""
    if not isinstance(man, Analytic):
        raise HarmoniumStructureError(
            "Closed-form expectation-maximization needs an analytic harmonium"
        )
    return man.to_natural(man.expectation_step(params, xs))


def expectation_maximization_ascent[H: DeepHarmonium](
    optimizer: Optimizer, man: H, params: Point[Natural, H], xs: Array
) -> Iterator[Point[Natural, H]]:
    """Gradient pursuit of the M-step, for harmoniums without a closed-form M-step.

    The E-step is computed once at `params`, and the returned sequence descends the relative entropy between the expected statistics and the model. The limit of the sequence is the result of one iteration of expectation-maximization. The sequence is infinite, and starts with `params`.
    """
    if not isinstance(man, Differentiable):
        raise HarmoniumStructureError(
            "Expectation-maximization ascent needs a differentiable harmonium"
        )
    target = man.expectation_step(params, xs)

    def differential(p: Point[Natural, H]) -> Point[Mean, H]:
        return man.relative_entropy_differential(target, p)

    return gradient_sequence(optimizer, differential, params)


### Differentials ###


def contrastive_divergence[H: DeepHarmonium](
    key: Array, man: H, k: int, xs: Array, params: Point[Natural, H]
) -> Point[Mean, H]:
    """Contrastive divergence estimate of the differential of the negative log-likelihood.

    Gibbs chains are initialized with `initial_pass` on the observations and run for `k` steps of `gibbs_pass`. The estimate is the average sufficient statistic of the chains minus that of the initial, data-conditioned samples. Its bias vanishes as $k \\to \\infty$.
    """
    key_init, key_chain = jax.random.split(key)
    xzs0 = man.initial_pass(key_init, params, xs)
    xzs1 = xzs0
    for step_key in jax.random.split(key_chain, k):
        xzs1 = man.gibbs_pass(step_key, params, xzs1)
    return man.average_sufficient_statistic(xzs1) - man.average_sufficient_statistic(xzs0)


def stochastic_rectified_harmonium_differential[H: DeepHarmonium](
    key: Array,
    man: H,
    rprms: Point[Natural, Sum],
    xs: Array,
    params: Point[Natural, H],
) -> Point[Mean, H]:
    """Stochastic differential of the negative log-likelihood of a rectified harmonium.

    The model statistics are computed from an exact rectified sample, and the data statistics from `initial_pass` on the observations.
    """
    key_data, key_model = jax.random.split(key)
    pxzs = man.initial_pass(key_data, params, xs)
    qxzs = man.sample_rectified_harmonium(key_model, rprms, params, xs.shape[0])
    return man.average_sufficient_statistic(qxzs) - man.average_sufficient_statistic(pxzs)


def harmonium_information_projection_differential[H: DeepHarmonium](
    key: Array,
    man: H,
    n: int,
    params: Point[Natural, H],
    px: Point[Natural, Any],
) -> Point[Mean, Any]:
    """Differential of the relative entropy $D(p_X \\| q_X)$ with respect to the natural parameters of $p_X$, where $q_X$ is the marginal of the top layer of a two-layer harmonium.

    Minimizing the relative entropy yields the information projection of the harmonium marginal onto the family of $p_X$. With $x_j \\sim p_X$, the estimate is the sample covariance

    $$\\frac{1}{n-1} \\sum_j (y_j - \\bar y)(\\mathbf s(x_j) - \\bar{\\mathbf s}),$$

    where $y_j = \\mathbf s(x_j) \\cdot (\\theta_{p} - \\theta_X) - \\psi_Z(\\theta_Z + \\Theta \\cdot \\mathbf s(x_j))$. Centering both factors on their sample means keeps the estimate unbiased.
    """
    if man.n_layers != 2:
        raise HarmoniumStructureError(
            "Information projections are defined for two-layer harmoniums"
        )
    bot_man, top_man = man.layers
    if not isinstance(bot_man, Differentiable) or not isinstance(top_man, Generative):
        raise HarmoniumStructureError(
            "Information projections need a differentiable bottom layer and a generative top layer"
        )
    aff, upper = man.split_bottom_harmonium(params)
    bias, intr = man.aff_man.split_params(aff)
    prior = man.upr_man.from_one_harmonium(upper)

    xs = top_man.sample(key, px, n)
    mxs = layer_statistics(top_man, xs)
    nbots = bias.params + mxs @ man.int_man.to_dense(intr).T

    def _potential(row: Array) -> Array:
        return bot_man.log_partition_function(bot_man.natural_point(row))

    mys = mxs @ (px - prior).params - jax.vmap(_potential)(nbots)
    mxht = jnp.mean(mxs, axis=0)
    myht = jnp.mean(mys)
    cov = (mys - myht) @ (mxs - mxht) / (mxs.shape[0] - 1)
    return top_man.mean_point(cov)


### Conditional Harmoniums ###


def conditional_expectation_maximization_ascent(
    key: Array,
    optimizer: Optimizer,
    batch_size: int,
    n_steps: int,
    ys: Array,
    zs: Array,
    man: ConditionalHarmonium,
    chrm: Point[Natural, ConditionalHarmonium],
) -> Point[Natural, ConditionalHarmonium]:
    """Approximate expectation-maximization for conditional harmoniums.

    The expected statistics of every harmonium are computed once at `chrm`. The pairs of expected statistics and inputs are then reshuffled as many times as needed to fill `n_steps` minibatches of `batch_size`, and the optimizer takes one step per minibatch.

    Args:
        key: Random key for the reshuffles
        optimizer: Optimizer for the gradient steps
        batch_size: Minibatch size
        n_steps: Number of gradient steps
        ys: Observations of the bottom layer
        zs: Inputs
        man: The conditional harmonium manifold
        chrm: Initial conditional harmonium

    Returns:
        The conditional harmonium after `n_steps` gradient steps
    """
    mhrms = man.conditional_expectation_step(chrm, ys, zs)
    mzs = layer_statistics(man.inp_man, zs)
    n_data = mhrms.shape[0]
    n_cycles = 1 + (n_steps * batch_size - 1) // n_data
    perms = [jax.random.permutation(k, n_data) for k in jax.random.split(key, n_cycles)]
    batches = jnp.concatenate(perms)[: n_steps * batch_size].reshape(n_steps, batch_size)
    logger.debug(
        "Conditional EM ascent with %d reshuffles of %d samples", n_cycles, n_data
    )

    opt_state = optimizer.init(chrm)
    for idxs in batches:
        mzs_batch = mzs[idxs]
        nhrms = man.shifted_harmoniums(chrm, mzs_batch)
        dhrms = mhrms[idxs] - man.harmonium_means(nhrms)
        dchrm, _ = man.propagate(dhrms, mzs_batch, chrm)
        opt_state, chrm = optimizer.update(opt_state, -dchrm, chrm)
    return chrm


def conjugation_curve(
    inp_man: ExponentialFamily,
    rho0: float | Array,
    rprms: Point[Natural, Any],
    zs: Array,
) -> Array:
    """The affine curve $\\rho_0 + \\rho \\cdot \\mathbf s(z)$ at a batch of inputs."""
    return rho0 + layer_statistics(inp_man, zs) @ rprms.params


def conditional_harmonium_conjugation_differential(
    rho0: float | Array,
    rprms: Point[Natural, Any],
    zs: Array,
    man: ConditionalHarmonium,
    chrm: Point[Natural, ConditionalHarmonium],
) -> Point[Mean, ConditionalHarmonium]:
    """Approximate differential for conjugating a harmonium likelihood.

    The log-partition function of the harmonium at each input is compared against the conjugation curve, and the mean parameters of each harmonium are weighted by the discrepancy. The result descends the squared discrepancy between the two.
    """
    man.inp_man.check_point(rprms)
    mzs = layer_statistics(man.inp_man, zs)
    rcts = conjugation_curve(man.inp_man, rho0, rprms, zs)
    nhrms = man.shifted_harmoniums(chrm, mzs)
    hrm_man = man.hrm_man
    if not isinstance(hrm_man, Differentiable):
        raise HarmoniumStructureError(
            "Conjugation differentials need a differentiable harmonium"
        )

    def _potential(row: Array) -> Array:
        return hrm_man.log_partition_function(hrm_man.natural_point(row))

    ptns = jax.vmap(_potential)(nhrms)
    dhrms = (ptns - rcts)[:, None] * man.harmonium_means(nhrms)
    dchrm, _ = man.propagate(dhrms, mzs, chrm)
    return dchrm


### Training Loops ###


def fit_contrastive_divergence[H: DeepHarmonium](
    key: Array,
    optimizer: Optimizer,
    man: H,
    k: int,
    xs: Array,
    params: Point[Natural, H],
    n_steps: int,
) -> list[Point[Natural, H]]:
    """Train a harmonium by contrastive divergence, returning every iterate starting with `params`."""
    opt_state = optimizer.init(params)
    trajectory = [params]
    for step, step_key in enumerate(jax.random.split(key, n_steps)):
        grads = contrastive_divergence(step_key, man, k, xs, params)
        opt_state, params = optimizer.update(opt_state, grads, params)
        trajectory.append(params)
        logger.debug("Contrastive divergence step %d", step)
    logger.info("Finished %d steps of CD-%d", n_steps, k)
    return trajectory

