"""Fit a mixture of three bivariate Gaussians by expectation-maximization and by contrastive divergence.

Run from the repository root with `python -m examples.clustering.run`.
"""

import argparse
import logging
from typing import Any

import jax
import jax.numpy as jnp
from jax import Array

from harmonia.config import TrainingConfig, initialize_jax
from harmonia.geometry import Mean, Natural, Point, PositiveDefinite, fit_contrastive_divergence
from harmonia.models import Mixture, Normal

from ..shared import example_paths, setup_logging
from .types import ClusteringResults, TrainingRecord

logger = logging.getLogger(__name__)

### Constructors ###


def create_ground_truth_parameters(mix_man: Mixture[Normal]) -> Point[Natural, Mixture[Normal]]:
    """Create ground truth parameters for a mixture of 3 bivariate Gaussians."""
    means = [
        jnp.array([1.0, 1.0]),
        jnp.array([-2.0, -1.0]),
        jnp.array([0.0, 2.5]),
    ]
    covs = [
        jnp.array([[1.0, 0.5], [0.5, 1.0]]),
        jnp.array([[2.0, -0.8], [-0.8, 0.5]]),
        jnp.array([[0.5, 0.0], [0.0, 0.5]]),
    ]

    components: list[Point[Natural, Normal]] = []
    for mean, cov in zip(means, covs):
        with mix_man.obs_man as nm:
            mean_params = nm.join_mean_covariance(
                nm.loc_man.mean_point(mean), nm.cov_man.from_dense(cov, Mean)
            )
            components.append(nm.to_natural(mean_params))

    with mix_man.lat_man as lm:
        weights = lm.to_natural(lm.from_probs(jnp.array([0.35, 0.25, 0.4])))

    return mix_man.build_mixture_model(components, weights)


### Fitting ###


def fit_em(
    key: Array,
    mix_man: Mixture[Normal],
    n_steps: int,
    sample: Array,
) -> tuple[Array, Point[Natural, Mixture[Normal]]]:
    init_params = mix_man.initialize(key)

    def em_step(
        params: Point[Natural, Mixture[Normal]], _: Any
    ) -> tuple[Point[Natural, Mixture[Normal]], Array]:
        ll = mix_man.average_log_observable_density(params, sample)
        next_params = mix_man.mixture_model_expectation_maximization(params, sample)
        return next_params, ll

    final_params, lls = jax.lax.scan(em_step, init_params, None, length=n_steps)
    return lls.ravel(), final_params


fit_em = jax.jit(fit_em, static_argnames=["mix_man", "n_steps"])


def fit_cd(
    key: Array,
    mix_man: Mixture[Normal],
    config: TrainingConfig,
    cd_steps: int,
    sample: Array,
) -> Array:
    key_init, key_train = jax.random.split(key)
    init_params = mix_man.initialize(key_init)
    trajectory = fit_contrastive_divergence(
        key_train, config.optimizer(), mix_man, cd_steps, sample, init_params, config.n_steps
    )
    return jnp.array(
        [mix_man.average_log_observable_density(params, sample) for params in trajectory[1:]]
    )


### Analysis ###


def compute_clustering_results(
    key: Array,
    sample_size: int,
    n_steps: int,
    cd_steps: int,
    config: TrainingConfig,
) -> tuple[ClusteringResults, list[TrainingRecord]]:
    mix_man = Mixture(Normal(2, PositiveDefinite()), 3)
    gt_params = create_ground_truth_parameters(mix_man)

    key_sample, key_em, key_cd = jax.random.split(key, 3)
    sample = mix_man.observable_sample(key_sample, gt_params, sample_size)
    gt_ll = mix_man.average_log_observable_density(gt_params, sample)
    logger.info("Ground truth log-likelihood: %.4f", float(gt_ll))

    em_lls, em_params = fit_em(key_em, mix_man, n_steps, sample)
    logger.info("EM log-likelihood after %d steps: %.4f", n_steps, float(em_lls[-1]))
    cd_lls = fit_cd(key_cd, mix_man, config, cd_steps, sample)
    logger.info("CD log-likelihood after %d steps: %.4f", config.n_steps, float(cd_lls[-1]))

    components, weights = mix_man.split_mixture_model(em_params)
    em_means = [mix_man.obs_man.statistical_mean(comp) for comp in components]

    records = [
        TrainingRecord("em", i, float(ll)) for i, ll in enumerate(em_lls)
    ] + [TrainingRecord("cd", i, float(ll)) for i, ll in enumerate(cd_lls)]

    results = ClusteringResults(
        sample=sample.tolist(),
        ground_truth_ll=float(gt_ll),
        em_lls=em_lls.tolist(),
        cd_lls=cd_lls.tolist(),
        em_weights=mix_man.lat_man.to_probs(mix_man.lat_man.to_mean(weights)).tolist(),
        em_means=[mean.tolist() for mean in em_means],
    )
    return results, records


### Main ###


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--sample-size", type=int, default=500)
    parser.add_argument("--em-steps", type=int, default=50)
    parser.add_argument("--cd-iterations", type=int, default=200)
    parser.add_argument("--cd-steps", type=int, default=1, help="Gibbs passes per CD estimate")
    parser.add_argument("--learning-rate", type=float, default=0.05)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--results-dir", type=str, default=None)
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args()


def main():
    """Run the clustering example."""
    args = parse_args()
    setup_logging(args.verbose)
    initialize_jax()
    paths = example_paths(__file__, args.results_dir)

    config = TrainingConfig(
        learning_rate=args.learning_rate,
        n_steps=args.cd_iterations,
        seed=args.seed,
    )

    results, records = compute_clustering_results(
        config.key(),
        sample_size=args.sample_size,
        n_steps=args.em_steps,
        cd_steps=args.cd_steps,
        config=config,
    )

    paths.save_analysis({"config": config.to_dict(), **results})
    paths.save_table("training", records)


if __name__ == "__main__":
    main()
