"""Tests for the base exponential families.

Tests parameter conversions, densities, and sampling of Normal, Categorical, and Bernoulli distributions, and of products of Bernoullis.
"""

import jax
import jax.numpy as jnp
import pytest
from jax import Array
from jax.scipy import stats

from harmonia.geometry import Diagonal, Mean, PositiveDefinite, Scale, Source
from harmonia.models import Bernoulli, Bernoullis, Categorical, Euclidean, Normal

jax.config.update("jax_platform_name", "cpu")

# Tolerances
RTOL = 1e-4
ATOL = 1e-5

# Test parameters
SAMPLE_MEAN = jnp.array([1.0, -0.5])
SAMPLE_COV = jnp.array([[2.0, 1.0], [1.0, 1.0]])
SAMPLE_SIZE = 1000


@pytest.fixture
def key() -> Array:
    """Random key for tests."""
    return jax.random.PRNGKey(42)


def normal_means(model: Normal, mean: Array, cov: Array):
    return model.join_mean_covariance(
        model.loc_man.mean_point(mean), model.cov_man.from_dense(cov, Mean)
    )


class TestNormal:
    """Test Normal distributions across covariance representations."""

    @pytest.fixture(params=[PositiveDefinite(), Diagonal(), Scale()])
    def model(self, request: pytest.FixtureRequest) -> Normal:
        return Normal(2, request.param)

    def test_dimensions(self, model: Normal) -> None:
        n_cov = {PositiveDefinite(): 3, Diagonal(): 2, Scale(): 1}[model.rep]
        assert model.dim == 2 + n_cov
        assert model.data_dim == 2

    def test_mean_natural_round_trip(self, model: Normal) -> None:
        cov = model.cov_man.to_dense(model.cov_man.from_dense(SAMPLE_COV, Mean))
        means = normal_means(model, SAMPLE_MEAN, cov)
        params = model.to_natural(means)
        recovered = model.to_mean(params)
        assert jnp.allclose(recovered.params, means.params, rtol=RTOL, atol=ATOL)

    def test_closed_forms_match_gradients(self, model: Normal) -> None:
        """The closed-form coordinate transitions agree with the gradients of the potentials."""
        cov = model.cov_man.to_dense(model.cov_man.from_dense(SAMPLE_COV, Mean))
        means = normal_means(model, SAMPLE_MEAN, cov)
        params = model.to_natural(means)
        grad_means = model.grad(model.log_partition_function, params)
        grad_params = model.grad(model.negative_entropy, means)
        assert jnp.allclose(grad_means.params, means.params, rtol=RTOL, atol=ATOL)
        assert jnp.allclose(grad_params.params, params.params, rtol=RTOL, atol=ATOL)

    def test_divergence_to_self_vanishes(self, model: Normal) -> None:
        cov = model.cov_man.to_dense(model.cov_man.from_dense(SAMPLE_COV, Mean))
        means = normal_means(model, SAMPLE_MEAN, cov)
        params = model.to_natural(means)
        assert jnp.allclose(model.relative_entropy(means, params), 0.0, atol=ATOL)

    def test_log_density_matches_scipy(self, model: Normal, key: Array) -> None:
        cov = model.cov_man.to_dense(model.cov_man.from_dense(SAMPLE_COV, Mean))
        params = model.to_natural(normal_means(model, SAMPLE_MEAN, cov))
        xs = jax.random.normal(key, (10, 2))
        ours = jax.vmap(model.log_density, in_axes=(None, 0))(params, xs)
        theirs = stats.multivariate_normal.logpdf(xs, SAMPLE_MEAN, cov)
        assert jnp.allclose(ours, theirs, rtol=RTOL, atol=ATOL)

    def test_fit_from_sample(self, model: Normal, key: Array) -> None:
        cov = model.cov_man.to_dense(model.cov_man.from_dense(SAMPLE_COV, Mean))
        params = model.to_natural(normal_means(model, SAMPLE_MEAN, cov))
        sample = model.sample(key, params, 20000)
        assert sample.shape == (20000, 2)
        fitted = model.to_natural(model.average_sufficient_statistic(sample))
        assert jnp.allclose(model.statistical_mean(fitted), SAMPLE_MEAN, atol=0.05)
        assert jnp.allclose(model.statistical_covariance(fitted), cov, atol=0.1)

    def test_stochastic_to_mean(self, model: Normal, key: Array) -> None:
        cov = model.cov_man.to_dense(model.cov_man.from_dense(SAMPLE_COV, Mean))
        params = model.to_natural(normal_means(model, SAMPLE_MEAN, cov))
        estimate = model.stochastic_to_mean(key, params, 50000)
        assert estimate.coords == Mean
        assert jnp.allclose(estimate.params, model.to_mean(params).params, atol=0.1)

    def test_source_round_trip(self, model: Normal) -> None:
        cov = model.cov_man.to_dense(model.cov_man.from_dense(SAMPLE_COV, Mean))
        params = model.to_natural(normal_means(model, SAMPLE_MEAN, cov))
        source = model.to_source(params)
        assert source.coords is Source
        assert jnp.allclose(source.params[:2], SAMPLE_MEAN, rtol=RTOL, atol=ATOL)
        recovered = model.from_source(source)
        assert jnp.allclose(recovered.params, params.params, rtol=RTOL, atol=ATOL)


class TestEuclidean:
    """Test the unit-covariance normal."""

    def test_density_is_unit_normal(self) -> None:
        man = Euclidean(1)
        params = man.natural_point(jnp.array([0.7]))
        xs = jnp.linspace(-3.0, 3.0, 7)
        ours = jax.vmap(man.density, in_axes=(None, 0))(params, xs)
        assert jnp.allclose(ours, stats.norm.pdf(xs, 0.7, 1.0), rtol=RTOL, atol=ATOL)


class TestCategorical:
    """Test Categorical distributions."""

    @pytest.fixture(params=[2, 3, 5])
    def model(self, request: pytest.FixtureRequest) -> Categorical:
        return Categorical(n_categories=request.param)

    def test_last_category_is_reference(self, model: Categorical) -> None:
        s_ref = model.sufficient_statistic(jnp.array(model.n_categories - 1))
        assert jnp.allclose(s_ref.params, jnp.zeros(model.dim))
        s_first = model.sufficient_statistic(jnp.array(0))
        assert jnp.allclose(s_first.params, jnp.zeros(model.dim).at[0].set(1.0))

    def test_density_normalizes(self, model: Categorical, key: Array) -> None:
        params = model.initialize(key, shape=1.0)
        categories = jnp.arange(model.n_categories)
        densities = jax.vmap(model.density, in_axes=(None, 0))(params, categories)
        assert jnp.allclose(jnp.sum(densities), 1.0, rtol=RTOL, atol=ATOL)
        probs = model.to_probs(model.to_mean(params))
        assert jnp.allclose(densities, probs, rtol=RTOL, atol=ATOL)

    def test_mean_natural_round_trip(self, model: Categorical, key: Array) -> None:
        params = model.initialize(key, shape=1.0)
        recovered = model.to_natural(model.to_mean(params))
        assert jnp.allclose(recovered.params, params.params, rtol=RTOL, atol=ATOL)

    def test_sampling_distribution(self, model: Categorical, key: Array) -> None:
        params = model.natural_point(jnp.zeros(model.dim).at[0].set(1.5))
        samples = model.sample(key, params, 20000)
        assert samples.shape == (20000, 1)
        freqs = jnp.array([jnp.mean(samples == k) for k in range(model.n_categories)])
        probs = model.to_probs(model.to_mean(params))
        assert jnp.allclose(freqs, probs, atol=0.02)

    def test_requires_two_categories(self) -> None:
        with pytest.raises(ValueError):
            Categorical(1)


class TestBernoulli:
    """Test Bernoulli units and their products."""

    def test_round_trip(self) -> None:
        man = Bernoulli()
        params = man.natural_point(jnp.array([0.8]))
        means = man.to_mean(params)
        assert jnp.allclose(means.params, jax.nn.sigmoid(0.8))
        assert jnp.allclose(man.to_natural(means).params, params.params, rtol=RTOL)

    def test_product_dimensions(self) -> None:
        man = Bernoullis(4)
        assert man.dim == 4
        assert man.data_dim == 4

    def test_product_sampling(self, key: Array) -> None:
        man = Bernoullis(3)
        params = man.natural_point(jnp.array([-1.0, 0.0, 2.0]))
        samples = man.sample(key, params, 20000)
        assert samples.shape == (20000, 3)
        assert jnp.all((samples == 0) | (samples == 1))
        freqs = jnp.mean(samples, axis=0)
        assert jnp.allclose(freqs, man.to_mean(params).params, atol=0.02)

    def test_product_potential_is_sum(self) -> None:
        man = Bernoullis(3)
        params = man.natural_point(jnp.array([-1.0, 0.0, 2.0]))
        expected = jnp.sum(jax.nn.softplus(params.params))
        assert jnp.allclose(man.log_partition_function(params), expected)
        means = man.to_mean(params)
        assert jnp.allclose(man.to_natural(means).params, params.params, rtol=RTOL, atol=ATOL)
