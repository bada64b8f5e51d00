"""Tests for conditional harmoniums.

Tests input-dependent harmoniums, back-propagation of harmonium differentials, approximate expectation-maximization, and the conjugation differential.
"""

import jax
import jax.numpy as jnp
import pytest
from jax import Array

from harmonia.geometry import (
    ConditionalHarmonium,
    HarmoniumStructureError,
    Mean,
    Natural,
    Optimizer,
    conditional_expectation_maximization_ascent,
    conditional_harmonium_conjugation_differential,
    conjugation_curve,
)
from harmonia.models import Categorical, Euclidean, Mixture

jax.config.update("jax_platform_name", "cpu")
jax.config.update("jax_enable_x64", True)

# Tolerances
RTOL = 1e-6
ATOL = 1e-8

N_SAMPLES = 200


@pytest.fixture
def key() -> Array:
    """Random key for tests."""
    return jax.random.PRNGKey(42)


@pytest.fixture
def man() -> ConditionalHarmonium:
    """Mixture of two unit normals whose location depends on a bivariate input."""
    return ConditionalHarmonium(Mixture(Euclidean(1), 2), Euclidean(2))


@pytest.fixture
def dataset(man: ConditionalHarmonium, key: Array) -> tuple[Array, Array]:
    """Observations of a conditional mixture, with the matching inputs."""
    hrm_man = man.hrm_man
    assert isinstance(hrm_man, Mixture)
    components = [
        Euclidean(1).natural_point(jnp.array([-2.0])),
        Euclidean(1).natural_point(jnp.array([2.0])),
    ]
    weights = Categorical(2).to_natural(Categorical(2).from_probs(jnp.array([0.5, 0.5])))
    hrm = hrm_man.build_mixture_model(components, weights)
    inp_map = man.snd_man.from_dense(jnp.array([[1.0, -0.5]]), Natural)
    chrm = man.join_params(hrm, inp_map)
    key_z, key_y = jax.random.split(key)
    zs = jax.random.normal(key_z, (N_SAMPLES, 2))
    ys = jnp.concatenate(
        [
            hrm_man.observable_sample(k, man.harmonium_at(chrm, z), 1)
            for k, z in zip(jax.random.split(key_y, N_SAMPLES), zs)
        ]
    )
    return ys, zs


def conditional_log_likelihood(
    man: ConditionalHarmonium, chrm, ys: Array, zs: Array
) -> Array:
    hrm_man = man.hrm_man
    assert isinstance(hrm_man, Mixture)
    lls = jax.vmap(
        lambda y, z: hrm_man.log_observable_density(man.harmonium_at(chrm, z), y)
    )(ys, zs)
    return jnp.mean(lls)


class TestStructure:
    """Test the structure of conditional harmoniums."""

    def test_dimensions(self, man: ConditionalHarmonium) -> None:
        assert man.dim == man.hrm_man.dim + 2
        assert man.snd_man.shape == (1, 2)

    def test_requires_deep_harmonium(self) -> None:
        with pytest.raises(HarmoniumStructureError):
            ConditionalHarmonium(Euclidean(1), Euclidean(2))  # pyright: ignore[reportArgumentType]

    def test_harmoniums_at_match_single_inputs(
        self, man: ConditionalHarmonium, key: Array
    ) -> None:
        chrm = man.initialize(key, shape=1.0)
        zs = jax.random.normal(key, (5, 2))
        batch = man.harmoniums_at(chrm, zs)
        assert batch.shape == (5, man.hrm_man.dim)
        for row, z in zip(batch, zs):
            assert jnp.allclose(row, man.harmonium_at(chrm, z).params, rtol=RTOL, atol=ATOL)

    def test_zero_input_map_is_constant(self, man: ConditionalHarmonium, key: Array) -> None:
        hrm = man.hrm_man.initialize(key, shape=1.0)
        chrm = man.join_params(hrm, man.snd_man.point(jnp.zeros(2), Natural))
        z = jnp.array([3.0, -1.0])
        assert jnp.allclose(man.harmonium_at(chrm, z).params, hrm.params)


class TestPropagation:
    """Test back-propagation of harmonium differentials."""

    def test_propagate(self, man: ConditionalHarmonium, key: Array) -> None:
        chrm = man.initialize(key, shape=1.0)
        mzs = jnp.array([[1.0, 0.0], [0.0, 2.0], [1.0, 1.0]])
        dhrms = jnp.ones((3, man.hrm_man.dim))
        dchrm, nhrms = man.propagate(dhrms, mzs, chrm)
        assert dchrm.coords == Mean
        dhrm, dmap = man.split_params(dchrm)
        assert jnp.allclose(dhrm.params, jnp.ones(man.hrm_man.dim))
        assert jnp.allclose(man.snd_man.to_dense(dmap), jnp.array([[2.0 / 3.0, 1.0]]))
        assert jnp.allclose(nhrms, man.shifted_harmoniums(chrm, mzs))

    def test_conditional_expectation_step(
        self, man: ConditionalHarmonium, dataset: tuple[Array, Array], key: Array
    ) -> None:
        ys, zs = dataset
        chrm = man.initialize(key, shape=1.0)
        mhrms = man.conditional_expectation_step(chrm, ys[:4], zs[:4])
        assert mhrms.shape == (4, man.hrm_man.dim)
        expected = man.hrm_man.infer_missing_expectations(man.harmonium_at(chrm, zs[2]), ys[2])
        assert jnp.allclose(mhrms[2], expected.params, rtol=RTOL, atol=ATOL)


class TestLearning:
    """Test fitting conditional harmoniums."""

    def test_expectation_maximization_ascent(
        self, man: ConditionalHarmonium, dataset: tuple[Array, Array], key: Array
    ) -> None:
        ys, zs = dataset
        key_init, key_fit = jax.random.split(key)
        chrm = man.initialize(key_init, shape=1.0)
        ll0 = conditional_log_likelihood(man, chrm, ys, zs)
        optimizer = Optimizer.adam(0.05)
        for step_key in jax.random.split(key_fit, 3):
            chrm = conditional_expectation_maximization_ascent(
                step_key, optimizer, 20, 30, ys, zs, man, chrm
            )
        assert chrm.man == man
        assert conditional_log_likelihood(man, chrm, ys, zs) > ll0

    def test_ascent_reshuffles_beyond_dataset(
        self, man: ConditionalHarmonium, dataset: tuple[Array, Array], key: Array
    ) -> None:
        """More samples than the dataset holds are drawn from successive reshuffles."""
        ys, zs = dataset
        chrm = man.initialize(key, shape=1.0)
        fitted = conditional_expectation_maximization_ascent(
            key, Optimizer.vanilla(0.01), 50, 10, ys[:30], zs[:30], man, chrm
        )
        assert jnp.all(jnp.isfinite(fitted.params))
        assert not jnp.allclose(fitted.params, chrm.params)


class TestConjugation:
    """Test the conjugation differential."""

    def test_conjugation_curve(self) -> None:
        rprms = Euclidean(2).natural_point(jnp.array([1.0, -1.0]))
        zs = jnp.array([[1.0, 1.0], [2.0, 0.0]])
        assert jnp.allclose(conjugation_curve(Euclidean(2), 0.5, rprms, zs), jnp.array([0.5, 2.5]))

    def test_vanishes_when_conjugated(self, man: ConditionalHarmonium, key: Array) -> None:
        hrm_man = man.hrm_man
        assert isinstance(hrm_man, Mixture)
        hrm = hrm_man.initialize(key, shape=1.0)
        chrm = man.join_params(hrm, man.snd_man.point(jnp.zeros(2), Natural))
        rho0 = hrm_man.log_partition_function(hrm)
        rprms = man.inp_man.natural_point(jnp.zeros(2))
        zs = jax.random.normal(key, (10, 2))
        dchrm = conditional_harmonium_conjugation_differential(rho0, rprms, zs, man, chrm)
        assert jnp.allclose(dchrm.params, 0.0, atol=ATOL)

    def test_weights_means_by_discrepancy(self, man: ConditionalHarmonium, key: Array) -> None:
        hrm_man = man.hrm_man
        assert isinstance(hrm_man, Mixture)
        hrm = hrm_man.initialize(key, shape=1.0)
        chrm = man.join_params(hrm, man.snd_man.point(jnp.zeros(2), Natural))
        rho0 = hrm_man.log_partition_function(hrm) - 1.0
        rprms = man.inp_man.natural_point(jnp.zeros(2))
        zs = jax.random.normal(key, (10, 2))
        dchrm = conditional_harmonium_conjugation_differential(rho0, rprms, zs, man, chrm)
        dhrm, _ = man.split_params(dchrm)
        assert jnp.allclose(dhrm.params, hrm_man.to_mean(hrm).params, rtol=RTOL, atol=ATOL)
