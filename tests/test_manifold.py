"""Tests for points, coordinates, and manifold combinators.

Tests coordinate tagging, checked arithmetic, and splitting and joining of concatenated coordinates.
"""

import jax
import jax.numpy as jnp
import pytest
from jax import Array

from harmonia.geometry import (
    CoordinateError,
    DimensionError,
    Dual,
    Mean,
    Natural,
    Point,
    Sum,
    dual_coordinates,
    expand_dual,
    reduce_dual,
)
from harmonia.models import Categorical, Euclidean

jax.config.update("jax_platform_name", "cpu")

# Tolerances
RTOL = 1e-5
ATOL = 1e-7


@pytest.fixture
def key() -> Array:
    """Random key for tests."""
    return jax.random.PRNGKey(42)


class TestCoordinates:
    """Test coordinate tags and their duals."""

    def test_mean_is_dual_of_natural(self) -> None:
        assert Mean == Dual[Natural]
        assert dual_coordinates(Natural) == Mean
        assert dual_coordinates(Mean) is Natural

    def test_duals_reduce(self) -> None:
        man = Euclidean(2)
        p = man.natural_point(jnp.array([1.0, 2.0]))
        q = expand_dual(p)
        assert q.coords == Dual[Dual[Natural]]
        assert reduce_dual(q).coords is Natural

    def test_grad_returns_dual_coordinates(self) -> None:
        man = Euclidean(2)
        p = man.natural_point(jnp.array([1.0, -2.0]))
        grads = man.grad(man.log_partition_function, p)
        assert grads.coords == Mean
        assert jnp.allclose(grads.params, p.params, rtol=RTOL, atol=ATOL)


class TestPoint:
    """Test checked point arithmetic."""

    @pytest.fixture
    def man(self) -> Euclidean:
        return Euclidean(3)

    def test_arithmetic(self, man: Euclidean) -> None:
        p = man.natural_point(jnp.array([1.0, 2.0, 3.0]))
        q = man.natural_point(jnp.array([0.5, 0.5, 0.5]))
        assert jnp.allclose((p + q).params, jnp.array([1.5, 2.5, 3.5]))
        assert jnp.allclose((p - q).params, jnp.array([0.5, 1.5, 2.5]))
        assert jnp.allclose((2.0 * p).params, jnp.array([2.0, 4.0, 6.0]))
        assert jnp.allclose((p / 2.0).params, jnp.array([0.5, 1.0, 1.5]))
        assert jnp.allclose((-p).params, -p.params)
        assert (p + q).coords is Natural

    def test_mismatched_coordinates_raise(self, man: Euclidean) -> None:
        p = man.natural_point(jnp.zeros(3))
        q = man.mean_point(jnp.zeros(3))
        with pytest.raises(CoordinateError):
            _ = p + q

    def test_mismatched_manifolds_raise(self, man: Euclidean) -> None:
        p = man.natural_point(jnp.zeros(3))
        q = Categorical(4).natural_point(jnp.zeros(3))
        with pytest.raises(CoordinateError):
            _ = p - q

    def test_dimension_checked(self, man: Euclidean) -> None:
        with pytest.raises(DimensionError):
            man.natural_point(jnp.zeros(2))

    def test_dot_requires_dual_coordinates(self, man: Euclidean) -> None:
        p = man.natural_point(jnp.array([1.0, 2.0, 3.0]))
        q = man.mean_point(jnp.array([1.0, 1.0, 1.0]))
        assert jnp.allclose(man.dot(p, q), 6.0)
        with pytest.raises(CoordinateError):
            man.dot(p, p)

    def test_points_are_pytrees(self, man: Euclidean) -> None:
        p = man.natural_point(jnp.array([1.0, 2.0, 3.0]))
        doubled = jax.tree_util.tree_map(lambda x: 2 * x, p)
        assert isinstance(doubled, Point)
        assert doubled.man == man
        assert jnp.allclose(doubled.params, 2 * p.params)


class TestSum:
    """Test direct sums of manifolds."""

    @pytest.fixture
    def man(self) -> Sum:
        return Sum((Euclidean(2), Categorical(3), Euclidean(1)))

    def test_dimension(self, man: Sum) -> None:
        assert man.dim == 5

    def test_split_join_round_trip(self, man: Sum, key: Array) -> None:
        p = man.shape_initialize(key, Natural, 0.0, 1.0)
        parts = man.split_params(p)
        assert [part.man for part in parts] == list(man.components)
        assert jnp.array_equal(man.join_params(*parts).params, p.params)

    def test_split_first(self, man: Sum, key: Array) -> None:
        p = man.shape_initialize(key, Natural, 0.0, 1.0)
        first, rest = man.split_first(p)
        assert first.man == Euclidean(2)
        assert rest.man == Sum((Categorical(3), Euclidean(1)))
        assert jnp.array_equal(man.join_first(first, rest).params, p.params)

    def test_join_wrong_count_raises(self, man: Sum) -> None:
        with pytest.raises(DimensionError):
            man.join_params(Euclidean(2).natural_point(jnp.zeros(2)))
