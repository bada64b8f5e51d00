"""Tests for matrix representations and linear maps.

Tests dense conversions, structured inverses and determinants, and the application, transposition, and column structure of linear and affine maps.
"""

import jax
import jax.numpy as jnp
import pytest
from jax import Array

from harmonia.geometry import (
    AffineMap,
    CoordinateError,
    Diagonal,
    LinearMap,
    Mean,
    Natural,
    PositiveDefinite,
    Rectangular,
    Scale,
    SquareMap,
    Symmetric,
)
from harmonia.models import Euclidean

jax.config.update("jax_platform_name", "cpu")

# Tolerances
RTOL = 1e-5
ATOL = 1e-6


@pytest.fixture
def key() -> Array:
    """Random key for tests."""
    return jax.random.PRNGKey(42)


@pytest.fixture
def spd_matrix() -> Array:
    return jnp.array([[4.0, 1.0, 0.5], [1.0, 3.0, -0.2], [0.5, -0.2, 2.0]])


class TestMatrixReps:
    """Test matrix representations."""

    def test_rectangular_round_trip(self, key: Array) -> None:
        matrix = jax.random.normal(key, (3, 2))
        params = Rectangular.from_dense(matrix)
        assert params.shape == (6,)
        assert jnp.allclose(Rectangular.to_dense((3, 2), params), matrix)

    def test_symmetric_storage(self, spd_matrix: Array) -> None:
        params = Symmetric.from_dense(spd_matrix)
        # Upper triangle, row by row
        assert jnp.allclose(params, jnp.array([4.0, 1.0, 0.5, 3.0, -0.2, 2.0]))
        assert jnp.allclose(Symmetric.to_dense((3, 3), params), spd_matrix)

    def test_off_diagonal_halving(self, spd_matrix: Array) -> None:
        params = Symmetric.from_dense(spd_matrix)
        halved = Symmetric.halve_off_diagonal((3, 3), params)
        assert jnp.allclose(halved, jnp.array([4.0, 0.5, 0.25, 3.0, -0.1, 2.0]))
        assert jnp.allclose(Symmetric.double_off_diagonal((3, 3), halved), params)

    def test_positive_definite_inverse_and_logdet(self, spd_matrix: Array) -> None:
        params = PositiveDefinite.from_dense(spd_matrix)
        inverse = PositiveDefinite.to_dense((3, 3), PositiveDefinite.inverse((3, 3), params))
        assert jnp.allclose(inverse, jnp.linalg.inv(spd_matrix), rtol=RTOL, atol=ATOL)
        logdet = PositiveDefinite.logdet((3, 3), params)
        assert jnp.allclose(logdet, jnp.linalg.slogdet(spd_matrix)[1], rtol=RTOL, atol=ATOL)

    @pytest.mark.parametrize("rep", [Diagonal(), Scale()])
    def test_diagonal_inverse(self, rep: Diagonal) -> None:
        matrix = jnp.diag(jnp.array([2.0, 2.0, 2.0]))
        params = rep.from_dense(matrix)
        inverse = rep.to_dense((3, 3), rep.inverse((3, 3), params))
        assert jnp.allclose(inverse, jnp.linalg.inv(matrix), rtol=RTOL, atol=ATOL)
        assert jnp.allclose(rep.logdet((3, 3), params), 3 * jnp.log(2.0))

    def test_representations_are_hashable(self) -> None:
        assert Rectangular() == Rectangular()
        assert hash(PositiveDefinite()) == hash(PositiveDefinite())
        assert Diagonal() != Scale()


class TestLinearMap:
    """Test linear maps between manifolds."""

    @pytest.fixture
    def man(self) -> LinearMap[Rectangular, Euclidean, Euclidean]:
        return LinearMap(Rectangular(), Euclidean(2), Euclidean(3))

    def test_shape(self, man: LinearMap[Rectangular, Euclidean, Euclidean]) -> None:
        assert man.shape == (3, 2)
        assert man.dim == 6

    def test_apply(self, man: LinearMap[Rectangular, Euclidean, Euclidean], key: Array) -> None:
        matrix = jax.random.normal(key, (3, 2))
        f = man.from_dense(matrix, Natural)
        v = Euclidean(2).mean_point(jnp.array([1.0, -1.0]))
        w = man(f, v)
        assert w.man == Euclidean(3)
        assert w.coords is Natural
        assert jnp.allclose(w.params, matrix @ v.params, rtol=RTOL, atol=ATOL)

    def test_apply_requires_dual_coordinates(
        self, man: LinearMap[Rectangular, Euclidean, Euclidean]
    ) -> None:
        f = man.from_dense(jnp.ones((3, 2)), Natural)
        with pytest.raises(CoordinateError):
            man(f, Euclidean(2).natural_point(jnp.ones(2)))

    def test_transpose(self, man: LinearMap[Rectangular, Euclidean, Euclidean], key: Array) -> None:
        matrix = jax.random.normal(key, (3, 2))
        f = man.from_dense(matrix, Natural)
        ft = man.transpose(f)
        assert ft.man == man.transpose_manifold()
        assert jnp.allclose(man.transpose_manifold().to_dense(ft), matrix.T)
        u = Euclidean(3).mean_point(jnp.array([1.0, 2.0, 3.0]))
        assert jnp.allclose(man.transpose_apply(f, u).params, matrix.T @ u.params, rtol=RTOL)

    def test_columns(self, man: LinearMap[Rectangular, Euclidean, Euclidean], key: Array) -> None:
        matrix = jax.random.normal(key, (3, 2))
        f = man.from_dense(matrix, Natural)
        cols = man.to_columns(f)
        assert len(cols) == 2
        assert jnp.allclose(cols[1].params, matrix[:, 1])
        assert jnp.allclose(man.from_columns(cols).params, f.params)

    def test_outer_product(self, man: LinearMap[Rectangular, Euclidean, Euclidean]) -> None:
        w = Euclidean(3).mean_point(jnp.array([1.0, 2.0, 3.0]))
        v = Euclidean(2).mean_point(jnp.array([1.0, -1.0]))
        f = man.outer_product(w, v)
        assert f.coords == Mean
        assert jnp.allclose(man.to_dense(f), jnp.outer(w.params, v.params))


class TestSquareMap:
    """Test square maps with structured representations."""

    def test_inverse_is_dual(self, spd_matrix: Array) -> None:
        man = SquareMap(PositiveDefinite(), Euclidean(3))
        f = man.from_dense(spd_matrix, Mean)
        inv = man.inverse(f)
        assert inv.coords is Natural
        product = man.to_dense(inv) @ spd_matrix
        assert jnp.allclose(product, jnp.eye(3), rtol=RTOL, atol=ATOL)


class TestAffineMap:
    """Test affine maps."""

    def test_apply(self, key: Array) -> None:
        man = AffineMap(Rectangular(), Euclidean(2), Euclidean(3))
        key_b, key_m = jax.random.split(key)
        bias = Euclidean(3).natural_point(jax.random.normal(key_b, (3,)))
        matrix = jax.random.normal(key_m, (3, 2))
        f = man.join_params(bias, man.snd_man.from_dense(matrix, Natural))
        v = Euclidean(2).mean_point(jnp.array([0.5, 2.0]))
        expected = bias.params + matrix @ v.params
        assert jnp.allclose(man(f, v).params, expected, rtol=RTOL, atol=ATOL)
