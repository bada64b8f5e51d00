# ruff: noqa: ARG003

"""Matrix representations with structural specializations.

Interaction maps and covariance parameters are stored as flat parameter arrays. A `MatrixRep` defines how such an array is read as a matrix, and exploits that structure where it can:

Representation  | Storage    | Matvec    | Inverse/Det
----------------|------------|-----------|-------------
Rectangular     | $O(n^2)$   | $O(n^2)$  | n/a
Square          | $O(n^2)$   | $O(n^2)$  | $O(n^3)$
Symmetric       | $O(n^2/2)$ | $O(n^2)$  | $O(n^3)$
Pos. Definite   | $O(n^2/2)$ | $O(n^2)$  | $O(n^3)$ (Cholesky)
Diagonal        | $O(n)$     | $O(n)$    | $O(n)$
Scale           | $O(1)$     | $O(n)$    | $O(1)$

Representations are frozen dataclasses without fields, so that two instances of the same representation compare equal and can be used inside hashable manifold descriptors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import jax
import jax.numpy as jnp
from jax import Array


@dataclass(frozen=True)
class MatrixRep(ABC):
    """Base class defining how to interpret and manipulate matrix parameters."""

    @classmethod
    @abstractmethod
    def num_params(cls, shape: tuple[int, int]) -> int:
        """Length of the 1D parameter array needed for matrix dimensions."""

    @classmethod
    @abstractmethod
    def to_dense(cls, shape: tuple[int, int], params: Array) -> Array:
        """Convert 1D parameters to dense matrix form."""

    @classmethod
    @abstractmethod
    def from_dense(cls, matrix: Array) -> Array:
        """Convert a dense matrix to 1D parameters, discarding entries outside the structure."""

    @classmethod
    @abstractmethod
    def outer_product(cls, v1: Array, v2: Array) -> Array:
        """Construct parameters from the outer product $v_1 \\otimes v_2$."""

    @classmethod
    def matvec(cls, shape: tuple[int, int], params: Array, vector: Array) -> Array:
        """Matrix-vector multiplication."""
        return cls.to_dense(shape, params) @ vector

    @classmethod
    def transpose(cls, shape: tuple[int, int], params: Array) -> Array:
        """Parameters of the transposed matrix, in the same representation."""
        return cls.from_dense(cls.to_dense(shape, params).T)

    @classmethod
    def to_cols(cls, shape: tuple[int, int], params: Array) -> list[Array]:
        """Convert parameter vector to list of column vectors."""
        matrix = cls.to_dense(shape, params)
        return [matrix[:, j] for j in range(shape[1])]

    @classmethod
    def from_cols(cls, cols: list[Array]) -> Array:
        """Construct parameter vector from list of column vectors."""
        return cls.from_dense(jnp.column_stack(cols))


@dataclass(frozen=True)
class Rectangular(MatrixRep):
    """Full matrix representation in row-major order, with no special structure."""

    @classmethod
    def num_params(cls, shape: tuple[int, int]) -> int:
        n, m = shape
        return n * m

    @classmethod
    def to_dense(cls, shape: tuple[int, int], params: Array) -> Array:
        return params.reshape(shape)

    @classmethod
    def from_dense(cls, matrix: Array) -> Array:
        return matrix.reshape(-1)

    @classmethod
    def outer_product(cls, v1: Array, v2: Array) -> Array:
        return jnp.outer(v1, v2).reshape(-1)


@dataclass(frozen=True)
class Square(Rectangular):
    """Square matrix representation."""

    @classmethod
    def inverse(cls, shape: tuple[int, int], params: Array) -> Array:
        return cls.from_dense(jnp.linalg.inv(cls.to_dense(shape, params)))

    @classmethod
    def logdet(cls, shape: tuple[int, int], params: Array) -> Array:
        return jnp.linalg.slogdet(cls.to_dense(shape, params))[1]


@dataclass(frozen=True)
class Symmetric(Square):
    """Symmetric matrix representation where $A = A^T$.

    Only the upper triangle is stored, row by row, so an $n \\times n$ matrix takes $n(n+1)/2$ parameters.
    """

    @classmethod
    def num_params(cls, shape: tuple[int, int]) -> int:
        n = shape[0]
        return (n * (n + 1)) // 2

    @classmethod
    def to_dense(cls, shape: tuple[int, int], params: Array) -> Array:
        n = shape[0]
        matrix = jnp.zeros((n, n), dtype=params.dtype).at[jnp.triu_indices(n)].set(params)
        return matrix + jnp.triu(matrix, k=1).T

    @classmethod
    def from_dense(cls, matrix: Array) -> Array:
        return matrix[jnp.triu_indices(matrix.shape[0])]

    @classmethod
    def outer_product(cls, v1: Array, v2: Array) -> Array:
        return cls.from_dense(jnp.outer(v1, v2))

    @classmethod
    def transpose(cls, shape: tuple[int, int], params: Array) -> Array:
        return params

    @classmethod
    def diagonal_mask(cls, shape: tuple[int, int]) -> Array:
        """Boolean mask over the parameters marking the diagonal entries."""
        rows, cols = jnp.triu_indices(shape[0])
        return rows == cols

    @classmethod
    def halve_off_diagonal(cls, shape: tuple[int, int], params: Array) -> Array:
        """Read parameters that store off-diagonal entries doubled as plain matrix entries."""
        return jnp.where(cls.diagonal_mask(shape), params, params / 2)

    @classmethod
    def double_off_diagonal(cls, shape: tuple[int, int], params: Array) -> Array:
        """Inverse of `halve_off_diagonal`."""
        return jnp.where(cls.diagonal_mask(shape), params, params * 2)


@dataclass(frozen=True)
class PositiveDefinite(Symmetric):
    """Symmetric positive definite matrix representation with a unique Cholesky decomposition $A = LL^T$."""

    @classmethod
    def cholesky(cls, shape: tuple[int, int], params: Array) -> Array:
        """Lower triangular Cholesky factor."""
        return jnp.linalg.cholesky(cls.to_dense(shape, params))

    @classmethod
    def inverse(cls, shape: tuple[int, int], params: Array) -> Array:
        chol = cls.cholesky(shape, params)
        inv_chol = jax.scipy.linalg.solve_triangular(
            chol, jnp.eye(shape[0], dtype=chol.dtype), lower=True
        )
        return cls.from_dense(inv_chol.T @ inv_chol)

    @classmethod
    def logdet(cls, shape: tuple[int, int], params: Array) -> Array:
        chol = cls.cholesky(shape, params)
        return 2.0 * jnp.sum(jnp.log(jnp.diag(chol)))

    @classmethod
    def apply_cholesky(
        cls, shape: tuple[int, int], params: Array, vectors: Array
    ) -> Array:
        """Multiply each row of `vectors` by the Cholesky factor."""
        return vectors @ cls.cholesky(shape, params).T


@dataclass(frozen=True)
class Diagonal(PositiveDefinite):
    """Diagonal matrix representation $A = \\text{diag}(a_1, ..., a_n)$."""

    @classmethod
    def num_params(cls, shape: tuple[int, int]) -> int:
        return shape[0]

    @classmethod
    def matvec(cls, shape: tuple[int, int], params: Array, vector: Array) -> Array:
        return params * vector

    @classmethod
    def to_dense(cls, shape: tuple[int, int], params: Array) -> Array:
        return jnp.diag(params)

    @classmethod
    def from_dense(cls, matrix: Array) -> Array:
        return jnp.diag(matrix)

    @classmethod
    def outer_product(cls, v1: Array, v2: Array) -> Array:
        return v1 * v2

    @classmethod
    def diagonal_mask(cls, shape: tuple[int, int]) -> Array:
        return jnp.ones(cls.num_params(shape), dtype=bool)

    @classmethod
    def inverse(cls, shape: tuple[int, int], params: Array) -> Array:
        return 1.0 / params

    @classmethod
    def logdet(cls, shape: tuple[int, int], params: Array) -> Array:
        return jnp.sum(jnp.log(params))

    @classmethod
    def apply_cholesky(
        cls, shape: tuple[int, int], params: Array, vectors: Array
    ) -> Array:
        return jnp.sqrt(params) * vectors


@dataclass(frozen=True)
class Scale(Diagonal):
    """Scale transformation $A = \\alpha I$.

    The outer product is averaged over the diagonal, so that a single parameter pairs with the mean of the squared coordinates.
    """

    @classmethod
    def num_params(cls, shape: tuple[int, int]) -> int:
        return 1

    @classmethod
    def matvec(cls, shape: tuple[int, int], params: Array, vector: Array) -> Array:
        return params[0] * vector

    @classmethod
    def to_dense(cls, shape: tuple[int, int], params: Array) -> Array:
        return params[0] * jnp.eye(shape[0], dtype=params.dtype)

    @classmethod
    def from_dense(cls, matrix: Array) -> Array:
        return jnp.array([jnp.mean(jnp.diag(matrix))])

    @classmethod
    def outer_product(cls, v1: Array, v2: Array) -> Array:
        return jnp.array([jnp.mean(v1 * v2)])

    @classmethod
    def inverse(cls, shape: tuple[int, int], params: Array) -> Array:
        return 1.0 / params

    @classmethod
    def logdet(cls, shape: tuple[int, int], params: Array) -> Array:
        return shape[0] * jnp.log(params[0])

    @classmethod
    def apply_cholesky(
        cls, shape: tuple[int, int], params: Array, vectors: Array
    ) -> Array:
        return jnp.sqrt(params[0]) * vectors
