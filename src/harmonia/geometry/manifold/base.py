"""Core definitions for parameterized objects and their geometry.

A [Manifold][harmonia.geometry.manifold.base.Manifold] is a space that can be locally represented by $\\mathbb R^n$. A [`Point`][harmonia.geometry.manifold.base.Point] on the `Manifold` is represented by its coordinates in $\\mathbb R^n$, together with the manifold it lives on and a tag naming the coordinate system.

Unlike a purely static phantom type, the coordinate tag is carried at runtime. Arithmetic between points checks that both the manifold and the coordinate system agree, and inner products check that the two points live in dual coordinate systems.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Self, get_args, get_origin

import jax
import jax.numpy as jnp
from jax import Array

### Errors ###


class CoordinateError(TypeError):
    """Points were combined across incompatible manifolds or coordinate systems."""


class DimensionError(ValueError):
    """A parameter array does not match the dimension of its manifold."""


### Coordinates ###


class Coordinates:
    """Base class for coordinate systems.

    In theory, a coordinate system (or chart) $(U, \\phi)$ consists of an open set $U \\subset \\mathcal{M}$ and a homeomorphism $\\phi: U \\to \\mathbb{R}^n$ mapping points to their coordinate representation. Here coordinate classes double as runtime tags on `Point`s, and as type arguments for static checking.
    """


class Dual[C: Coordinates](Coordinates):
    """Dual coordinates to a given coordinate system.

    For a vector space $V$, its dual space $V^*$ consists of linear functionals $f: V \\to \\mathbb{R}$. The duality pairing between $V$ and $V^*$ is given by

    $$\\langle v, v^* \\rangle = \\sum_i v_i v^*_i.$$
    """


def dual_coordinates(coords: Any) -> Any:
    """Return the dual of a coordinate tag, reducing `Dual[Dual[C]]` to `C`."""
    if get_origin(coords) is Dual:
        return get_args(coords)[0]
    return Dual[coords]


def coordinates_name(coords: Any) -> str:
    if get_origin(coords) is Dual:
        return f"Dual[{coordinates_name(get_args(coords)[0])}]"
    return getattr(coords, "__name__", repr(coords))


def reduce_dual[C: Coordinates, M: Manifold](
    p: Point[Dual[Dual[C]], M],
) -> Point[C, M]:
    """Takes a point in the dual of the dual space and returns a point in the original space."""
    return p.reinterpret(dual_coordinates(dual_coordinates(p.coords)))


def expand_dual[C: Coordinates, M: Manifold](
    p: Point[C, M],
) -> Point[Dual[Dual[C]], M]:
    """Takes a point in the original space and returns a point in the dual of the dual space."""
    return p.reinterpret(Dual[Dual[p.coords]])


### Manifolds ###


@dataclass(frozen=True)
class Manifold(ABC):
    """A manifold $\\mathcal M$ is a topological space that locally resembles $\\mathbb R^n$.

    In our implementation, a `Manifold` defines operations on `Point`s rather than containing `Point`s itself. It also acts as a "Point factory", and should be used to create points rather than the `Point` constructor itself. Manifolds are frozen and hashable so that they can serve as static arguments to `jax.jit`.
    """

    def __enter__(self):
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: type[BaseException] | None,
    ) -> None:
        pass

    @property
    @abstractmethod
    def dim(self) -> int:
        """The dimension of the manifold."""
        ...

    def point[C: Coordinates](self, params: Array, coords: type[C]) -> Point[C, Self]:
        """Construct a point on this manifold in the given coordinates.

        Raises:
            DimensionError: If `params` is not a flat array of length `dim`.
        """
        params = jnp.atleast_1d(jnp.asarray(params))
        if params.shape != (self.dim,):
            raise DimensionError(
                f"{type(self).__name__} has dimension {self.dim}, "
                f"but parameters have shape {params.shape}"
            )
        return Point(params, self, coords)

    def check_point(self, p: Point[Any, Any]) -> None:
        """Raise a `CoordinateError` unless `p` lives on this manifold."""
        if not isinstance(p, Point):
            raise CoordinateError(f"Expected a Point on {self!r}, got {type(p).__name__}")
        if p.man != self:
            raise CoordinateError(f"Point lives on {p.man!r}, not on {self!r}")

    def dot[C: Coordinates](self, p: Point[C, Self], q: Point[Dual[C], Self]) -> Array:
        """Duality pairing between a point and a point in the dual coordinates."""
        self.check_point(p)
        self.check_point(q)
        if q.coords != dual_coordinates(p.coords):
            raise CoordinateError(
                f"Cannot pair {coordinates_name(p.coords)} with "
                f"{coordinates_name(q.coords)} coordinates"
            )
        return jnp.dot(p.params, q.params)

    def value_and_grad[C: Coordinates](
        self,
        f: Callable[[Point[C, Self]], Array],
        point: Point[C, Self],
    ) -> tuple[Array, Point[Dual[C], Self]]:
        """Compute value and gradients of a scalar function.

        Returns gradients in the dual coordinate system to the input point's coordinates.
        """
        self.check_point(point)
        value, grads = jax.value_and_grad(f)(point)
        return value, grads.reinterpret(dual_coordinates(point.coords))

    def grad[C: Coordinates](
        self,
        f: Callable[[Point[C, Self]], Array],
        point: Point[C, Self],
    ) -> Point[Dual[C], Self]:
        """Compute gradients of a scalar function in dual coordinates."""
        return self.value_and_grad(f, point)[1]

    def shape_initialize[C: Coordinates](
        self,
        key: Array,
        coords: type[C],
        mu: float = 0.0,
        shp: float = 0.1,
    ) -> Point[C, Self]:
        """Randomly initialize the coordinates of a point from a normal distribution with mean `mu` and scale `shp`."""
        params = jax.random.normal(key, shape=(self.dim,)) * shp + mu
        return self.point(params, coords)


@dataclass(frozen=True)
class Point[C: Coordinates, M: Manifold]:
    """A point $p$ on a manifold $\\mathcal{M}$ in a given coordinate system.

    The coordinate space inherits a vector space structure enabling addition, subtraction and scalar multiplication. Each of these requires both operands to share the same manifold and coordinate system.

    Points are registered as pytrees with `params` as the only leaf, so they can pass through `jax.grad`, `jax.vmap` and `jax.jit`.

    Args:
        params: Coordinate vector $x = \\phi(p) \\in \\mathbb{R}^n$
        man: The manifold of the point
        coords: The coordinate system tag
    """

    params: Array
    man: M
    coords: Any

    def _check_compatible(self, other: Any) -> None:
        if not isinstance(other, Point):
            raise CoordinateError(f"Cannot combine a Point with {type(other).__name__}")
        if other.man != self.man:
            raise CoordinateError(
                f"Cannot combine points on {self.man!r} and {other.man!r}"
            )
        if other.coords != self.coords:
            raise CoordinateError(
                f"Cannot combine {coordinates_name(self.coords)} and "
                f"{coordinates_name(other.coords)} coordinates"
            )

    def reinterpret[D: Coordinates](self, coords: type[D]) -> Point[D, M]:
        """Retag the point with another coordinate system without changing its parameters."""
        return Point(self.params, self.man, coords)

    def __add__(self, other: Point[C, M]) -> Point[C, M]:
        self._check_compatible(other)
        return Point(self.params + other.params, self.man, self.coords)

    def __sub__(self, other: Point[C, M]) -> Point[C, M]:
        self._check_compatible(other)
        return Point(self.params - other.params, self.man, self.coords)

    def __neg__(self) -> Point[C, M]:
        return Point(-self.params, self.man, self.coords)

    def __mul__(self, scalar: float | Array) -> Point[C, M]:
        return Point(scalar * self.params, self.man, self.coords)

    def __rmul__(self, scalar: float | Array) -> Point[C, M]:
        return self.__mul__(scalar)

    def __truediv__(self, other: float | Array) -> Point[C, M]:
        return Point(self.params / other, self.man, self.coords)


jax.tree_util.register_dataclass(
    Point, data_fields=["params"], meta_fields=["man", "coords"]
)
