"""Linear and affine transformations between manifolds."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self

from jax import Array

from .base import Coordinates, CoordinateError, Dual, Manifold, Point, dual_coordinates
from .combinators import Pair
from .matrix import MatrixRep, Square

### Linear Maps ###


@dataclass(frozen=True)
class LinearMap[Rep: MatrixRep, Domain: Manifold, Codomain: Manifold](Manifold):
    """Linear map between manifolds using a specific matrix representation.

    A linear map $L: V \\to W$ is stored as a matrix of shape `(cod_man.dim, dom_man.dim)`. Applied to a point in the dual of its own coordinates, it returns a point in its own coordinates; a natural-coordinate map sends mean coordinates of the domain to natural coordinates of the codomain.

    Args:
        rep: The matrix representation strategy
        dom_man: The source/domain manifold $V$
        cod_man: The target/codomain manifold $W$
    """

    rep: Rep
    dom_man: Domain
    cod_man: Codomain

    @property
    def dim(self) -> int:
        return self.rep.num_params(self.shape)

    @property
    def shape(self) -> tuple[int, int]:
        """Shape of the linear maps."""
        return (self.cod_man.dim, self.dom_man.dim)

    def __call__[C: Coordinates](
        self,
        f: Point[C, Self],
        p: Point[Dual[C], Domain],
    ) -> Point[C, Codomain]:
        """Apply the linear map to transform a point."""
        self.check_point(f)
        self.dom_man.check_point(p)
        if p.coords != dual_coordinates(f.coords):
            raise CoordinateError("Linear maps apply to points in dual coordinates")
        return self.cod_man.point(
            self.rep.matvec(self.shape, f.params, p.params), f.coords
        )

    def transpose_manifold(self) -> LinearMap[Rep, Codomain, Domain]:
        """The manifold of transposed maps."""
        return LinearMap(self.rep, self.cod_man, self.dom_man)

    def transpose[C: Coordinates](
        self, f: Point[C, Self]
    ) -> Point[C, LinearMap[Rep, Codomain, Domain]]:
        """Transpose of the linear map."""
        self.check_point(f)
        return self.transpose_manifold().point(
            self.rep.transpose(self.shape, f.params), f.coords
        )

    def transpose_apply[C: Coordinates](
        self,
        f: Point[C, Self],
        p: Point[Dual[C], Codomain],
    ) -> Point[C, Domain]:
        """Apply the transpose of the linear map."""
        return self.transpose_manifold()(self.transpose(f), p)

    def outer_product[C: Coordinates](
        self, w: Point[C, Codomain], v: Point[C, Domain]
    ) -> Point[C, Self]:
        """Outer product $w \\otimes v$ of points."""
        self.cod_man.check_point(w)
        self.dom_man.check_point(v)
        if w.coords != v.coords:
            raise CoordinateError("Outer products need points in the same coordinates")
        return self.point(self.rep.outer_product(w.params, v.params), w.coords)

    def from_dense[C: Coordinates](self, matrix: Array, coords: type[C]) -> Point[C, Self]:
        """Create point from dense matrix."""
        return self.point(self.rep.from_dense(matrix), coords)

    def to_dense[C: Coordinates](self, f: Point[C, Self]) -> Array:
        """Convert to dense matrix representation."""
        self.check_point(f)
        return self.rep.to_dense(self.shape, f.params)

    def to_columns[C: Coordinates](self, f: Point[C, Self]) -> list[Point[C, Codomain]]:
        """Split linear map into list of column vectors as points in the codomain."""
        self.check_point(f)
        cols = self.rep.to_cols(self.shape, f.params)
        return [self.cod_man.point(col, f.coords) for col in cols]

    def from_columns[C: Coordinates](
        self, cols: list[Point[C, Codomain]]
    ) -> Point[C, Self]:
        """Construct linear map from list of column vectors as points."""
        if len(cols) != self.dom_man.dim:
            raise CoordinateError(
                f"Expected {self.dom_man.dim} columns, got {len(cols)}"
            )
        for col in cols:
            self.cod_man.check_point(col)
        return self.point(self.rep.from_cols([col.params for col in cols]), cols[0].coords)


@dataclass(frozen=True)
class SquareMap[R: Square, M: Manifold](LinearMap[R, M, M]):
    """Square linear map with domain and codomain the same manifold.

    Args:
        rep: Matrix representation strategy
        dom_man: Source and target manifold
    """

    def __init__(self, rep: R, dom_man: M):
        super().__init__(rep, dom_man, dom_man)

    def inverse[C: Coordinates](self, f: Point[C, Self]) -> Point[Dual[C], Self]:
        """Matrix inverse, in dual coordinates."""
        self.check_point(f)
        return self.point(
            self.rep.inverse(self.shape, f.params), dual_coordinates(f.coords)
        )

    def logdet[C: Coordinates](self, f: Point[C, Self]) -> Array:
        """Log determinant."""
        self.check_point(f)
        return self.rep.logdet(self.shape, f.params)


### Affine Maps ###


@dataclass(frozen=True)
class AffineMap[Rep: MatrixRep, Domain: Manifold, Codomain: Manifold](
    Pair[Codomain, LinearMap[Rep, Domain, Codomain]]
):
    """Affine transformation $x \\mapsto b + Lx$, stored as the bias $b$ followed by the linear map $L$.

    Args:
        rep: Matrix representation strategy of the linear part
        dom_man: Source manifold
        cod_man: Target manifold
    """

    rep: Rep
    dom_man: Domain
    cod_man: Codomain

    @property
    def fst_man(self) -> Codomain:
        return self.cod_man

    @property
    def snd_man(self) -> LinearMap[Rep, Domain, Codomain]:
        return LinearMap(self.rep, self.dom_man, self.cod_man)

    def __call__[C: Coordinates](
        self,
        f: Point[C, Self],
        p: Point[Dual[C], Domain],
    ) -> Point[C, Codomain]:
        """Apply the affine transformation."""
        bias, linear = self.split_params(f)
        return bias + self.snd_man(linear, p)
