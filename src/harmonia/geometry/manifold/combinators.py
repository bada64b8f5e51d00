"""Manifolds built out of other manifolds by concatenating their coordinates."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Self

import jax.numpy as jnp

from .base import Coordinates, CoordinateError, DimensionError, Manifold, Point


@dataclass(frozen=True)
class Pair[First: Manifold, Second: Manifold](Manifold, ABC):
    """The manifold given by the Cartesian product between the first and second manifold."""

    @property
    @abstractmethod
    def fst_man(self) -> First:
        """First component manifold."""

    @property
    @abstractmethod
    def snd_man(self) -> Second:
        """Second component manifold."""

    @property
    def dim(self) -> int:
        """Total dimension is the sum of component dimensions."""
        return self.fst_man.dim + self.snd_man.dim

    def split_params[C: Coordinates](
        self, p: Point[C, Self]
    ) -> tuple[Point[C, First], Point[C, Second]]:
        """Split parameters into first and second components."""
        self.check_point(p)
        first_params = p.params[: self.fst_man.dim]
        second_params = p.params[self.fst_man.dim :]
        return (
            self.fst_man.point(first_params, p.coords),
            self.snd_man.point(second_params, p.coords),
        )

    def join_params[C: Coordinates](
        self,
        first: Point[C, First],
        second: Point[C, Second],
    ) -> Point[C, Self]:
        """Join component parameters into a single point."""
        self.fst_man.check_point(first)
        self.snd_man.check_point(second)
        if first.coords != second.coords:
            raise CoordinateError("Pair components must share a coordinate system")
        return self.point(jnp.concatenate([first.params, second.params]), first.coords)


@dataclass(frozen=True)
class Sum(Manifold):
    """Direct sum of an ordered collection of manifolds.

    Sums hold one block of coordinates per component. Deep harmoniums use them to store one rectification parameter block per layer above the bottom layer.
    """

    components: tuple[Manifold, ...]

    def __post_init__(self):
        object.__setattr__(self, "components", tuple(self.components))

    @property
    def dim(self) -> int:
        return sum(man.dim for man in self.components)

    def split_params[C: Coordinates](self, p: Point[C, Self]) -> list[Point[C, Any]]:
        """Split a point into one point per component."""
        self.check_point(p)
        points: list[Point[C, Any]] = []
        offset = 0
        for man in self.components:
            points.append(man.point(p.params[offset : offset + man.dim], p.coords))
            offset += man.dim
        return points

    def join_params[C: Coordinates](self, *points: Point[C, Any]) -> Point[C, Self]:
        """Join one point per component into a point on the sum."""
        if len(points) != len(self.components):
            raise DimensionError(
                f"Sum has {len(self.components)} components, got {len(points)} points"
            )
        for man, p in zip(self.components, points):
            man.check_point(p)
        if not points:
            raise DimensionError("Cannot join an empty sum")
        if len({p.coords for p in points}) > 1:
            raise CoordinateError("Sum components must share a coordinate system")
        params = jnp.concatenate([p.params for p in points])
        return self.point(params, points[0].coords)

    def split_first[C: Coordinates](
        self, p: Point[C, Self]
    ) -> tuple[Point[C, Any], Point[C, Sum]]:
        """Split off the first component from the remainder of the sum."""
        self.check_point(p)
        if not self.components:
            raise DimensionError("Cannot split the first component of an empty sum")
        head, tail = self.components[0], Sum(self.components[1:])
        return (
            head.point(p.params[: head.dim], p.coords),
            tail.point(p.params[head.dim :], p.coords),
        )

    def join_first[C: Coordinates](
        self, first: Point[C, Any], rest: Point[C, Sum]
    ) -> Point[C, Self]:
        """Prepend the first component to the remainder of the sum."""
        if not self.components:
            raise DimensionError("An empty sum has no first component")
        self.components[0].check_point(first)
        Sum(self.components[1:]).check_point(rest)
        if first.coords != rest.coords:
            raise CoordinateError("Sum components must share a coordinate system")
        return self.point(jnp.concatenate([first.params, rest.params]), first.coords)
