"""Optimization primitives for points on manifolds.

Updates are delegated to `optax`. Gradients must be given in the dual coordinates of the point being optimized, and updates always descend, so callers that ascend an objective pass the negated differential.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import NewType

import optax

from .base import Coordinates, CoordinateError, Dual, Manifold, Point, dual_coordinates

# Opaque type for optimizer state
OptState = NewType("OptState", object)


@dataclass(frozen=True)
class Optimizer:
    """Handles parameter updates using gradients in dual coordinates."""

    optimizer: optax.GradientTransformation

    @classmethod
    def vanilla(cls, learning_rate: float = 0.1) -> Optimizer:
        """Plain gradient descent."""
        return cls(optax.sgd(learning_rate))

    @classmethod
    def momentum(cls, learning_rate: float = 0.1, momentum: float = 0.9) -> Optimizer:
        """Gradient descent with a momentum accumulator."""
        return cls(optax.sgd(learning_rate, momentum=momentum))

    @classmethod
    def adam(
        cls,
        learning_rate: float = 0.1,
        b1: float = 0.9,
        b2: float = 0.999,
        eps: float = 1e-8,
    ) -> Optimizer:
        return cls(optax.adam(learning_rate, b1=b1, b2=b2, eps=eps))

    def init[C: Coordinates, M: Manifold](self, point: Point[C, M]) -> OptState:
        return OptState(self.optimizer.init(point.params))

    def update[C: Coordinates, M: Manifold](
        self,
        opt_state: OptState,
        grads: Point[Dual[C], M],
        point: Point[C, M],
    ) -> tuple[OptState, Point[C, M]]:
        if grads.man != point.man or grads.coords != dual_coordinates(point.coords):
            raise CoordinateError(
                "Gradients must live on the same manifold as the point, in dual coordinates"
            )
        updates, new_opt_state = self.optimizer.update(
            grads.params,
            opt_state,  # pyright: ignore[reportArgumentType]
            point.params,
        )
        new_params = optax.apply_updates(point.params, updates)
        return OptState(new_opt_state), point.man.point(new_params, point.coords)


def gradient_sequence[C: Coordinates, M: Manifold](
    optimizer: Optimizer,
    differential: Callable[[Point[C, M]], Point[Dual[C], M]],
    point: Point[C, M],
) -> Iterator[Point[C, M]]:
    """Infinite sequence of points descending the objective with the given differential.

    The initial point is yielded first. Truncate the sequence with e.g. `itertools.islice`.
    """
    opt_state = optimizer.init(point)
    while True:
        yield point
        opt_state, point = optimizer.update(opt_state, differential(point), point)
