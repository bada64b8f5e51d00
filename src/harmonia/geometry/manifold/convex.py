"""Legendre manifolds and their dual geometry.

A Legendre manifold carries a strictly convex potential $\\psi$ on its primal coordinates. The differential $\\nabla\\psi$ maps primal coordinates to dual coordinates (the dual transition), and when the convex conjugate $\\psi^*$ is also available the manifold is dually flat, with the canonical (Bregman) divergence

$$D(p \\| q) = \\psi(p) + \\psi^*(q) - \\langle p, q \\rangle.$$

For exponential families, the primal coordinates are the natural parameters, the potential is the log-partition function and the dual potential is the negative entropy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Self

from jax import Array

from .base import Coordinates, Dual, Manifold, Point


class Legendre(Manifold, ABC):
    """A manifold with a convex potential function on its primal coordinates."""

    @abstractmethod
    def potential[C: Coordinates](self, p: Point[C, Self]) -> Array:
        """Evaluate the potential $\\psi(p)$."""

    def potential_differential[C: Coordinates](
        self, p: Point[C, Self]
    ) -> Point[Dual[C], Self]:
        """Differential of the potential, in dual coordinates."""
        return self.grad(self.potential, p)

    def dual_transition[C: Coordinates](self, p: Point[C, Self]) -> Point[Dual[C], Self]:
        """Map a point to its dual coordinates."""
        return self.potential_differential(p)

    def relative_entropy_differential[C: Coordinates](
        self, target: Point[Dual[C], Self], p: Point[C, Self]
    ) -> Point[Dual[C], Self]:
        """Differential of $D(\\text{target} \\| p)$ with respect to the primal coordinates of `p`."""
        return self.dual_transition(p) - target


class DuallyFlat(Legendre, ABC):
    """A Legendre manifold whose dual potential (the convex conjugate) is also known."""

    @abstractmethod
    def dual_potential[C: Coordinates](self, q: Point[Dual[C], Self]) -> Array:
        """Evaluate the dual potential $\\psi^*(q)$."""

    def dual_potential_differential[C: Coordinates](
        self, q: Point[Dual[C], Self]
    ) -> Point[C, Self]:
        """Differential of the dual potential, back in primal coordinates."""
        return self.grad(self.dual_potential, q)

    def inverse_transition[C: Coordinates](self, q: Point[Dual[C], Self]) -> Point[C, Self]:
        """Map a point in dual coordinates back to primal coordinates."""
        return self.dual_potential_differential(q)

    def divergence[C: Coordinates](
        self, p: Point[C, Self], q: Point[Dual[C], Self]
    ) -> Array:
        """Canonical divergence $\\psi(p) + \\psi^*(q) - \\langle p, q \\rangle$."""
        return self.potential(p) + self.dual_potential(q) - self.dot(p, q)
