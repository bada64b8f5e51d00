"""Manifolds, coordinates and the linear and convex structure on them."""
