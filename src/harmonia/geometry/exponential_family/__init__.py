"""Exponential families, deep harmoniums and the algorithms that fit them."""
