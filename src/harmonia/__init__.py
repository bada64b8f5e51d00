"""Deep harmoniums over exponential families, with rectification, mixture models and learning algorithms."""
