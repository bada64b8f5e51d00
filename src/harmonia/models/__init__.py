from .base.bernoulli import Bernoulli, Bernoullis
from .base.categorical import Categorical
from .base.gaussian.normal import Covariance, Euclidean, Normal
from .harmonium.mixture import Mixture, deep_mixture_model_expectation_step

__all__ = [
    "Bernoulli",
    "Bernoullis",
    "Categorical",
    "Covariance",
    "Euclidean",
    "Mixture",
    "Normal",
    "deep_mixture_model_expectation_step",
]
