"""Common definitions for the clustering example."""

from dataclasses import dataclass
from typing import TypedDict


@dataclass(frozen=True)
class TrainingRecord:
    """Average log-likelihood of the training sample after one iteration."""

    algorithm: str
    iteration: int
    log_likelihood: float


class ClusteringResults(TypedDict):
    """Complete results of the clustering analysis."""

    sample: list[list[float]]  # List of [x,y] points
    ground_truth_ll: float
    em_lls: list[float]  # Log likelihoods over EM iterations
    cd_lls: list[float]  # Log likelihoods over CD iterations
    em_weights: list[float]  # Mixture weights fit by EM
    em_means: list[list[float]]  # Component means fit by EM
