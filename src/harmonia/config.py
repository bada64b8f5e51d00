"""Runtime and training configuration."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from typing import Any

import jax
from jax import Array

from .geometry import Optimizer

logger = logging.getLogger(__name__)

PURSUITS = ("vanilla", "momentum", "adam")


def initialize_jax(
    device: str = "cpu", disable_jit: bool = False, enable_x64: bool = False
) -> None:
    """Initialize JAX configuration."""
    jax.config.update("jax_platform_name", device)
    if disable_jit:
        jax.config.update("jax_disable_jit", True)
    if enable_x64:
        jax.config.update("jax_enable_x64", True)
    logger.debug(
        "JAX on %s (jit disabled: %s, x64: %s)", device, disable_jit, enable_x64
    )


@dataclass(frozen=True)
class TrainingConfig:
    """Hyperparameters of a gradient-based training run.

    Attributes:
        learning_rate: Step size of the optimizer
        pursuit: Gradient pursuit algorithm, one of `vanilla`, `momentum` or `adam`
        momentum: Momentum of the `momentum` pursuit
        b1: First moment decay of Adam
        b2: Second moment decay of Adam
        eps: Numerical stabilizer of Adam
        batch_size: Minibatch size
        n_steps: Number of gradient steps
        seed: Seed of the random key
    """

    learning_rate: float = 0.05
    pursuit: str = "adam"
    momentum: float = 0.9
    b1: float = 0.9
    b2: float = 0.999
    eps: float = 1e-8
    batch_size: int = 100
    n_steps: int = 100
    seed: int = 0

    def __post_init__(self):
        if self.pursuit not in PURSUITS:
            raise ValueError(
                f"Unknown gradient pursuit {self.pursuit!r}, expected one of {PURSUITS}"
            )
        if self.learning_rate <= 0:
            raise ValueError(f"Learning rate must be positive, got {self.learning_rate}")
        if self.batch_size < 1 or self.n_steps < 1:
            raise ValueError("Batch size and number of steps must be positive")

    def optimizer(self) -> Optimizer:
        """Build the configured optimizer."""
        if self.pursuit == "vanilla":
            return Optimizer.vanilla(self.learning_rate)
        if self.pursuit == "momentum":
            return Optimizer.momentum(self.learning_rate, self.momentum)
        return Optimizer.adam(self.learning_rate, self.b1, self.b2, self.eps)

    def key(self) -> Array:
        return jax.random.PRNGKey(self.seed)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrainingConfig:
        """Build a configuration from a dictionary, e.g. loaded from JSON. Unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown training options: {sorted(unknown)}")
        return cls(**data)
