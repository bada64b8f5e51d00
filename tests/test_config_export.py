"""Tests for training configuration and result export."""

import csv
from dataclasses import dataclass
from pathlib import Path

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from harmonia.config import TrainingConfig, initialize_jax
from harmonia.export import load_analysis, save_analysis, to_plain, write_csv
from harmonia.geometry import Optimizer
from harmonia.models import Euclidean

jax.config.update("jax_platform_name", "cpu")


@dataclass(frozen=True)
class Record:
    step: int
    loss: float


class TestTrainingConfig:
    """Test training configurations."""

    def test_defaults(self) -> None:
        config = TrainingConfig()
        assert config.pursuit == "adam"
        assert isinstance(config.optimizer(), Optimizer)

    @pytest.mark.parametrize("pursuit", ["vanilla", "momentum", "adam"])
    def test_optimizers_step(self, pursuit: str) -> None:
        man = Euclidean(2)
        config = TrainingConfig(learning_rate=0.1, pursuit=pursuit)
        optimizer = config.optimizer()
        point = man.natural_point(jnp.array([1.0, -1.0]))
        opt_state = optimizer.init(point)
        grads = man.mean_point(jnp.array([1.0, -1.0]))
        _, new_point = optimizer.update(opt_state, grads, point)
        # Every pursuit descends along the gradient on its first step
        assert jnp.all(jnp.abs(new_point.params) < jnp.abs(point.params))

    def test_invalid_options_raise(self) -> None:
        with pytest.raises(ValueError):
            TrainingConfig(pursuit="lbfgs")
        with pytest.raises(ValueError):
            TrainingConfig(learning_rate=0.0)
        with pytest.raises(ValueError):
            TrainingConfig(batch_size=0)

    def test_dict_round_trip(self) -> None:
        config = TrainingConfig(learning_rate=0.01, n_steps=20, seed=3)
        assert TrainingConfig.from_dict(config.to_dict()) == config

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValueError):
            TrainingConfig.from_dict({"learning_rate": 0.1, "epochs": 5})

    def test_key_from_seed(self) -> None:
        assert jnp.array_equal(TrainingConfig(seed=7).key(), jax.random.PRNGKey(7))

    def test_initialize_jax(self) -> None:
        initialize_jax()
        assert jax.default_backend() == "cpu"


class TestExport:
    """Test CSV and JSON export."""

    def test_to_plain(self) -> None:
        value = {"a": jnp.array([1.0, 2.0]), "b": (np.float64(0.5), 3), "c": None}
        assert to_plain(value) == {"a": [1.0, 2.0], "b": [0.5, 3], "c": None}

    def test_write_csv(self, tmp_path: Path) -> None:
        path = write_csv(tmp_path / "out" / "table.csv", [Record(0, 1.5), Record(1, 0.5)])
        with open(path, newline="") as f:
            rows = list(csv.DictReader(f))
        assert rows == [{"step": "0", "loss": "1.5"}, {"step": "1", "loss": "0.5"}]

    def test_write_csv_from_mappings(self, tmp_path: Path) -> None:
        path = write_csv(tmp_path / "table.csv", [{"x": jnp.array(2.0)}])
        with open(path, newline="") as f:
            rows = list(csv.DictReader(f))
        assert rows == [{"x": "2.0"}]

    def test_write_csv_rejects_bad_records(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            write_csv(tmp_path / "empty.csv", [])
        with pytest.raises(TypeError):
            write_csv(tmp_path / "bad.csv", [1, 2])

    def test_analysis_round_trip(self, tmp_path: Path) -> None:
        results = {"lls": jnp.array([-3.0, -2.5]), "config": TrainingConfig().to_dict()}
        path = save_analysis(tmp_path / "analysis.json", results)
        loaded = load_analysis(path)
        assert loaded["lls"] == [-3.0, -2.5]
        assert TrainingConfig.from_dict(loaded["config"]) == TrainingConfig()
