"""Shared utilities for harmonia examples."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from harmonia.export import load_analysis, save_analysis, write_csv


@dataclass(frozen=True)
class ExamplePaths:
    """Manages paths for example outputs."""

    example_name: str
    results_dir: Path

    @property
    def analysis_path(self) -> Path:
        return self.results_dir / "analysis.json"

    def table_path(self, name: str) -> Path:
        return self.results_dir / f"{name}.csv"

    def save_analysis(self, results: Any) -> None:
        save_analysis(self.analysis_path, results)

    def load_analysis(self) -> Any:
        return load_analysis(self.analysis_path)

    def save_table(self, name: str, rows: list[Any]) -> None:
        write_csv(self.table_path(name), rows)


def example_paths(module_path: str | Path, results_dir: str | Path | None = None) -> ExamplePaths:
    """Create ExamplePaths from a module's __file__."""
    module_path = Path(module_path)
    example_name = module_path.parent.name
    if results_dir is None:
        results_dir = module_path.parents[2] / "results" / example_name
    return ExamplePaths(example_name=example_name, results_dir=Path(results_dir))


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
