"""Runtime configuration for the Ari interpreter."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

DEFAULT_PARALLEL_THRESHOLD = 10_000
DEFAULT_MAX_CALL_DEPTH = 500


@dataclass(frozen=True)
class RuntimeConfig:
    """Tuning knobs for one interpreter.

    None of these change what a program means: the parallel settings only
    affect how array arithmetic is scheduled, and ``random_seed`` only
    makes the random builtins reproducible.
    """
    parallel_threshold: int = DEFAULT_PARALLEL_THRESHOLD
    max_workers: Optional[int] = None
    http_timeout: Optional[float] = None
    random_seed: Optional[int] = None
    max_call_depth: int = DEFAULT_MAX_CALL_DEPTH

    def __post_init__(self) -> None:
        if not isinstance(self.parallel_threshold, int) or self.parallel_threshold < 1:
            raise ValueError("parallel_threshold must be a positive integer")
        if self.max_workers is not None and (
                not isinstance(self.max_workers, int) or self.max_workers < 1):
            raise ValueError("max_workers must be a positive integer or null")
        if self.http_timeout is not None and (
                not isinstance(self.http_timeout, (int, float)) or self.http_timeout <= 0):
            raise ValueError("http_timeout must be a positive number or null")
        if self.random_seed is not None and not isinstance(self.random_seed, int):
            raise ValueError("random_seed must be an integer or null")
        if not isinstance(self.max_call_depth, int) or self.max_call_depth < 1:
            raise ValueError("max_call_depth must be a positive integer")

    @property
    def worker_count(self) -> int:
        """Effective pool size for parallel array arithmetic."""
        return self.max_workers or os.cpu_count() or 1

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RuntimeConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown runtime config key(s): {', '.join(unknown)}")
        return cls(**dict(data))

    @classmethod
    def from_yaml(cls, path: Path | str) -> "RuntimeConfig":
        """Load a config file such as::

            parallel_threshold: 50000
            max_workers: 4
            random_seed: 7
        """
        config_path = Path(path)
        try:
            with config_path.open("r", encoding="utf-8") as fp:
                data = yaml.safe_load(fp) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"{config_path}: invalid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"{config_path}: runtime config must be a mapping")
        # Allow the settings to live under a top-level 'runtime' key
        if set(data) == {"runtime"} and isinstance(data["runtime"], dict):
            data = data["runtime"]
        return cls.from_mapping(data)
