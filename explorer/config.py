# config.py
"""
Run configuration loading.

A YAML file may set max_iterations, wait_ms and debug; values passed
explicitly (e.g. from the command line) take precedence.
"""
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .models import ExplorerConfig


def load_config(path: Optional[Union[str, Path]] = None, **overrides: Any) -> ExplorerConfig:
    values: Dict[str, Any] = {}
    if path is not None:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        values.update(raw)
    values.update({key: value for key, value in overrides.items() if value is not None})
    return ExplorerConfig.from_mapping(values)
