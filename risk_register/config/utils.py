"""Dictionary and YAML helpers shared by the configuration and tree loaders."""

from pathlib import Path
from typing import Any, Dict, Mapping, Union

import yaml


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, descending into nested dicts.

    Args:
        base: Values to start from.
        override: Values that win on conflict.

    Returns:
        A new dictionary; neither input is mutated.
    """
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def expand_dotted(flat: Mapping[str, Any]) -> Dict[str, Any]:
    """Turn ``{"simulation.default_n_trials": 5}`` into ``{"simulation": {"default_n_trials": 5}}``.

    Later keys win when two paths collide.
    """
    nested: Dict[str, Any] = {}
    for key, value in flat.items():
        *parents, leaf = key.split(".")
        target = nested
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = value
    return nested


def read_yaml_mapping(path: Union[str, Path], what: str = "YAML") -> Dict[str, Any]:
    """Read a YAML file whose top level is a mapping.

    Keys starting with ``_`` are dropped, so files can park YAML anchors
    under names like ``_defaults``.

    Args:
        path: File to read.
        what: Description used in error messages.

    Returns:
        The mapping; empty for an empty file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the top level is not a mapping.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{what} file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{what} file {path} must contain a mapping, got {type(data).__name__}")
    return {key: value for key, value in data.items() if not str(key).startswith("_")}
