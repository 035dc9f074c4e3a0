from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, TypedDict, cast

import yaml

logger = logging.getLogger(__name__)

IdentityCachePolicy = Literal["strong", "weak"]

_IDENTITY_CACHE_POLICIES: frozenset[str] = frozenset({"strong", "weak"})


class GlueConfig(TypedDict, total=False):
    """Configuration for :func:`pyglue.install_runtime`."""

    source_paths: list[str]
    """Directories searched for guest source files (``module.py``)."""

    identity_cache: IdentityCachePolicy
    """``strong`` keeps every wrapped proxy for the process lifetime; ``weak``
    drops an entry once the host no longer references its proxy."""

    preload: list[str]
    """``module:ClassName`` targets resolved eagerly at install time."""

    debug_crossings: bool
    """Log every crossing at DEBUG level."""


def default_config() -> GlueConfig:
    return {
        "source_paths": [],
        "identity_cache": "strong",
        "preload": [],
        "debug_crossings": False,
    }


def validate_config(raw: object) -> GlueConfig:
    """Check keys and value types, filling defaults for missing keys.

    Raises:
        ValueError: On unknown keys or invalid values.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"pyglue config must be a mapping, got {type(raw).__name__}")

    config = default_config()
    unknown = sorted(set(raw) - set(config))
    if unknown:
        raise ValueError(f"Unknown pyglue config keys: {unknown}")

    if "source_paths" in raw:
        paths = raw["source_paths"]
        if isinstance(paths, str) or not isinstance(paths, list):
            raise ValueError("source_paths must be a list of directory paths")
        config["source_paths"] = [str(p) for p in paths]
    if "identity_cache" in raw:
        policy = raw["identity_cache"]
        if policy not in _IDENTITY_CACHE_POLICIES:
            raise ValueError(
                f"identity_cache must be one of {sorted(_IDENTITY_CACHE_POLICIES)}, got {policy!r}"
            )
        config["identity_cache"] = cast(IdentityCachePolicy, policy)
    if "preload" in raw:
        preload = raw["preload"]
        if isinstance(preload, str) or not isinstance(preload, list):
            raise ValueError("preload must be a list of module:ClassName targets")
        config["preload"] = [str(target) for target in preload]
    if "debug_crossings" in raw:
        if not isinstance(raw["debug_crossings"], bool):
            raise ValueError("debug_crossings must be a boolean")
        config["debug_crossings"] = raw["debug_crossings"]
    return config


def load_config(path: str | os.PathLike[str]) -> GlueConfig:
    """Read a YAML config file; relative source paths resolve against its directory."""
    config_path = Path(path)
    with open(config_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    config = validate_config(raw)
    config["source_paths"] = [
        str((config_path.parent / p).resolve()) if not Path(p).is_absolute() else p
        for p in config["source_paths"]
    ]
    logger.debug("Loaded pyglue config from %s", config_path)
    return config


def apply_env_overrides(config: GlueConfig) -> GlueConfig:
    """Apply ``PYGLUE_SOURCE_PATH``, ``PYGLUE_IDENTITY_CACHE`` and
    ``PYGLUE_DEBUG_CROSSINGS`` on top of *config* (returns a new dict)."""
    merged = cast(GlueConfig, {**default_config(), **config})
    source_path = os.environ.get("PYGLUE_SOURCE_PATH")
    if source_path:
        merged["source_paths"] = [p for p in source_path.split(os.pathsep) if p]
    policy = os.environ.get("PYGLUE_IDENTITY_CACHE")
    if policy:
        if policy not in _IDENTITY_CACHE_POLICIES:
            raise ValueError(f"PYGLUE_IDENTITY_CACHE must be strong or weak, got {policy!r}")
        merged["identity_cache"] = cast(IdentityCachePolicy, policy)
    if os.environ.get("PYGLUE_DEBUG_CROSSINGS") == "1":
        merged["debug_crossings"] = True
    return merged
