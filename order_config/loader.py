"""
Configuration Loader (``order_config.loader``).

Responsibility
--------------
Loads YAML configuration files and parses them into the frozen
``order_config.schema`` dataclasses.  Callers use
``order_config.get_active_config()``; this module is the parsing layer
behind it.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Structurally invalid values  -> ``ConfigError``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from order_config.schema import (
    DatabaseConfig,
    EngineConfig,
    OrderCodeConfig,
    PaginationConfig,
)

_VALID_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


class ConfigError(ValueError):
    """Configuration failed validation."""

    code: str = "CONFIG_INVALID"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration at '{key}': {reason}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(str(path), "top level must be a mapping")
    return data


def merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; overlay wins, lists are replaced not appended."""
    merged: dict[str, Any] = dict(base)
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _positive_int(section: Mapping[str, Any], key: str, default: int, path: str) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{path}.{key}", f"must be a positive integer, got {value!r}")
    return value


def parse_database(data: Mapping[str, Any]) -> DatabaseConfig:
    url = data.get("url")
    if not url or not isinstance(url, str):
        raise ConfigError("database.url", "is required")
    return DatabaseConfig(
        url=url,
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int(data, "pool_size", 20, "database"),
        max_overflow=_positive_int(data, "max_overflow", 10, "database"),
    )


def parse_order_code(data: Mapping[str, Any]) -> OrderCodeConfig:
    alphabet = data.get("alphabet", OrderCodeConfig.alphabet)
    if not isinstance(alphabet, str) or len(set(alphabet)) < 2:
        raise ConfigError("order_code.alphabet", "needs at least two distinct characters")
    return OrderCodeConfig(
        prefix=str(data.get("prefix", OrderCodeConfig.prefix)),
        length=_positive_int(data, "length", OrderCodeConfig.length, "order_code"),
        alphabet=alphabet,
        max_attempts=_positive_int(
            data, "max_attempts", OrderCodeConfig.max_attempts, "order_code"
        ),
    )


def parse_pagination(data: Mapping[str, Any]) -> PaginationConfig:
    cfg = PaginationConfig(
        default_page_size=_positive_int(data, "default_page_size", 20, "pagination"),
        max_page_size=_positive_int(data, "max_page_size", 200, "pagination"),
        lookup_limit=_positive_int(data, "lookup_limit", 50, "pagination"),
    )
    if cfg.default_page_size > cfg.max_page_size:
        raise ConfigError(
            "pagination.default_page_size", "must not exceed max_page_size"
        )
    return cfg


def parse_capabilities(data: Mapping[str, Any]) -> Mapping[str, frozenset[str]]:
    """Parse ``role -> [capability, ...]`` into an immutable mapping."""
    grants: dict[str, frozenset[str]] = {}
    for role, caps in data.items():
        if caps is None:
            caps = []
        if not isinstance(caps, list) or not all(isinstance(c, str) for c in caps):
            raise ConfigError(f"capabilities.{role}", "must be a list of strings")
        grants[str(role)] = frozenset(caps)
    return MappingProxyType(grants)


def parse_config(data: Mapping[str, Any], source: str = "defaults") -> EngineConfig:
    """Build an ``EngineConfig`` from a merged configuration dict."""
    level = str(data.get("logging", {}).get("level", "INFO")).upper()
    if level not in _VALID_LOG_LEVELS:
        raise ConfigError("logging.level", f"unknown level {level!r}")

    return EngineConfig(
        database=parse_database(data.get("database", {})),
        log_level=level,
        order_code=parse_order_code(data.get("order_code", {})),
        pagination=parse_pagination(data.get("pagination", {})),
        capabilities=parse_capabilities(data.get("capabilities", {})),
        source=source,
    )
