"""
order_config -- single public entrypoint for order kernel configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Other components never read configuration
    files or environment variables directly; they receive an
    ``EngineConfig`` (or pieces of it) by injection.

Resolution order (later wins):
    1. ``order_config/defaults.yaml`` shipped with the package.
    2. The YAML file named by ``ORDER_KERNEL_CONFIG`` (or ``config_path``).
    3. ``ORDER_KERNEL_DATABASE_URL`` / ``ORDER_KERNEL_LOG_LEVEL``.

Failure modes:
    - ``FileNotFoundError`` -- an overlay path that does not exist.
    - ``ConfigError`` -- structural validation failure.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from order_config.loader import ConfigError, load_yaml_file, merge, parse_config
from order_config.schema import (
    DatabaseConfig,
    EngineConfig,
    OrderCodeConfig,
    PaginationConfig,
)

_logger = logging.getLogger("order_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

ENV_CONFIG_PATH = "ORDER_KERNEL_CONFIG"
ENV_DATABASE_URL = "ORDER_KERNEL_DATABASE_URL"
ENV_LOG_LEVEL = "ORDER_KERNEL_LOG_LEVEL"


def get_active_config(
    config_path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Optional overlay YAML; falls back to ``ORDER_KERNEL_CONFIG``.
        env: Environment mapping (defaults to ``os.environ``).

    Returns:
        A validated, frozen ``EngineConfig``.
    """
    env = os.environ if env is None else env
    data = load_yaml_file(DEFAULTS_PATH)
    sources = ["defaults"]

    overlay = config_path or env.get(ENV_CONFIG_PATH)
    if overlay:
        data = merge(data, load_yaml_file(Path(overlay)))
        sources.append(str(overlay))

    env_overrides: dict = {}
    if env.get(ENV_DATABASE_URL):
        env_overrides.setdefault("database", {})["url"] = env[ENV_DATABASE_URL]
    if env.get(ENV_LOG_LEVEL):
        env_overrides.setdefault("logging", {})["level"] = env[ENV_LOG_LEVEL]
    if env_overrides:
        data = merge(data, env_overrides)
        sources.append("env")

    config = parse_config(data, source="+".join(sources))
    _logger.info(
        "ORDER_CONFIG_TRACE",
        extra={
            "config_source": config.source,
            "role_count": len(config.capabilities),
            "order_code_prefix": config.order_code.prefix,
        },
    )
    return config


__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "EngineConfig",
    "OrderCodeConfig",
    "PaginationConfig",
    "get_active_config",
]
