"""
Configuration schema (``order_config.schema``).

Frozen dataclasses describing the runtime configuration.  Parsed once by
``order_config.loader`` and handed out by ``get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class OrderCodeConfig:
    """Shape of human order codes: ``prefix`` + ``length`` random chars."""

    prefix: str = "PTO-"
    length: int = 11
    alphabet: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
    max_attempts: int = 5


@dataclass(frozen=True)
class PaginationConfig:
    default_page_size: int = 20
    max_page_size: int = 200
    lookup_limit: int = 50


@dataclass(frozen=True)
class EngineConfig:
    """
    The complete, validated runtime configuration.

    Contract: immutable once built; ``capabilities`` maps role name to the
    frozenset of capability strings that role grants.
    """

    database: DatabaseConfig
    log_level: str = "INFO"
    order_code: OrderCodeConfig = field(default_factory=OrderCodeConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    capabilities: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    source: str = "defaults"
