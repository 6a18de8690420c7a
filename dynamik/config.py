# -*- coding: utf-8 -*-
"""
Dynamik Configuration

Centralized configuration for the schema compiler and the live data graph
covering:
- Meta-schema checking and type defaults for the compiler
- Default abstract rendering (separator, null placeholder)
- Expression failure logging and list fragment termination
- Metrics recording toggle

All settings can be overridden via environment variables with the
``DYNAMIK_`` prefix (e.g. ``DYNAMIK_ABSTRACT_SEPARATOR``).

Example:
    >>> from dynamik.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.abstract_separator, cfg.null_placeholder)
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "DYNAMIK_"


# ---------------------------------------------------------------------------
# DynamikConfig
# ---------------------------------------------------------------------------


@dataclass
class DynamikConfig:
    """Complete configuration for dynamik.

    Attributes:
        check_meta_schema: Whether to check raw documents against the meta-schema.
        default_type: Type assigned to schema nodes that declare none.
        abstract_separator: Separator joining child abstracts of composites.
        null_placeholder: Abstract rendered for ``None`` values.
        fragment_terminator: Appended to each element of a list expression.
        log_expression_failures: Whether to log non-fatal expression failures.
        enable_metrics: Whether to record Prometheus metrics.
    """

    # -- Compiler ------------------------------------------------------------
    check_meta_schema: bool = True
    default_type: str = "string"

    # -- Rendering -----------------------------------------------------------
    abstract_separator: str = ","
    null_placeholder: str = "~"
    fragment_terminator: str = "\n"

    # -- Diagnostics ---------------------------------------------------------
    log_expression_failures: bool = True
    enable_metrics: bool = True

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> DynamikConfig:
        """Build a DynamikConfig from environment variables.

        Every field can be overridden via ``DYNAMIK_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).

        Returns:
            Populated DynamikConfig instance.
        """
        prefix = _ENV_PREFIX

        def _env(name: str, default: Any = None) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}", default)

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.lower() in ("true", "1", "yes")

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val

        config = cls(
            check_meta_schema=_bool("CHECK_META_SCHEMA", cls.check_meta_schema),
            default_type=_str("DEFAULT_TYPE", cls.default_type),
            abstract_separator=_str("ABSTRACT_SEPARATOR", cls.abstract_separator),
            null_placeholder=_str("NULL_PLACEHOLDER", cls.null_placeholder),
            fragment_terminator=_str(
                "FRAGMENT_TERMINATOR", cls.fragment_terminator,
            ),
            log_expression_failures=_bool(
                "LOG_EXPRESSION_FAILURES", cls.log_expression_failures,
            ),
            enable_metrics=_bool("ENABLE_METRICS", cls.enable_metrics),
        )

        logger.info(
            "DynamikConfig loaded: meta_schema=%s, default_type=%s, "
            "separator=%r, metrics=%s",
            config.check_meta_schema,
            config.default_type,
            config.abstract_separator,
            config.enable_metrics,
        )
        return config


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[DynamikConfig] = None
_config_lock = threading.Lock()


def get_config() -> DynamikConfig:
    """Return the singleton DynamikConfig, creating from env if needed."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = DynamikConfig.from_env()
    return _config_instance


def set_config(config: DynamikConfig) -> None:
    """Replace the singleton DynamikConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("DynamikConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "DynamikConfig",
    "get_config",
    "set_config",
    "reset_config",
]
