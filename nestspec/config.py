"""
NestspecConfig: project-level configuration for nestspec.

This module provides:

- find_config_file: Walk up directories to locate .nestspec.toml
- parse_bool: Parse boolean toggles from environment variables
- NestspecConfig: Typed configuration with load/from_dict constructors
- default_flat_namespace: The naming mode used when describe() is not told

The only setting today is the default naming mode. It is resolved as:

    explicit describe(flat=...) → NESTSPEC_FLAT_NAMESPACE → .nestspec.toml → False

Example ``.nestspec.toml``::

    [naming]
    flat_namespace = true
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".nestspec.toml"
FLAT_NAMESPACE_ENV = "NESTSPEC_FLAT_NAMESPACE"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"", "0", "false", "no", "off"})


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """
    Walk up from *start_dir* to find `.nestspec.toml`.

    Args:
        start_dir: Directory to start searching from. Defaults to ``Path.cwd()``.

    Returns:
        Path to the config file, or ``None`` if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate

        parent = current.parent
        if parent == current:
            return None
        current = parent


def parse_bool(value: str, source: str) -> bool:
    """
    Parse a boolean toggle.

    Args:
        value: The raw value (case and surrounding whitespace are ignored).
        source: Where the value came from, for the error message.

    Raises:
        ValueError: If the value is not a recognised boolean.
    """
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(
        f"Invalid boolean {value!r} for {source}. "
        f"Use one of: {', '.join(sorted(_TRUE_VALUES | _FALSE_VALUES - {''}))}"
    )


@dataclass(frozen=True)
class NestspecConfig:
    """
    Configuration loaded from ``.nestspec.toml``.

    Attributes:
        flat_namespace: Default naming mode for specifications that do not
            request one explicitly.
        source: The file this configuration was read from, if any.
    """

    flat_namespace: bool = False
    source: Path | None = None

    @classmethod
    def load(cls, start_dir: Path | None = None) -> NestspecConfig:
        """
        Find and load project configuration.

        Returns the defaults when no ``.nestspec.toml`` exists.

        Raises:
            ValueError: If the file contains invalid values.
            tomllib.TOMLDecodeError: If the file is not valid TOML.
        """
        config_path = find_config_file(start_dir)
        if config_path is None:
            return cls()

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        logger.debug(f"Loaded nestspec configuration from {config_path}")
        return cls.from_dict(data, source=config_path)

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], source: Path | None = None
    ) -> NestspecConfig:
        """
        Create a config from parsed TOML data.

        Raises:
            ValueError: If ``naming.flat_namespace`` is not a boolean.
        """
        naming = data.get("naming", {})
        flat = naming.get("flat_namespace", False)
        if not isinstance(flat, bool):
            raise ValueError(
                f"[naming] flat_namespace must be true or false, got {flat!r}"
            )
        return cls(flat_namespace=flat, source=source)


def default_flat_namespace(start_dir: Path | None = None) -> bool:
    """
    Return the naming mode to use when describe() is not given one.

    The ``NESTSPEC_FLAT_NAMESPACE`` environment variable wins over the
    project file.
    """
    raw = os.environ.get(FLAT_NAMESPACE_ENV)
    if raw is not None:
        return parse_bool(raw, FLAT_NAMESPACE_ENV)
    return NestspecConfig.load(start_dir).flat_namespace
