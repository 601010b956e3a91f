"""
Configuration Loader (``lotledger_config.loader``).

Responsibility
--------------
Loads a settings YAML file and parses it into a frozen
``ReportSettings``.  Runtime callers go through
``lotledger_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown keys are rejected so that typos do not silently fall back to
  defaults.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` wrapping ``yaml.YAMLError``.
* Invalid values  -> ``ConfigurationError`` wrapping the schema's
  ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from lotledger_config.schema import ReportSettings
from lotledger_kernel.exceptions import ConfigurationError

_KNOWN_KEYS = frozenset(f.name for f in fields(ReportSettings))


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: if the file is missing, unreadable, not valid
            YAML, or its top level is not a mapping.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(f"Settings file not found: {path}", source=str(path)) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}", source=str(path)) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Settings file {path} must contain a mapping, got {type(data).__name__}",
            source=str(path),
        )
    return data


def _parse_decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ConfigurationError(f"{key} must be numeric, got {value!r}") from e


def parse_settings(data: dict[str, Any], source: str | None = None) -> ReportSettings:
    """
    Parse a ``ReportSettings`` from a dict.

    The YAML may nest values under a top-level ``reports`` key or place
    them at the root.
    """
    section = data.get("reports", data)
    if not isinstance(section, dict):
        raise ConfigurationError("'reports' section must be a mapping", source=source)

    unknown = set(section) - _KNOWN_KEYS
    if unknown:
        raise ConfigurationError(
            f"Unknown settings keys: {', '.join(sorted(unknown))}", source=source
        )

    kwargs: dict[str, Any] = dict(section)
    for key in ("settlement_tolerance", "quantity_tolerance"):
        if key in kwargs:
            kwargs[key] = _parse_decimal(kwargs[key], key)

    try:
        if "aging_bucket_bounds" in kwargs:
            kwargs["aging_bucket_bounds"] = tuple(int(b) for b in kwargs["aging_bucket_bounds"])
        return ReportSettings(**kwargs)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid settings: {e}", source=source) from e


def load_settings(path: Path) -> ReportSettings:
    """Load and parse a settings YAML file."""
    return parse_settings(load_yaml_file(path), source=str(path))


def compute_checksum(settings: ReportSettings) -> str:
    """Deterministic SHA-256 of the settings values."""
    canonical = {f.name: getattr(settings, f.name) for f in fields(ReportSettings)}
    serialized = json.dumps(canonical, sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()
