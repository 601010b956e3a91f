"""
lotledger_config -- single public entrypoint for report settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_config()``.  Engines never read configuration; services
    read it once per invocation and pass plain values down.

Failure modes:
    - ``ConfigurationError`` -- file missing, malformed YAML, unknown keys
      or values rejected by ``ReportSettings``.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LOTLEDGER_CONFIG_TRACE`` log entry containing the source path and
    settings checksum.
"""

from __future__ import annotations

from pathlib import Path

from lotledger_config.loader import compute_checksum, load_settings, parse_settings
from lotledger_config.schema import ReportSettings
from lotledger_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> ReportSettings:
    """The public settings entrypoint.

    Args:
        path: Settings YAML to load.  Defaults to the packaged
            ``defaults.yaml``.

    Returns:
        Frozen ``ReportSettings``.

    Raises:
        ConfigurationError: If the file cannot be loaded or validated.
    """
    source = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    settings = load_settings(source)

    logger.info(
        "LOTLEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LOTLEDGER_CONFIG_TRACE",
            "source": str(source),
            "checksum": compute_checksum(settings),
            "aging_bucket_bounds": list(settings.aging_bucket_bounds),
            "raise_on_shortfall": settings.raise_on_shortfall,
        },
    )
    return settings


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "ReportSettings",
    "compute_checksum",
    "get_active_config",
    "load_settings",
    "parse_settings",
]
