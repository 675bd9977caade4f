"""
envelope_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive a ``LedgerConfig`` by
    constructor injection and never read files or environment variables.

Architecture position:
    Configuration layer.  Sits beside ``envelope_ledger``; the ledger
    façade accepts a ``LedgerConfig`` but the pure domain never imports it.

Audit relevance:
    Every ``get_active_config()`` call emits a ``LEDGER_CONFIG_TRACE`` log
    record with the checksum of the effective configuration, tying each
    process run to the exact configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from envelope_config.loader import compute_checksum, load_yaml_file, parse_config
from envelope_config.schema import LedgerConfig

__all__ = [
    "LedgerConfig",
    "compute_checksum",
    "get_active_config",
    "load_yaml_file",
    "parse_config",
]

_logger = logging.getLogger("envelope_ledger.config")


def get_active_config(config_path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Optional YAML file overriding the defaults.  When
            omitted the built-in ``LedgerConfig()`` defaults are returned.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ValueError: If the file contains unknown keys or invalid values.
    """
    if config_path is None:
        config = LedgerConfig()
        source = "<defaults>"
    else:
        path = Path(config_path)
        config = parse_config(load_yaml_file(path))
        source = str(path)

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_source": source,
            "checksum": compute_checksum(config),
            "archive_retention_days": config.archive_retention_days,
            "max_shared_participants": config.max_shared_participants,
        },
    )
    return config
