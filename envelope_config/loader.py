"""
Configuration Loader (``envelope_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into a typed
``LedgerConfig``.  No service reads YAML directly; the single runtime
entry point is ``envelope_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown keys are rejected -- a typo never silently falls back to a default.
* Numeric bounds are validated before a ``LedgerConfig`` is produced.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or out-of-range value  -> ``ValueError``.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from envelope_config.schema import LedgerConfig

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

_POSITIVE_INT_FIELDS = (
    "archive_retention_days",
    "max_shared_participants",
    "access_cache_max_entries",
    "conflict_retry_attempts",
    "max_query_limit",
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML document is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top-level YAML node is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root in {path} must be a mapping")
    return data


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a ``LedgerConfig`` from a dict, applying defaults for absent keys.

    The optional top-level ``ledger:`` section is unwrapped so that both
    flat files and namespaced files are accepted.

    Raises:
        ValueError: on unknown keys or out-of-range values.
    """
    if "ledger" in data and isinstance(data["ledger"], dict):
        data = data["ledger"]

    known = {f.name for f in dataclasses.fields(LedgerConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    config = LedgerConfig(**data)
    _validate(config)
    return config


def _validate(config: LedgerConfig) -> None:
    for name in _POSITIVE_INT_FIELDS:
        value = getattr(config, name)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValueError(f"{name} must be a positive integer, got {value!r}")

    if config.access_cache_ttl_seconds < 0:
        raise ValueError("access_cache_ttl_seconds must not be negative")
    if config.conflict_retry_backoff_seconds < 0:
        raise ValueError("conflict_retry_backoff_seconds must not be negative")
    currency = config.default_currency
    if not (isinstance(currency, str) and len(currency) == 3 and currency.isalpha() and currency.isupper()):
        raise ValueError(f"default_currency must be a 3-letter ISO 4217 code, got {currency!r}")
    if config.log_level.upper() not in _VALID_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_VALID_LOG_LEVELS)}")
    if not config.database_url:
        raise ValueError("database_url must not be empty")


def compute_checksum(config: LedgerConfig) -> str:
    """Deterministic SHA-256 over the canonical JSON form of *config*."""
    canonical = json.dumps(config.to_dict(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
