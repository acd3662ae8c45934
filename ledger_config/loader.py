"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Reads YAML settings files and parses them into ``LedgerSettings``. Service
code never calls this directly; it goes through
``ledger_config.get_active_settings()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or invalid value  -> ``ValueError``.
"""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import LedgerSettings
from ledger_kernel.utils.hashing import hash_payload

_KNOWN_KEYS = frozenset(f.name for f in dataclasses.fields(LedgerSettings))


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML value must be a mapping")
    return data


def parse_settings(data: dict[str, Any], base: LedgerSettings | None = None) -> LedgerSettings:
    """
    Overlay ``data`` (the ``ledger`` section or the whole document) on ``base``.
    """
    section = data.get("ledger", data)
    if not isinstance(section, dict):
        raise ValueError("'ledger' section must be a mapping")
    unknown = set(section) - _KNOWN_KEYS
    if unknown:
        raise ValueError(f"Unknown ledger settings: {', '.join(sorted(unknown))}")
    return dataclasses.replace(base or LedgerSettings(), **section)


def load_settings(*paths: Path) -> LedgerSettings:
    """Apply each file in order on top of the defaults."""
    settings = LedgerSettings()
    for path in paths:
        settings = parse_settings(load_yaml_file(path), base=settings)
    return settings


def compute_checksum(settings: LedgerSettings) -> str:
    """Deterministic SHA-256 of the effective settings."""
    return hash_payload(dataclasses.asdict(settings))
