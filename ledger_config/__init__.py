"""
ledger_config -- single public entrypoint for ledger settings.

Responsibility:
    ``get_active_settings()`` is the only way services obtain configuration.
    It layers the packaged ``defaults.yaml`` with an optional override file
    (an explicit path, or the ``LEDGER_CONFIG_PATH`` environment variable).

Architecture position:
    Configuration. Sits above ``ledger_kernel`` and below
    ``ledger_services``. The kernel never imports from this package.

Audit relevance:
    Every load emits a ``ledger_config_loaded`` log entry carrying the
    source files and the checksum of the effective settings.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path

from ledger_config.loader import compute_checksum, load_settings
from ledger_config.schema import LedgerSettings
from ledger_kernel.logging_config import get_logger

__all__ = ["LedgerSettings", "get_active_settings", "clear_settings_cache"]

ENV_VAR = "LEDGER_CONFIG_PATH"
_DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

_logger = get_logger("config")
_cache: dict[str | None, LedgerSettings] = {}
_lock = threading.Lock()


def get_active_settings(config_path: Path | str | None = None) -> LedgerSettings:
    """
    Return the effective LedgerSettings.

    Raises:
        FileNotFoundError: the override file does not exist.
        ValueError: unknown keys or invalid values.
    """
    override = config_path if config_path is not None else os.environ.get(ENV_VAR)
    cache_key = str(override) if override else None
    with _lock:
        cached = _cache.get(cache_key)
        if cached is not None:
            return cached

        paths = [_DEFAULTS_FILE]
        if override:
            paths.append(Path(override))
        settings = load_settings(*paths)
        _cache[cache_key] = settings

    _logger.info(
        "ledger_config_loaded",
        extra={"sources": [str(p) for p in paths], "checksum": compute_checksum(settings)},
    )
    return settings


def clear_settings_cache() -> None:
    """Forget loaded settings. FOR TESTING ONLY."""
    with _lock:
        _cache.clear()
