"""
Tests for ledger settings loading.

Verifies:
- Packaged defaults load and match the dataclass defaults
- LEDGER_CONFIG_PATH and explicit paths overlay a subset of keys
- Unknown keys and invalid values are rejected
- Loaded settings are cached until clear_settings_cache()
"""

import pytest

from ledger_config import LedgerSettings, clear_settings_cache, get_active_settings
from ledger_config.loader import compute_checksum, parse_settings
from ledger_kernel.domain.currency import Currency


@pytest.fixture(autouse=True)
def _fresh_cache(monkeypatch):
    monkeypatch.delenv("LEDGER_CONFIG_PATH", raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def override_file(tmp_path):
    def _write(text: str):
        path = tmp_path / "ledger.yaml"
        path.write_text(text)
        return path

    return _write


class TestDefaults:
    def test_packaged_defaults(self):
        assert get_active_settings() == LedgerSettings()

    def test_default_values(self):
        settings = get_active_settings()
        assert settings.default_currency is Currency.USD
        assert settings.idempotency_ttl_hours == 24
        assert settings.closed_period_override_permission == "accounting:post_to_closed_period"
        assert settings.nci_account_code == "NCI"

    def test_load_logged_with_checksum(self, captured_logs):
        settings = get_active_settings()
        (record,) = [r for r in captured_logs() if r["message"] == "ledger_config_loaded"]
        assert record["checksum"] == compute_checksum(settings)
        assert record["sources"][0].endswith("defaults.yaml")


class TestOverrides:
    def test_env_var_override(self, monkeypatch, override_file):
        path = override_file("ledger:\n  idempotency_ttl_hours: 48\n  default_currency: eur\n")
        monkeypatch.setenv("LEDGER_CONFIG_PATH", str(path))

        settings = get_active_settings()

        assert settings.idempotency_ttl_hours == 48
        assert settings.default_currency is Currency.EUR
        assert settings.nci_account_code == "NCI"

    def test_explicit_path_without_section(self, override_file):
        path = override_file("nci_account_code: MINORITY\nlog_level: debug\n")
        settings = get_active_settings(path)
        assert settings.nci_account_code == "MINORITY"
        assert settings.log_level == "DEBUG"

    def test_empty_override_keeps_defaults(self, override_file):
        assert get_active_settings(override_file("")) == LedgerSettings()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_settings(tmp_path / "absent.yaml")

    def test_cached_until_cleared(self, monkeypatch, override_file):
        first = get_active_settings()
        monkeypatch.setenv("LEDGER_CONFIG_PATH", str(override_file("idempotency_ttl_hours: 6\n")))
        assert get_active_settings() is not first

        clear_settings_cache()
        monkeypatch.delenv("LEDGER_CONFIG_PATH")
        assert get_active_settings() is not first
        assert get_active_settings() is get_active_settings()


class TestValidation:
    def test_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown ledger settings: retention_days"):
            parse_settings({"ledger": {"retention_days": 7}})

    def test_unknown_key_in_file(self, override_file):
        with pytest.raises(ValueError):
            get_active_settings(override_file("ledger:\n  nci_acount_code: X\n"))

    def test_top_level_must_be_mapping(self, override_file):
        with pytest.raises(ValueError):
            get_active_settings(override_file("- just\n- a list\n"))

    @pytest.mark.parametrize(
        "field, value",
        [
            ("idempotency_ttl_hours", 0),
            ("idempotency_ttl_hours", "24"),
            ("idempotency_ttl_hours", True),
            ("nci_account_code", "  "),
            ("log_level", "LOUD"),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValueError):
            LedgerSettings(**{field: value})

    def test_checksum_tracks_values(self):
        assert compute_checksum(LedgerSettings()) == compute_checksum(LedgerSettings())
        assert compute_checksum(LedgerSettings()) != compute_checksum(
            LedgerSettings(idempotency_ttl_hours=12)
        )
