"""Tests for configuration defaults."""

from split_ledger.config import AppSettings, LedgerSettings, validate_all_settings


class TestSettings:
    """Defaults that the engines rely on."""

    def test_ledger_defaults(self, monkeypatch):
        for name in ("LEDGER_CALLS_PER_SECOND", "LEDGER_AMOUNT_TOLERANCE", "LEDGER_MAX_DEBT_AMOUNT"):
            monkeypatch.delenv(name, raising=False)
        settings = LedgerSettings()
        assert settings.calls_per_second == 10.0
        assert settings.amount_tolerance == 0.01
        assert settings.max_debt_amount == 100000.0
        assert settings.notifications_enabled is True

    def test_ledger_reads_environment(self, monkeypatch):
        monkeypatch.setenv("LEDGER_CALLS_PER_SECOND", "2.5")
        monkeypatch.setenv("LEDGER_NOTIFICATIONS_ENABLED", "false")
        settings = LedgerSettings()
        assert settings.calls_per_second == 2.5
        assert settings.notifications_enabled is False

    def test_app_currency(self, monkeypatch):
        monkeypatch.chdir("/")
        monkeypatch.delenv("CURRENCY_CODE", raising=False)
        assert AppSettings().currency_code == "INR"

    def test_validate_all_settings_reports_each_section(self):
        results = validate_all_settings()
        assert results["ledger"] is True
        assert results["app"] is True
        assert "google_sheets" in results
