from profitsight.utils.formatters import format_currency, format_days, format_percent, safe_filename
from profitsight.utils.settings import load_settings


def test_defaults(monkeypatch, tmp_path):
    for name in ["SUPABASE_URL", "SUPABASE_KEY", "PROFITSIGHT_LEDGER_RETRIES", "PROFITSIGHT_KEEP_UNDATED",
                 "PROFITSIGHT_LEDGER_BACKOFF", "PROFITSIGHT_LEDGER_TIMEOUT", "PROFITSIGHT_LEDGER_FILE",
                 "PROFITSIGHT_LOG_LEVEL"]:
        monkeypatch.delenv(name, raising=False)
    settings = load_settings(tmp_path / ".env")

    assert settings.ledger_retries == 3
    assert settings.ledger_backoff == 0.5
    assert settings.keep_undated is False
    assert not settings.has_supabase


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "key")
    monkeypatch.setenv("PROFITSIGHT_LEDGER_RETRIES", "5")
    monkeypatch.setenv("PROFITSIGHT_LEDGER_BACKOFF", "bogus")
    monkeypatch.setenv("PROFITSIGHT_KEEP_UNDATED", "yes")
    settings = load_settings(tmp_path / ".env")

    assert settings.has_supabase
    assert settings.ledger_retries == 5
    assert settings.ledger_backoff == 0.5
    assert settings.keep_undated is True


def test_formatters():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(-12) == "-$12.00"
    assert format_currency(None) == "N/A"
    assert format_percent(42.3) == "42.30%"
    assert format_days(1) == "1 day"
    assert format_days(10) == "10 days"
    assert safe_filename("Jan / Feb: report") == "Jan _ Feb_ report"
