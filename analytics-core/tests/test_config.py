from app.config import Settings, get_settings


def test_defaults(monkeypatch):
    for name in ("TREND_UNPARSEABLE_BUCKETS", "TREND_REVENUE_PER_CONVERSION", "TREND_COST_PER_IMPRESSION"):
        monkeypatch.delenv(name, raising=False)
    s = Settings()
    assert s.unparseable_bucket_policy == "today"
    assert s.revenue_per_conversion == 100.0
    assert s.cost_per_impression == 0.1


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("TREND_UNPARSEABLE_BUCKETS", "DROP")
    monkeypatch.setenv("TREND_REVENUE_PER_CONVERSION", "250")
    monkeypatch.setenv("TREND_COST_PER_IMPRESSION", "0.05")
    s = Settings()
    assert s.unparseable_bucket_policy == "drop"
    assert s.revenue_per_conversion == 250.0
    assert s.cost_per_impression == 0.05


def test_bad_values_fall_back(monkeypatch):
    monkeypatch.setenv("TREND_UNPARSEABLE_BUCKETS", "explode")
    monkeypatch.setenv("TREND_REVENUE_PER_CONVERSION", "lots")
    s = Settings()
    assert s.unparseable_bucket_policy == "today"
    assert s.revenue_per_conversion == 100.0


def test_settings_are_cached():
    assert get_settings() is get_settings()
