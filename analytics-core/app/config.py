import logging
import os
from functools import lru_cache

logger = logging.getLogger(__name__)

BUCKET_POLICIES = ("today", "drop")


def _env_float(name: str, default: float) -> float:
  raw = os.getenv(name)
  if raw is None or not raw.strip():
    return default
  try:
    return float(raw)
  except ValueError:
    logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
    return default


class Settings:
  """Centralized configuration pulled from environment variables."""

  app_name: str = "Trend Analytics Core"
  app_version: str = os.getenv("APP_VERSION", "0.1.0")

  unparseable_bucket_policy: str
  revenue_per_conversion: float
  cost_per_impression: float

  def __init__(self) -> None:
    policy = os.getenv("TREND_UNPARSEABLE_BUCKETS", "today").strip().lower()
    if policy not in BUCKET_POLICIES:
      logger.warning("Unknown TREND_UNPARSEABLE_BUCKETS=%r, using 'today'", policy)
      policy = "today"
    self.unparseable_bucket_policy = policy

    # revenue/ROI are proxies: flat value per conversion, flat cost per impression
    self.revenue_per_conversion = _env_float("TREND_REVENUE_PER_CONVERSION", 100.0)
    self.cost_per_impression = _env_float("TREND_COST_PER_IMPRESSION", 0.1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  return Settings()


settings = get_settings()
