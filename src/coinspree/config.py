"""Runtime settings read from the environment."""
import os

from pydantic import BaseModel


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """All tunables for the pipeline. Build with Settings.from_env()."""

    redis_url: str = "redis://localhost:6379/0"

    coingecko_api_key: str | None = None
    coingecko_use_pro: bool = False
    market_cache_ttl_seconds: int = 60
    http_timeout_seconds: float = 10.0

    notification_min_interval_minutes: float = 5.0
    notification_batch_size: int = 50
    notification_batch_delay_ms: int = 100

    email_queue_batch_size: int = 10
    email_max_attempts: int = 3

    resend_api_key: str | None = None
    email_from: str = "CoinSpree <notifications@urgent.coinspree.cc>"
    email_reply_to: str = "support@urgent.coinspree.cc"
    edge_config_id: str | None = None
    edge_config_token: str | None = None
    app_url: str = "http://localhost:8000"

    cron_secret: str | None = None
    run_scheduler: bool = False
    detection_interval_seconds: float = 300.0
    queue_interval_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from environment variables; unset values keep defaults."""
        values: dict[str, object] = {}
        for name, field in cls.model_fields.items():
            env_name = name.upper()
            if env_name not in os.environ:
                continue
            if field.annotation is bool:
                values[name] = _env_bool(env_name)
            else:
                values[name] = os.environ[env_name]
        # Vercel-style fallback name for the cron secret
        if "cron_secret" not in values and os.getenv("CRON_SECRET_KEY"):
            values["cron_secret"] = os.environ["CRON_SECRET_KEY"]
        return cls.model_validate(values)
