from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment with defaults.

    Environment variable mapping follows pydantic's rules (e.g., APP_NAME, DEBUG,
    DATA_DIR, DB_FILENAME, RATE_BROADCAST_INTERVAL_SECONDS, SMTP_HOST).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Basic app metadata
    app_name: str = "Forex Marketplace"
    debug: bool = True
    version: str = "0.1.0"

    # Data & persistence
    data_dir: Path = Path("data")
    db_filename: str = "forex.sqlite3"
    db_path: Optional[Path] = None  # derived if not provided
    seed_demo_data: bool = True

    # Rate broadcast
    rate_broadcast_interval_seconds: float = 30.0

    # Pricing
    commission_rate: float = 0.02
    tax_rate: float = 0.18  # GST on base + commission
    doorstep_delivery_charge: float = 50.0

    # Orders
    order_number_prefix: str = "BMF"
    order_number_max_attempts: int = 5

    # Notifications (log-only when unset)
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    email_from: str = "no-reply@forex.local"
    sms_gateway_url: Optional[str] = None
    http_timeout_seconds: float = 5.0

    # Payment gateway; unset secret disables payments
    payment_key_id: Optional[str] = None
    payment_key_secret: Optional[str] = None

    def init_post_load(self) -> None:
        """Finalize derived fields and ensure directories exist."""
        if self.db_path is None:
            self.db_path = self.data_dir / self.db_filename
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        if self.rate_broadcast_interval_seconds <= 0:
            raise ValueError("rate_broadcast_interval_seconds must be positive")
        if self.order_number_max_attempts < 1:
            raise ValueError("order_number_max_attempts must be at least 1")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.init_post_load()
    return settings
