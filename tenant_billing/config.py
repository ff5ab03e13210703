from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Tenant Billing"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Database settings
    database_url: str = "sqlite+aiosqlite:///./tenant_billing.db"

    # Security settings
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Billing policy
    invoice_due_days: int = 7
    default_grace_days: int = 2
    ending_soon_days: int = 5
    trial_invoice_lead_days: int = 3
    renewal_invoice_lead_days: int = 5
    invoice_number_max_attempts: int = 50
    rejected_invoice_resubmit_days: int = 30

    # Billing sweep (optional; status is evaluated lazily on read)
    billing_sweep_enabled: bool = False
    billing_sweep_interval_minutes: int = 60

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # CORS settings
    allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


settings = Settings()
