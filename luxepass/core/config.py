from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        validate_assignment=True,
    )

    app_env: str = "dev"
    log_level: str = "INFO"
    database_url: str

    whatsapp_verify_token: str
    whatsapp_access_token: str
    whatsapp_phone_number_id: str
    whatsapp_app_secret: str | None = None  # App Secret for webhook signature verification
    whatsapp_graph_api_version: str = "v22.0"
    whatsapp_dry_run: bool = True  # Set to False in production to enable real sending

    paystack_secret_key: str
    paystack_base_url: str = "https://api.paystack.co"
    paystack_callback_url: str = "http://localhost:8000/payments/callback"
    payment_currency: str = "NGN"
    # Paystack requires an email; users who skipped onboarding get <identifier>@<domain>
    payment_email_fallback_domain: str = "luxepass.com"

    concierge_min_amount: int = 5_000  # Naira
    concierge_max_amount: int = 5_000_000  # Naira

    referral_link: str = "https://luxepass.com/r"

    admin_api_key: str | None = (
        None  # Optional - if not set, admin endpoints are unprotected (dev mode)
    )

    # Optimistic-lock retries for one inbound message (load -> step -> conditional save)
    session_save_max_attempts: int = 3

    # Rate limiting
    rate_limit_enabled: bool = True  # Enable rate limiting for admin endpoints
    rate_limit_requests: int = 100  # Number of requests allowed per window
    rate_limit_window_seconds: int = 900  # Time window in seconds


# Settings will load from environment variables or .env file
# Required fields will raise ValidationError if missing (fail-fast)
settings = Settings()
