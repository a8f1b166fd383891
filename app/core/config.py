from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BACKEND_ROSTER = (
    "meta-llama/llama-3.3-70b-instruct:free,"
    "deepseek/deepseek-r1:free,"
    "mistralai/mistral-7b-instruct:free,"
    "qwen/qwen-2.5-72b-instruct:free,"
    "nvidia/nemotron-nano-9b-v2:free"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # OpenRouter (single key shared by every backend in the roster)
    openrouter_api_key: str = ""
    openrouter_url: str = "https://openrouter.ai/api/v1/chat/completions"

    # Fallback roster: comma-separated backend ids, tried in this order
    backend_roster_order: str = DEFAULT_BACKEND_ROSTER

    @property
    def backend_roster(self) -> list[str]:
        return [b.strip() for b in self.backend_roster_order.split(",") if b.strip()]

    # Retry policy
    max_retries_per_backend: int = 2
    initial_backoff_ms: int = 3000
    backend_timeout_seconds: float = 60.0
    generation_timeout_seconds: float = 120.0

    # Generation parameters
    generation_max_tokens: int = 1500
    generation_temperature: float = 0.7

    # Local rate limiter
    rate_limit_count: int = 5
    rate_limit_window_ms: int = 60_000
    rate_limit_sweep_interval_ms: int = 300_000

    # Auth (tokens are issued by the catalog's auth service)
    jwt_secret_key: str = "change-this-to-a-random-string"
    jwt_algorithm: str = "HS256"
    admin_role: str = "admin"

    # App
    app_env: str = "development"
    app_version: str = "1.0.0"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 5000
    app_public_url: str = "http://localhost:5000"  # sent to OpenRouter as HTTP-Referer
    app_title: str = "Movie Platform"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    # CORS
    allowed_origins: str = "http://localhost:5173"  # comma-separated
    frontend_url: str = ""

    @property
    def cors_origins(self) -> list[str]:
        origins = [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    if settings.jwt_secret_key in ("change-this-to-a-random-string", ""):
        errors.append("JWT_SECRET_KEY must be set to a secure random value")

    if not settings.backend_roster:
        errors.append("BACKEND_ROSTER_ORDER must name at least one backend")

    if settings.max_retries_per_backend < 0:
        errors.append("MAX_RETRIES_PER_BACKEND must not be negative")

    if settings.rate_limit_count < 1 or settings.rate_limit_window_ms < 1:
        errors.append("RATE_LIMIT_COUNT and RATE_LIMIT_WINDOW_MS must be positive")

    if settings.is_production:
        if not settings.openrouter_api_key:
            errors.append("OPENROUTER_API_KEY must be set in production")
        if "*" in settings.cors_origins:
            errors.append("ALLOWED_ORIGINS must not be '*' in production")
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
