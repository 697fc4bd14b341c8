from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Read from OS env and optional .env file in project root.
    _project_root = Path(__file__).parent.parent

    model_config = SettingsConfigDict(
        env_file=str(_project_root / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = Field(
        "127.0.0.1",
        alias="HOST",
        description="Interface uvicorn binds to",
    )
    port: int = Field(
        3000,
        alias="PORT",
        description="Port uvicorn listens on",
    )
    environment: str = Field(
        "development",
        alias="APP_ENV",
        description="Runtime environment, e.g. development / production",
    )
    api_docs_override: bool | None = Field(
        default=None,
        alias="ENABLE_API_DOCS",
        description="Force FastAPI docs routes on/off; defaults to off in production",
    )
    version: str = Field("1.0.0", alias="APP_VERSION")

    # CORS
    cors_allow_origins: str = Field(
        "*",
        alias="CORS_ALLOW_ORIGINS",
        description="Allowed origins, comma separated",
    )
    cors_allow_credentials: bool = Field(
        True,
        alias="CORS_ALLOW_CREDENTIALS",
    )
    cors_allow_methods: str = Field(
        "*",
        alias="CORS_ALLOW_METHODS",
        description="Allowed methods, comma separated; * means all",
    )
    cors_allow_headers: str = Field(
        "*",
        alias="CORS_ALLOW_HEADERS",
        description="Allowed headers, comma separated; * means all",
    )

    # Translation provider (OpenAI-compatible chat completions)
    openai_api_key: str | None = Field(
        default=None,
        alias="OPENAI_API_KEY",
        description="Credential for the translation provider",
    )
    openai_base_url: str = Field(
        "https://api.openai.com/v1",
        alias="OPENAI_BASE_URL",
        description="Base URL of the OpenAI-compatible API",
    )
    openai_model: str = Field("gpt-4", alias="OPENAI_MODEL")
    openai_max_tokens: int = Field(2048, alias="OPENAI_MAX_TOKENS", ge=1)
    openai_temperature: float = Field(0.1, alias="OPENAI_TEMPERATURE", ge=0.0, le=2.0)
    provider_timeout_seconds: float = Field(
        60.0,
        alias="PROVIDER_TIMEOUT_SECONDS",
        description="HTTP timeout for a single provider call",
        gt=0,
    )
    source_language: str = Field("TypeScript", alias="SOURCE_LANGUAGE")
    target_language: str = Field("AdvPL", alias="TARGET_LANGUAGE")

    # Store
    database_url: str = Field(
        "sqlite+pysqlite:///./dev.db",
        alias="DATABASE_URL",
        description="SQLAlchemy database URL",
    )

    # Limits
    max_code_length: int = Field(
        50_000,
        alias="MAX_CODE_LENGTH",
        description="Maximum number of characters accepted in sourceText",
        ge=1,
    )
    max_body_bytes: int = Field(
        10 * 1024 * 1024,
        alias="MAX_BODY_BYTES",
        description="Maximum request body size for mutating requests",
        ge=1,
    )
    request_timeout_ms: int = Field(
        30_000,
        alias="REQUEST_TIMEOUT",
        description="Deadline for a whole request, in milliseconds",
        ge=1,
    )

    # Rate limiting
    max_requests_per_minute: int = Field(
        10,
        alias="MAX_REQUESTS_PER_MINUTE",
        description="Requests admitted per client within the trailing window",
        ge=1,
    )
    rate_limit_window_ms: int = Field(
        60_000,
        alias="RATE_LIMIT_WINDOW_MS",
        ge=1,
    )
    rate_limit_max_clients: int = Field(
        10_000,
        alias="RATE_LIMIT_MAX_CLIENTS",
        description="Upper bound on tracked client windows; least recently seen is evicted",
        ge=1,
    )
    rate_limit_sweep_interval_seconds: float = Field(
        300.0,
        alias="RATE_LIMIT_SWEEP_INTERVAL_SECONDS",
        description="How often idle client windows are swept",
        ge=0,
    )
    trust_forwarded_headers: bool = Field(
        False,
        alias="TRUST_FORWARDED_HEADERS",
        description="Use X-Forwarded-For / X-Real-IP as the client identifier",
    )

    # Logging
    log_level: str = Field(
        "INFO",
        alias="LOG_LEVEL",
        description="Application log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_requests: bool = Field(
        False,
        alias="LOG_REQUESTS",
        description="Log every request line with status and duration",
    )
    log_timezone: str | None = Field(
        default=None,
        alias="LOG_TIMEZONE",
        description="Timezone name for log timestamps; defaults to system local time",
    )
    log_dir: str = Field(
        "logs",
        alias="LOG_DIR",
        description="Log directory, relative paths resolve against the project root",
    )
    log_backup_days: int = Field(
        7,
        alias="LOG_BACKUP_DAYS",
        description="Keep the last N day folders; 0 disables cleanup",
        ge=0,
    )
    log_split_by_module: bool = Field(
        True,
        alias="LOG_SPLIT_BY_MODULE",
        description="Split application logs into one file per module area",
    )

    @property
    def enable_api_docs(self) -> bool:
        if self.api_docs_override is not None:
            return self.api_docs_override
        return self.environment.lower() != "production"

    @property
    def request_timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000.0


settings = Settings()  # Reads from environment if available
