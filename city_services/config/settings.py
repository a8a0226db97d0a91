"""Typed runtime settings with dotenv support and startup validation."""

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SettingsLoadError(RuntimeError):
    """Raised when runtime settings cannot be loaded or validated."""


class CitySettings(BaseSettings):
    """Settings for the council orchestrator, dispatch router and API runtime.

    Environment variable names map directly to field names in uppercase.
    Example: `max_restarts` reads from `MAX_RESTARTS`.

    Attributes:
        environment_name: Runtime environment label.
        application_host: Host interface for web server binding.
        application_port: Web server port.
        database_url: SQLAlchemy DSN for the council decision log.
        bus_backend: Message bus implementation (`memory` or `redis`).
        redis_url: Redis DSN used when `bus_backend` is `redis`.
        council_service_name: Logical channel of the orchestrator.
        dispatch_center_name: Logical name of the dispatch center.
        public_works_name: Logical name of the public works department.
        analyzer_service_names: Channels receiving efficiency analysis requests.
        department_directory: Directory holding department templates.
        department_launch_command: Command template used to spawn one department.
        supervision_interval_seconds: Cadence of the supervision cycle.
        health_silence_window_seconds: Time without a health reply counted as failure.
        restart_failure_threshold: Consecutive failures that trigger a restart.
        max_restarts: Restart budget before permanent failure.
        consolidation_approve_similarity: Similarity above which consolidation may be approved.
        consolidation_defer_similarity: Similarity above which consolidation is deferred.
        consolidation_min_savings: Savings above which consolidation may be approved.
        protected_departments: Name fragments of departments that must never be terminated.
        approved_termination_reasons: Termination reasons approved without review.
        analysis_interval_seconds: Cadence of periodic efficiency analysis requests.
        analysis_min_departments: Minimum department count before analysis is requested.
        dispatch_pending_timeout_seconds: Bounded wait for a missing department.
        change_effective_immediately: Whether broadcast changes take effect immediately.
        api_default_limit: Default list endpoint limit.
        api_max_limit: Maximum allowed list endpoint limit.
        log_level: Root logging level for CLI entrypoints.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment_name: str = Field(default="development")
    application_host: str = Field(default="0.0.0.0")
    application_port: int = Field(default=8000, ge=1, le=65535)
    database_url: str = Field(default="sqlite:///city_services.db")
    bus_backend: str = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    council_service_name: str = Field(default="city_council", min_length=1)
    dispatch_center_name: str = Field(default="emergency_dispatch_center", min_length=1)
    public_works_name: str = Field(default="public_works_department", min_length=1)
    analyzer_service_names: list[str] = Field(default_factory=lambda: ["doge", "doge_vsm"])
    department_directory: str = Field(default=".")
    department_launch_command: str = Field(default="ruby generic_department.rb {name}")
    supervision_interval_seconds: float = Field(default=30.0, gt=0)
    health_silence_window_seconds: float = Field(default=60.0, gt=0)
    restart_failure_threshold: int = Field(default=3, ge=1)
    max_restarts: int = Field(default=3, ge=0)
    consolidation_approve_similarity: float = Field(default=70.0, ge=0, le=100)
    consolidation_defer_similarity: float = Field(default=50.0, ge=0, le=100)
    consolidation_min_savings: float = Field(default=100000.0, ge=0)
    protected_departments: list[str] = Field(
        default_factory=lambda: ["police", "fire", "health", "emergency_dispatch_center"]
    )
    approved_termination_reasons: list[str] = Field(default_factory=lambda: ["redundant", "obsolete", "unused"])
    analysis_interval_seconds: float = Field(default=300.0, gt=0)
    analysis_min_departments: int = Field(default=3, ge=0)
    dispatch_pending_timeout_seconds: float = Field(default=120.0, gt=0)
    change_effective_immediately: bool = Field(default=True)
    api_default_limit: int = Field(default=50, ge=1)
    api_max_limit: int = Field(default=200, ge=1)
    log_level: str = Field(default="INFO")

    @field_validator("council_service_name", "dispatch_center_name", "public_works_name", "database_url")
    @classmethod
    def _validate_non_empty_string(cls, value: str) -> str:
        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError("value must not be blank")
        return stripped_value

    @field_validator("bus_backend")
    @classmethod
    def _validate_bus_backend(cls, value: str) -> str:
        normalized_value = value.strip().lower()
        if normalized_value not in {"memory", "redis"}:
            raise ValueError("bus_backend must be one of: memory, redis")
        return normalized_value

    @field_validator("protected_departments", "approved_termination_reasons")
    @classmethod
    def _validate_match_terms(cls, value: list[str]) -> list[str]:
        return [term.strip().lower() for term in value if term.strip()]

    @field_validator("department_launch_command")
    @classmethod
    def _validate_launch_command(cls, value: str) -> str:
        if "{name}" not in value:
            raise ValueError("department_launch_command must contain the {name} placeholder")
        return value.strip()

    @field_validator("consolidation_defer_similarity")
    @classmethod
    def _validate_similarity_bounds(cls, value: float, info) -> float:
        approve_similarity = float(info.data.get("consolidation_approve_similarity", 70.0))
        if approve_similarity < value:
            raise ValueError(
                "consolidation_approve_similarity must be greater than or equal to consolidation_defer_similarity"
            )
        return value

    @field_validator("api_max_limit")
    @classmethod
    def _validate_limit_bounds(cls, value: int, info) -> int:
        default_limit = info.data.get("api_default_limit", 50)
        if value < default_limit:
            raise ValueError("api_max_limit must be greater than or equal to api_default_limit")
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized_value = value.strip().upper()
        if normalized_value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("log_level must be a standard logging level name")
        return normalized_value


class DatabaseUrlSettings(BaseSettings):
    """Minimal settings model used by migration tooling.

    Attributes:
        database_url: SQLAlchemy DSN for schema migrations.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    database_url: str = Field(default="sqlite:///city_services.db")


def config_load_settings() -> CitySettings:
    """Load and validate runtime settings from environment and dotenv.

    Returns:
        CitySettings: Validated runtime settings object.

    Raises:
        SettingsLoadError: Raised when settings are invalid.
    """

    try:
        return CitySettings()
    except ValidationError as error:
        raise SettingsLoadError(
            f"Startup configuration validation failed. Update .env or environment variables. Details: {error}"
        ) from error


def config_load_database_url() -> str:
    """Load and validate only the database URL setting.

    Returns:
        str: Non-empty database URL for migration and db tooling.

    Raises:
        SettingsLoadError: Raised when database URL cannot be loaded.
    """

    try:
        database_settings = DatabaseUrlSettings()
    except ValidationError as error:
        raise SettingsLoadError(
            f"Database URL configuration validation failed. Update .env or environment variables. Details: {error}"
        ) from error

    database_url = str(database_settings.database_url).strip()
    if not database_url:
        raise SettingsLoadError("Database URL configuration validation failed. DATABASE_URL must not be blank.")
    return database_url
