from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(default="sqlite+pysqlite:///./dev.db", validation_alias="DATABASE_URL")
    db_auto_create: bool = Field(default=True, validation_alias="DB_AUTO_CREATE")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")

    google_cloud_project: str | None = Field(default=None, validation_alias="GOOGLE_CLOUD_PROJECT")
    google_cloud_location: str = Field(default="us-central1", validation_alias="GOOGLE_CLOUD_LOCATION")

    gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
    gemini_text_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_TEXT_MODEL")
    gemini_fallback_text_model: str | None = Field(
        default="gemini-2.0-flash",
        validation_alias="GEMINI_FALLBACK_TEXT_MODEL",
    )
    gemini_max_retries: int = Field(default=3, validation_alias="GEMINI_MAX_RETRIES")
    gemini_initial_backoff_seconds: float = Field(
        default=0.8,
        validation_alias="GEMINI_INITIAL_BACKOFF_SECONDS",
    )
    gemini_timeout_seconds: float = Field(default=60.0, validation_alias="GEMINI_TIMEOUT_SECONDS")
    gemini_circuit_breaker_threshold: int = Field(
        default=5,
        validation_alias="GEMINI_CIRCUIT_BREAKER_THRESHOLD",
    )
    gemini_circuit_breaker_timeout: int = Field(
        default=60,
        validation_alias="GEMINI_CIRCUIT_BREAKER_TIMEOUT",
    )

    enable_external_lookups: bool = Field(default=True, validation_alias="ENABLE_EXTERNAL_LOOKUPS")
    teleport_base_url: str = Field(default="https://api.teleport.org/api", validation_alias="TELEPORT_BASE_URL")
    nominatim_base_url: str = Field(
        default="https://nominatim.openstreetmap.org",
        validation_alias="NOMINATIM_BASE_URL",
    )
    open_meteo_base_url: str = Field(
        default="https://archive-api.open-meteo.com/v1",
        validation_alias="OPEN_METEO_BASE_URL",
    )
    unsplash_base_url: str = Field(default="https://api.unsplash.com", validation_alias="UNSPLASH_BASE_URL")
    unsplash_access_key: str | None = Field(default=None, validation_alias="UNSPLASH_ACCESS_KEY")
    http_user_agent: str = Field(default="parallel-lives/0.1", validation_alias="HTTP_USER_AGENT")
    http_timeout_seconds: float = Field(default=10.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    http_max_attempts: int = Field(default=3, validation_alias="HTTP_MAX_ATTEMPTS")
    http_initial_backoff_seconds: float = Field(default=0.5, validation_alias="HTTP_INITIAL_BACKOFF_SECONDS")

    lookup_workers: int = Field(default=8, validation_alias="LOOKUP_WORKERS")
    lookup_timeout_seconds: float = Field(default=30.0, validation_alias="LOOKUP_TIMEOUT_SECONDS")

    cache_max_entries: int = Field(default=1000, validation_alias="CACHE_MAX_ENTRIES")
    cache_ttl_location_seconds: int = Field(default=24 * 3600, validation_alias="CACHE_TTL_LOCATION_SECONDS")
    cache_ttl_geocode_seconds: int = Field(default=30 * 24 * 3600, validation_alias="CACHE_TTL_GEOCODE_SECONDS")
    cache_ttl_climate_seconds: int = Field(default=7 * 24 * 3600, validation_alias="CACHE_TTL_CLIMATE_SECONDS")
    cache_ttl_occupation_seconds: int = Field(default=24 * 3600, validation_alias="CACHE_TTL_OCCUPATION_SECONDS")
    cache_ttl_image_seconds: int = Field(default=24 * 3600, validation_alias="CACHE_TTL_IMAGE_SECONDS")

    default_city: str = Field(default="New York", validation_alias="DEFAULT_CITY")
    default_country: str = Field(default="United States", validation_alias="DEFAULT_COUNTRY")
    default_occupation: str = Field(default="Software Developer", validation_alias="DEFAULT_OCCUPATION")
    max_node_depth: int = Field(default=10, validation_alias="MAX_NODE_DEPTH")
    max_nodes_per_session: int = Field(default=50, validation_alias="MAX_NODES_PER_SESSION")

    @property
    def DATABASE_URL(self) -> str:  # pragma: no cover
        return self.database_url

    @property
    def DB_AUTO_CREATE(self) -> bool:  # pragma: no cover
        return self.db_auto_create


settings = Settings()
