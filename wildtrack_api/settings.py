from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "WildTrack Telemetry API"
    app_env: str = "production"
    version: str = "1.0.0"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    cors_origin: str = "*"

    # empty bootstrap means mock mode: every publish falls back
    kafka_bootstrap: str = ""
    kafka_client_id: str = "wildtrack-telemetry-api"
    telemetry_topic: str = "wildlife-telemetry"
    kafka_retries: int = 8
    kafka_retry_backoff_ms: int = 100
    kafka_message_timeout_ms: int = 30000
    kafka_connect_timeout_s: float = 5.0
    # upper bound on waiting for one delivery report before falling back
    kafka_publish_timeout_s: float = 5.0

    repository_backend: str = "synthetic"
    mock_seed: int = 42
    max_page_size: int = 200
    max_track_points: int = 100

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"
