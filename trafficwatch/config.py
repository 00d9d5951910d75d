"""Configuration for trafficwatch."""

from pydantic_settings import BaseSettings, SettingsConfigDict

from .resilience.retry import RetryConfig


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="TRAFFICWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Gateway (frontend and API share one ingress per cluster)
    api_gateway_url: str = "http://localhost:8080"

    # Health Monitor
    health_path: str = "/health"
    health_check_interval: float = 5.0  # seconds
    health_failure_threshold: int = 2  # consecutive failures
    health_initial_delay: float = 5.0  # grace period after start
    health_probe_timeout: float = 3.0  # seconds

    # Request Retry Defaults
    request_timeout: float = 20.0  # per attempt
    retry_base_delay: float = 3.0
    retry_max_delay: float = 30.0
    retry_max_attempts: int = 10

    # Feed Polling
    poll_interval: float = 10.0  # seconds

    log_level: str = "INFO"

    def default_retry_config(self) -> RetryConfig:
        """Build the default retry policy from settings."""
        return RetryConfig(
            timeout=self.request_timeout,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            max_attempts=self.retry_max_attempts,
        )


settings = Settings()
