"""Application configuration using Pydantic Settings."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # App settings
    app_name: str = "n8n Workflow Builder"
    debug: bool = False

    # n8n Configuration
    # Full REST base, e.g. https://example.app.n8n.cloud/api/v1
    n8n_host: str = ""
    n8n_api_key: str = ""
    request_timeout: float = 30.0

    # GitHub Configuration (node catalog)
    # Optional token for higher rate limits
    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    n8n_repository: str = "n8n-io/n8n"

    # Normalization
    # When False, a connection list without a source node is rejected
    # instead of being attached to a guessed trigger node.
    infer_connection_source: bool = True

    def has_n8n_credentials(self) -> bool:
        """Check if the n8n host and API key are configured."""
        return bool(self.n8n_host and self.n8n_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
