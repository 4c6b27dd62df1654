"""
Configuration settings for NodeFlow.
"""

from pydantic_settings import BaseSettings
from typing import Dict, Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    APP_NAME: str = "NodeFlow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Provider credentials (request-supplied keys take precedence)
    OPENAI_API_KEY: Optional[str] = None
    ANTHROPIC_API_KEY: Optional[str] = None
    GOOGLE_API_KEY: Optional[str] = None
    COMPOSIO_API_KEY: Optional[str] = None
    TOOL_API_BASE_URL: str = "https://backend.composio.dev"

    # Timeouts (seconds)
    LLM_TIMEOUT: float = 60.0
    TOOL_TIMEOUT: float = 60.0

    # LLM retry defaults
    LLM_MAX_RETRIES: int = 2
    LLM_RETRY_BASE_DELAY_MS: int = 1000
    LLM_RETRY_MAX_DELAY_MS: int = 10000

    # Default run options
    HALT_ON_NODE_ERROR: bool = False
    STREAM_NODE_LOGS: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

    def api_keys(self) -> Dict[str, str]:
        """Server-side provider keys in the form the client factory expects."""
        keys = {
            "openai_api_key": self.OPENAI_API_KEY,
            "anthropic_api_key": self.ANTHROPIC_API_KEY,
            "google_api_key": self.GOOGLE_API_KEY,
            "composio_api_key": self.COMPOSIO_API_KEY,
        }
        return {name: value for name, value in keys.items() if value}


# Global settings instance
settings = Settings()
