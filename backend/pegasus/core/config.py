"""
Application configuration using Pydantic Settings
All configuration values loaded from environment variables
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings - loaded from environment / .env"""

    # Application
    APP_NAME: str = "Pegasus Support API"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    MONGODB_URL: str
    TICKETS_DATABASE_NAME: str = "pegasus_tickets"
    AUTH_DATABASE_NAME: str = "pegasus_auth"
    USAGE_DATABASE_NAME: str = "test"

    # "pooled": one client per process, opened in the app lifespan
    # "per_request": a client is opened and closed around every request
    STORE_CONNECTION_MODE: str = "pooled"
    MONGO_MAX_POOL_SIZE: int = 50
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 5000

    # Token accounting
    DEFAULT_TOKEN_LIMIT: int = 100000

    # Notifications
    NOTIFICATION_LIST_LIMIT: int = 50

    # Security
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # CORS (comma-separated origins)
    CORS_ORIGINS: str = "*"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def uses_pooled_connections(self) -> bool:
        return self.STORE_CONNECTION_MODE.lower() != "per_request"


# Create settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings"""
    return settings
