"""
Application configuration settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Pydantic v2 settings configuration
    model_config = SettingsConfigDict(
        env_file=".env.server", case_sensitive=True, extra="ignore")

    PROJECT_NAME: str = "Receipt Validation Server"
    VERSION: str = "1.0.0"
    DESCRIPTION: str = "validates App Store subscription receipts for the mobile app"

    API_V1_STR: str = "/api/v1"

    # Server settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = True


settings = Settings()

# Receipts are posted from the app client, not from a browser page
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
