from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from the environment / .env.

    Notes:
        - JWT_SECRET has no default; the app fails fast without it.
        - Everything else falls back to local-development values.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    JWT_SECRET: str = Field(..., description="HS256 signing secret for access tokens")
    TOKEN_TTL_HOURS: int = Field(10, description="Access token validity window in hours")
    BCRYPT_ROUNDS: int = Field(10, ge=4, le=31, description="bcrypt work factor")

    DATABASE_URL: str = Field("mongodb://localhost:27017/", description="MongoDB connection string")
    DATABASE_NAME: str = Field("socialMediaPlatform", description="MongoDB database name")

    HOST: str = Field("0.0.0.0", description="Bind address")
    PORT: int = Field(5000, description="Listening port")
    UPLOAD_DIR: str = Field("uploads", description="Directory receiving post images")
    LOG_LEVEL: str = Field("INFO", description="Root log level")
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")

    ENFORCE_ADMIN_ROLE: bool = Field(False, description="Require the admin role on /api/admin routes")
    ADMIN_USERNAMES: List[str] = Field(default_factory=list, description="Usernames registered with the admin role")


@lru_cache()
def get_settings() -> Settings:
    """Return a cached singleton `Settings` instance."""
    return Settings()
