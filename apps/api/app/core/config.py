from typing import Literal, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings


MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_REFRESH_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "maison-darin-api"
    JWT_AUDIENCE: str = "maison-darin-client"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=15, gt=0)
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=7, gt=0)
    MAX_SESSION_HOURS: int = Field(default=24, gt=0)
    BCRYPT_ROUNDS: int = Field(default=12, ge=12, le=15)
    MAX_LOGIN_ATTEMPTS: int = Field(default=5, gt=0)
    LOCKOUT_MINUTES: int = Field(default=30, gt=0)
    REVOCATION_BACKEND: Literal["memory", "database", "redis"] = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_TIMEOUT_SECONDS: float = Field(default=2.0, gt=0)
    RATE_LIMIT_ENABLED: bool = True
    LOGIN_RATE_LIMIT: str = "5 per 15 minutes"
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    ENVIRONMENT: Literal["development", "production", "test"] = "development"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @field_validator("JWT_SECRET", "JWT_REFRESH_SECRET")
    @classmethod
    def _secret_min_length(cls, value: str, info):
        if len(value) < MIN_SECRET_LENGTH:
            raise ValueError(
                f"{info.field_name} must be at least {MIN_SECRET_LENGTH} characters long"
            )
        return value

    @model_validator(mode="after")
    def _distinct_secrets(self):
        if self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            raise ValueError("JWT_REFRESH_SECRET must differ from JWT_SECRET")
        return self

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def log_json(self) -> bool:
        if self.LOG_JSON is not None:
            return self.LOG_JSON
        return self.ENVIRONMENT == "production"


settings = Settings()
