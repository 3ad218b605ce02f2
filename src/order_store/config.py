import os
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    POSTGRES_USER: str         = os.getenv("POSTGRES_USER", "postgres")
    POSTGRES_PASSWORD: str     = os.getenv("POSTGRES_PASSWORD", "postgres")
    POSTGRES_DB: str           = os.getenv("POSTGRES_DB", "l0")
    POSTGRES_HOST: str         = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: int         = int(os.getenv("POSTGRES_PORT", "5432"))
    DB_ECHO: bool              = False

    RABBIT_USER: str           = os.getenv("RABBIT_USER", "guest")
    RABBIT_PASSWORD: str       = os.getenv("RABBIT_PASSWORD", "guest")
    RABBIT_HOST: str           = os.getenv("RABBIT_HOST", "localhost")
    RABBIT_PORT: int           = int(os.getenv("RABBIT_PORT", "5672"))
    RABBIT_RETRY_ATTEMPTS: int = 5
    RABBIT_RETRY_DELAY: int    = 2
    ORDERS_EXCHANGE: str       = "orders_exchange"
    ORDERS_QUEUE: str          = "orders"

    REDIS_HOST: str            = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int            = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int              = 0

    HTTP_HOST: str             = "0.0.0.0"
    HTTP_PORT: int             = 8080
    LOG_LEVEL: str             = "INFO"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://"
            f"{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )

    @property
    def rabbit_url(self) -> str:
        return f"amqp://{self.RABBIT_USER}:{self.RABBIT_PASSWORD}@{self.RABBIT_HOST}:{self.RABBIT_PORT}/"

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
