from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "comanda"
    POSTGRES_USER: str = "comanda"
    POSTGRES_PASSWORD: str = "comanda"
    # Full SQLAlchemy URL, takes precedence over the POSTGRES_* parts
    DATABASE_URL: Optional[str] = None
    RUN_MIGRATIONS: bool = True

    JWT_SECRET: str = "change-me-comanda-dev-secret-0000"
    JWT_ALG: str = "HS256"

    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "America/Sao_Paulo"

    NOTIFICATION_BUFFER_SIZE: int = 100
    SSE_HEARTBEAT_SECONDS: float = 30.0

    # When an amount is omitted on payment: False charges totalAmount,
    # True charges only what is still owed.
    PAYMENT_DEFAULT_TO_REMAINING: bool = False

    KITCHEN_DEFAULT_LIMIT: int = 50
    KITCHEN_AVERAGE_SAMPLE: int = 10
    # Attempts at creating an order whose ticket number collided
    TICKET_NUMBER_RETRIES: int = 3

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

@lru_cache
def get_settings() -> Settings:
    return Settings()
