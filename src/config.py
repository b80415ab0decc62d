from __future__ import annotations

import logging
from functools import cache
from pathlib import Path
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ARTIFACTS_DIR = PROJECT_ROOT / "artifacts"
DB_FILE = ARTIFACTS_DIR / "currency_quotes.db"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class AppSettings(BaseSettings):
    database_url: str = f"sqlite:///{DB_FILE}"

    external_api_url: str = "https://api.fxratesapi.com"
    external_api_key: str = ""
    external_api_timeout: float = 10.0
    external_api_retries: int = 2

    worker_interval: float = 30.0
    shutdown_timeout: float = 30.0

    server_host: str = "localhost"
    server_port: int = 8080

    log_level: str = "INFO"
    supported_currencies: Annotated[list[str], NoDecode] = ["USD", "EUR", "MXN"]
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("supported_currencies", mode="before")
    @classmethod
    def _split_currencies(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            return [str(code).strip().upper() for code in value if str(code).strip()]
        return value

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


@cache
def config() -> AppSettings:
    return AppSettings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
