import base64
import binascii
import json
from typing import Annotated, List

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

MIN_JWT_KEY_BYTES = 32

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def decode_jwt_key(raw: str) -> bytes:
    """Signing key bytes: base64 when the value is valid base64, raw UTF-8 otherwise."""
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        return raw.encode("utf-8")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_ignore_empty=True, extra="ignore")

    DATABASE_URL: str
    SQL_ECHO: bool = False

    # Security
    JWT_KEY: SecretStr
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7
    COOKIE_SECURE: bool = False

    CORS_ORIGINS: Annotated[List[str], NoDecode] = DEFAULT_CORS_ORIGINS
    LOG_LEVEL: str = "INFO"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def split_cors_origins(cls, v):
        if isinstance(v, str):
            if v.startswith("["):
                return json.loads(v)
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("JWT_KEY")
    @classmethod
    def check_jwt_key_length(cls, v: SecretStr) -> SecretStr:
        size = len(decode_jwt_key(v.get_secret_value()))
        if size < MIN_JWT_KEY_BYTES:
            raise ValueError(
                f"JWT_KEY is too short ({size} bytes). "
                f"Provide at least {MIN_JWT_KEY_BYTES} bytes (e.g. `openssl rand -base64 48`)."
            )
        return v

    @property
    def jwt_key_bytes(self) -> bytes:
        return decode_jwt_key(self.JWT_KEY.get_secret_value())


def load_settings() -> Settings:
    # Values already in the process environment win over the .env file
    load_dotenv()
    return Settings()  # type: ignore[call-arg]
