# panel_router/config.py
import os
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = PACKAGE_DIR.parent

# .env in the project root wins; otherwise search from the working directory
dotenv_path = PROJECT_ROOT_DIR / ".env"
if dotenv_path.exists():
    load_dotenv(dotenv_path)
else:
    load_dotenv()

DEFAULT_SECRET = "your_jwt_secret_key_here"
DEFAULT_ORIGINS = [
    "http://127.0.0.1:5173",
    "http://localhost:5173",
]


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Runtime configuration, passed explicitly to the token codec and URL builders."""

    secret: str = Field(..., description="Secret for psv1 survey tokens.")
    legacy_secret: str = Field(..., description="Secret for legacy JWT survey tokens.")
    base_url: str = "http://localhost:8000"
    database_url: str = f"sqlite+aiosqlite:///{PACKAGE_DIR / 'panel_router.db'}"
    admin_token: str = "static-admin-token"
    allowed_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_ORIGINS))
    log_level: str = "INFO"
    json_logs: bool = False
    sql_echo: bool = False
    create_tables_on_startup: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        jwt_secret = os.getenv("JWT_SECRET", DEFAULT_SECRET)
        env_origins = os.getenv("BACKEND_ALLOWED_ORIGINS")
        origins = (
            [origin.strip() for origin in env_origins.split(",") if origin.strip()]
            if env_origins
            else []
        )

        values = {
            "secret": os.getenv("SURVEY_TOKEN_SECRET") or jwt_secret,
            "legacy_secret": jwt_secret,
            "base_url": os.getenv("BASE_URL", "http://localhost:8000").rstrip("/"),
            "admin_token": os.getenv("ADMIN_TOKEN", "static-admin-token"),
            "allowed_origins": origins or list(DEFAULT_ORIGINS),
            "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
            "json_logs": _env_flag("LOG_JSON"),
            "sql_echo": _env_flag("SQL_ECHO"),
            "create_tables_on_startup": _env_flag("CREATE_TABLES_ON_STARTUP", True),
        }
        database_url = os.getenv("DATABASE_URL")
        if database_url:
            values["database_url"] = database_url
        return cls(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
