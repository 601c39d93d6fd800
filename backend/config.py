"""Settings loaded from environment variables (+ optional .env)."""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

SQLITE_PREFIX = "sqlite:///"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.split(",") if p.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///notton.db"
    port: int = 4000
    default_user_email: str = "demo@notton.ai"
    default_user_id: Optional[str] = None
    auto_seed: bool = True
    anthropic_api_key: Optional[str] = None
    assistant_model: str = "claude-sonnet-4-5"
    assistant_max_tokens: int = 1024
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"

    @property
    def database_path(self) -> str:
        """Filesystem path of the SQLite database behind database_url."""
        if self.database_url.startswith(SQLITE_PREFIX):
            return self.database_url[len(SQLITE_PREFIX):]
        return self.database_url


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL") or Settings.database_url,
        port=_env_int("PORT", Settings.port),
        default_user_email=os.getenv("DEFAULT_USER_EMAIL") or Settings.default_user_email,
        default_user_id=os.getenv("DEFAULT_USER_ID") or None,
        auto_seed=_env_bool("AUTO_SEED", True),
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
        assistant_model=os.getenv("ASSISTANT_MODEL") or Settings.assistant_model,
        assistant_max_tokens=_env_int("ASSISTANT_MAX_TOKENS", Settings.assistant_max_tokens),
        cors_origins=_env_list("CORS_ORIGINS", ["http://localhost:5173"]),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
