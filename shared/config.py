from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None or val.strip() == "":
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val.strip()


def _parse_origins(raw: str) -> list[str]:
    raw = (raw or "").strip()
    if not raw or raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI chat assistant. "
    "Be concise, correct, and ask at most one clarifying question when needed."
)


@dataclass(frozen=True)
class Settings:
    database_url: str
    secret_key: str
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 8
    completion_timeout_seconds: float = 30.0
    history_window: int = 20
    max_message_chars: int = 4000
    turn_wait_seconds: float = 0.0  # 0 = queue without limit
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    cors_origins: tuple[str, ...] = ("*",)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=_get_env("DATABASE_URL", "sqlite:///./chat.db"),
            secret_key=_get_env("SECRET_KEY"),
            openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
            openai_model=_get_env("OPENAI_MODEL", "gpt-4o-mini"),
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            jwt_algorithm=_get_env("JWT_ALGORITHM", "HS256"),
            access_token_expire_minutes=int(_get_env("ACCESS_TOKEN_EXPIRE_MINUTES", "480")),
            completion_timeout_seconds=float(_get_env("COMPLETION_TIMEOUT_SECONDS", "30")),
            history_window=int(_get_env("HISTORY_WINDOW", "20")),
            max_message_chars=int(_get_env("MAX_MESSAGE_CHARS", "4000")),
            turn_wait_seconds=float(_get_env("TURN_WAIT_SECONDS", "0")),
            system_prompt=os.getenv("SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
            cors_origins=tuple(_parse_origins(os.getenv("CORS_ORIGINS", "*"))),
            log_level=_get_env("LOG_LEVEL", "INFO").upper(),
        )
