"""Runtime configuration for the app (read from the environment, overridable in tests)."""
import os
from typing import NamedTuple


class Settings(NamedTuple):
    database_url: str
    token_ttl_seconds: int
    log_level: str
    default_transaction_type: str


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./backoffice.db"),
        token_ttl_seconds=int(os.getenv("TOKEN_TTL_SECONDS", str(60 * 60 * 24))),  # 1 day
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        default_transaction_type=os.getenv("DEFAULT_TRANSACTION_TYPE", "income"),
    )


state = load_settings()


def get_settings() -> Settings:
    return state


def override(**changes) -> Settings:
    global state
    state = state._replace(**changes)
    return state


def reset():
    global state
    state = load_settings()
