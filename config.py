from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional, Tuple

from dotenv import load_dotenv


BACKENDS = ("sqlite", "postgres")


@dataclass(frozen=True)
class Settings:
    db_backend: str = "sqlite"
    db_path: str = "taixiu.db"
    db_params: dict = field(default_factory=dict)
    db_pool_max: int = 10
    start_balance: int = 1000
    history_limit: int = 20
    password_pepper: str = ""
    admin_ids: FrozenSet[Tuple[str, str]] = frozenset()
    telegram_token: Optional[str] = None
    discord_token: Optional[str] = None
    log_level: str = "INFO"


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {value}")
    return value


def parse_admin_ids(raw: Optional[str]) -> FrozenSet[Tuple[str, str]]:
    """
    Parse ``ADMIN_IDS``: comma separated ``provider:id`` entries, e.g.
    ``telegram:12345,discord:67890``.
    """

    if not raw:
        return frozenset()

    admins = set()
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        provider, sep, user_id = entry.partition(":")
        if not sep or not provider or not user_id:
            raise ValueError(f"ADMIN_IDS entry must look like provider:id, got {entry!r}")
        admins.add((provider.strip().lower(), user_id.strip()))
    return frozenset(admins)


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build `Settings` from the environment.

    When `env` is omitted, `.env` is loaded first and `os.environ` is used.
    """

    if env is None:
        load_dotenv()
        env = os.environ

    backend = env.get("DB_BACKEND", "sqlite").strip().lower()
    if backend not in BACKENDS:
        raise ValueError(f"DB_BACKEND must be one of {BACKENDS}, got {backend!r}")

    db_params = {}
    if backend == "postgres":
        db_params = {
            "host": env.get("DB_HOST", "localhost"),
            "port": _get_int(env, "DB_PORT", 5432, minimum=1),
            "dbname": env.get("DB_NAME", "taixiu"),
            "user": env.get("DB_USER", "postgres"),
            "password": env.get("DB_PASSWORD", ""),
        }

    return Settings(
        db_backend=backend,
        db_path=env.get("DB_PATH", "taixiu.db"),
        db_params=db_params,
        db_pool_max=_get_int(env, "DB_POOL_MAX", 10, minimum=1),
        start_balance=_get_int(env, "START_BALANCE", 1000),
        history_limit=_get_int(env, "HISTORY_LIMIT", 20, minimum=1),
        password_pepper=env.get("PASSWORD_PEPPER", ""),
        admin_ids=parse_admin_ids(env.get("ADMIN_IDS")),
        telegram_token=env.get("TELEGRAM_TOKEN") or None,
        discord_token=env.get("DISCORD_TOKEN") or None,
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
