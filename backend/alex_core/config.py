from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from .tiers import TIER_ORDER

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TRUE_VALUES = {"1", "true", "yes", "on"}


def load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[2]
    for candidate in (repo_root / ".env", repo_root / "backend/.env"):
        if candidate.exists():
            load_local_env_file(candidate)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_int(name: str) -> int | None:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _tier_overrides(suffix: str) -> dict[str, int]:
    overrides: dict[str, int] = {}
    for tier in TIER_ORDER:
        value = _env_int(f"ALEX_TIER_{tier.upper()}_{suffix}")
        if value is not None:
            overrides[tier] = value
    return overrides


@dataclass(frozen=True)
class Settings:
    db_path: str
    taxonomy_path: str | None = None
    session_max_age: timedelta = timedelta(hours=24)
    reap_interval_seconds: float = 900.0
    upstream_timeout_seconds: float = 25.0
    allow_demo: bool = False
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-sonnet-latest"
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    anthropic_api_version: str = "2023-06-01"
    allowed_origins: tuple[str, ...] = ("http://localhost:3000",)
    tier_max_queries: dict[str, int] = field(default_factory=dict)
    tier_prices: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "Settings":
        db_path = os.getenv(
            "ALEX_DB_PATH",
            str(Path(__file__).resolve().parents[1] / "alex.sqlite"),
        )
        origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
        return cls(
            db_path=db_path,
            taxonomy_path=(os.getenv("ALEX_TAXONOMY_PATH") or "").strip() or None,
            session_max_age=timedelta(hours=_env_float("ALEX_SESSION_MAX_AGE_HOURS", 24.0)),
            reap_interval_seconds=_env_float("ALEX_SESSION_REAP_INTERVAL_SECONDS", 900.0),
            upstream_timeout_seconds=_env_float("ALEX_UPSTREAM_TIMEOUT_SECONDS", 25.0),
            allow_demo=_env_bool("ALEX_ALLOW_DEMO"),
            anthropic_api_key=(os.getenv("ANTHROPIC_API_KEY") or "").strip(),
            anthropic_model=(os.getenv("ANTHROPIC_MODEL") or "claude-3-5-sonnet-latest").strip(),
            anthropic_base_url=os.getenv("ANTHROPIC_API_BASE_URL", "https://api.anthropic.com/v1").rstrip("/"),
            anthropic_api_version=os.getenv("ANTHROPIC_API_VERSION", "2023-06-01"),
            allowed_origins=tuple(origin.strip() for origin in origins if origin.strip()),
            tier_max_queries=_tier_overrides("MAX_QUERIES"),
            tier_prices=_tier_overrides("PRICE"),
        )
