# ecosnap/config.py — runtime settings resolved from env (.env loaded by main)
from __future__ import annotations
import os
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any


@dataclass
class Settings:
    openai_api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    database_url: Optional[str] = None
    decisions_path: Optional[str] = None   # JSON file backend, e.g. data/decisions.json
    jwt_secret: str = "dev-secret-key-change-in-production"
    history_limit: int = 30                # messages kept per user key (system prompt included)
    context_turns: int = 6                 # turns sent to the model with each reply
    cache_ttl: float = 3600.0
    max_concurrency: int = 5
    calls_per_window: int = 10
    window_seconds: float = 1.0
    rate_limit: int = 50                   # chat requests per caller per rate_window
    rate_window: float = 60.0
    log_level: str = "INFO"

    def asdict(self) -> Dict[str, Any]:
        d = asdict(self)
        # never log secrets
        for k in ("openai_api_key", "jwt_secret", "database_url"):
            if d.get(k):
                d[k] = "***"
        return d


def _int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default

def _float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def load_settings() -> Settings:
    """Assemble settings from env vars + defaults. Bad numbers keep their default."""
    s = Settings()
    s.openai_api_key = os.getenv("OPENAI_API_KEY") or None
    s.model = os.getenv("MODEL", s.model)
    s.database_url = os.getenv("DATABASE_URL") or None
    s.decisions_path = os.getenv("DECISIONS_PATH") or None
    s.jwt_secret = os.getenv("JWT_SECRET", s.jwt_secret)

    s.history_limit = max(2, _int("ECOSNAP_HISTORY_LIMIT", s.history_limit))
    s.context_turns = max(1, _int("ECOSNAP_CONTEXT_TURNS", s.context_turns))
    s.cache_ttl = _float("ECOSNAP_CACHE_TTL", s.cache_ttl)
    s.max_concurrency = max(1, _int("ECOSNAP_MAX_CONCURRENCY", s.max_concurrency))
    s.calls_per_window = max(1, _int("ECOSNAP_CALLS_PER_WINDOW", s.calls_per_window))
    s.window_seconds = _float("ECOSNAP_WINDOW_SECONDS", s.window_seconds)
    s.rate_limit = max(1, _int("ECOSNAP_RATE_LIMIT", s.rate_limit))
    s.rate_window = _float("ECOSNAP_RATE_WINDOW", s.rate_window)
    s.log_level = os.getenv("LOG_LEVEL", s.log_level).upper()
    return s
