from ecosnap.ai_router import CompletionClient
from ecosnap.config import Settings, load_settings


def test_defaults(monkeypatch):
    for name in ("OPENAI_API_KEY", "MODEL", "DATABASE_URL", "DECISIONS_PATH", "ECOSNAP_HISTORY_LIMIT",
                 "ECOSNAP_CONTEXT_TURNS", "ECOSNAP_CACHE_TTL", "ECOSNAP_MAX_CONCURRENCY", "ECOSNAP_CALLS_PER_WINDOW",
                 "ECOSNAP_WINDOW_SECONDS", "ECOSNAP_RATE_LIMIT", "ECOSNAP_RATE_WINDOW"):
        monkeypatch.delenv(name, raising=False)
    s = load_settings()
    assert s.openai_api_key is None
    assert s.model == "gpt-4o-mini"
    assert (s.history_limit, s.context_turns, s.cache_ttl) == (30, 6, 3600.0)
    assert (s.max_concurrency, s.calls_per_window, s.window_seconds) == (5, 10, 1.0)
    assert (s.rate_limit, s.rate_window) == (50, 60.0)


def test_env_overrides_and_bad_numbers(monkeypatch):
    monkeypatch.setenv("MODEL", "gpt-4o")
    monkeypatch.setenv("ECOSNAP_HISTORY_LIMIT", "1")
    monkeypatch.setenv("ECOSNAP_CACHE_TTL", "soon")
    monkeypatch.setenv("ECOSNAP_RATE_LIMIT", "7")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    s = load_settings()
    assert s.model == "gpt-4o"
    assert s.history_limit == 2
    assert s.cache_ttl == 3600.0
    assert s.rate_limit == 7
    assert s.log_level == "DEBUG"


def test_asdict_masks_secrets():
    d = Settings(openai_api_key="sk-live", database_url="postgres://u:p@h/db").asdict()
    assert d["openai_api_key"] == "***"
    assert d["database_url"] == "***"
    assert d["jwt_secret"] == "***"
    assert d["decisions_path"] is None
    assert d["model"] == "gpt-4o-mini"


def test_client_model_defaults_to_settings():
    assert CompletionClient(create=lambda messages, **params: "").model == Settings().model
