import sys
import pathlib

BASE_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from chat_relay.config import load_settings
from chat_relay.security import resolve_allowed_origin, verify_shared_secret

ENV_VARS = (
    "COZE_API_KEY",
    "COZE_BASE_URL",
    "COZE_REGION",
    "ALLOWED_ORIGINS",
    "APP_SHARED_SECRET",
    "COZE_FETCH_DEFAULT_PATH",
    "COZE_FETCH_ALLOWED_PREFIXES",
    "LOG_LEVEL",
)


def _clear_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    _clear_env(monkeypatch)
    settings = load_settings()
    assert settings.coze_api_key is None
    assert settings.coze_base_url == "https://api.coze.cn"
    assert settings.allowed_origins == []
    assert settings.shared_secret is None
    assert settings.fetch_default_path == "/v3/chat"
    assert settings.fetch_allowed_prefixes == ("/v3/",)
    assert settings.forwarded_fields == ("conversation_id", "query", "meta", "stream", "user_id")


def test_env_overrides(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("COZE_API_KEY", "pat_x")
    monkeypatch.setenv("COZE_REGION", "com")
    monkeypatch.setenv("ALLOWED_ORIGINS", " https://a.example , ,https://b.example")
    monkeypatch.setenv("APP_SHARED_SECRET", "s3cret")
    monkeypatch.setenv("COZE_FETCH_ALLOWED_PREFIXES", "/v3/,/v1/conversation")
    settings = load_settings()
    assert settings.coze_api_key == "pat_x"
    assert settings.coze_base_url == "https://api.coze.com"
    assert settings.allowed_origins == ["https://a.example", "https://b.example"]
    assert settings.shared_secret == "s3cret"
    assert settings.fetch_allowed_prefixes == ("/v3/", "/v1/conversation")


def test_explicit_base_url_wins_over_region(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("COZE_REGION", "com")
    monkeypatch.setenv("COZE_BASE_URL", "https://proxy.internal/")
    assert load_settings().coze_base_url == "https://proxy.internal"


def test_unknown_region_falls_back(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("COZE_REGION", "mars")
    assert load_settings().coze_base_url == "https://api.coze.cn"


def test_resolve_allowed_origin():
    assert resolve_allowed_origin([], "https://x.example") == "*"
    assert resolve_allowed_origin(["https://a.example"], None) == "https://a.example"
    assert resolve_allowed_origin(["https://a.example", "https://b.example"], "https://b.example") == "https://b.example"


def test_verify_shared_secret():
    assert verify_shared_secret(None, None) is True
    assert verify_shared_secret("", "anything") is True
    assert verify_shared_secret("s3cret", None) is False
    assert verify_shared_secret("s3cret", "") is False
    assert verify_shared_secret("s3cret", "s3cre") is False
    assert verify_shared_secret("s3cret", "s3crex") is False
    assert verify_shared_secret("s3cret", "s3cret") is True
