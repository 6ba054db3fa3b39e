import sys
import json
import pathlib

BASE_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

import httpx
import pytest
from fastapi.testclient import TestClient

from chat_relay.app import create_app
from chat_relay.config import Settings
from chat_relay.errors import RelayError
import chat_relay.services.coze_fetch as coze_fetch


SSE_BODY = b"event: conversation.message.delta\ndata: {\"content\":\"hi\"}\n\nevent: done\ndata: \"[DONE]\"\n\n"


def install_transport(monkeypatch, handler):
    seen = []

    def _handler(request: httpx.Request):
        seen.append(request)
        return handler(request)

    def _build(settings):
        return httpx.AsyncClient(base_url=settings.coze_base_url, transport=httpx.MockTransport(_handler))

    monkeypatch.setattr(coze_fetch, "build_http_client", _build)
    return seen


def make_client(**overrides) -> TestClient:
    params = {"coze_api_key": "test-key", "coze_base_url": "https://api.coze.cn"}
    params.update(overrides)
    return TestClient(create_app(Settings(**params)))


def test_sse_is_passed_through_verbatim(monkeypatch):
    seen = install_transport(
        monkeypatch,
        lambda request: httpx.Response(200, headers={"content-type": "text/event-stream"}, content=SSE_BODY),
    )
    resp = make_client().post("/api/coze-fetch", json={"query": "hi", "user_id": "u", "stream": True})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.content == SSE_BODY

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.coze.cn/v3/chat"
    assert request.headers["authorization"] == "Bearer test-key"


def test_fields_outside_allow_list_are_not_forwarded(monkeypatch):
    seen = install_transport(monkeypatch, lambda request: httpx.Response(200, json={"code": 0}))
    body = {
        "conversation_id": "c1",
        "query": "hello",
        "meta": {"k": "v"},
        "stream": False,
        "user_id": "u1",
        "bot_id": "should-not-pass",
        "auto_save_history": True,
        "custom_variables": {"admin": True},
    }
    resp = make_client().post("/api/coze-fetch", json=body)
    assert resp.status_code == 200
    assert resp.json() == {"code": 0}

    forwarded = json.loads(seen[0].content)
    assert forwarded == {
        "conversation_id": "c1",
        "query": "hello",
        "meta": {"k": "v"},
        "stream": False,
        "user_id": "u1",
    }


def test_non_sse_success_is_returned_verbatim(monkeypatch):
    install_transport(
        monkeypatch,
        lambda request: httpx.Response(201, headers={"content-type": "text/plain"}, content=b"plain body"),
    )
    resp = make_client().post("/api/coze-fetch", json={"query": "hi", "stream": True})
    assert resp.status_code == 201
    assert resp.text == "plain body"
    assert resp.headers["content-type"].startswith("text/plain")


def test_path_override_within_prefix(monkeypatch):
    seen = install_transport(monkeypatch, lambda request: httpx.Response(200, json={}))
    resp = make_client().post("/api/coze-fetch", json={}, headers={"X-Coze-Path": "/v3/chat/retrieve"})
    assert resp.status_code == 200
    assert seen[0].url.path == "/v3/chat/retrieve"


@pytest.mark.parametrize("path", ["/v1/files/upload", "/v3/../admin", "https://evil.example/v3/chat", "//evil.example/v3/", "v3/chat"])
def test_path_override_outside_prefix_is_rejected(monkeypatch, path):
    seen = install_transport(monkeypatch, lambda request: httpx.Response(200, json={}))
    resp = make_client().post("/api/coze-fetch", json={}, headers={"X-Coze-Path": path})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Upstream path not allowed"}
    assert seen == []


def test_upstream_error_status_is_bad_gateway(monkeypatch):
    install_transport(monkeypatch, lambda request: httpx.Response(401, json={"msg": "bad token"}))
    resp = make_client().post("/api/coze-fetch", json={"query": "hi"})
    assert resp.status_code == 502
    data = resp.json()
    assert data["error"] == "Coze API call failed"
    assert data["upstream_status"] == 401
    assert "bad token" in data["detail"]


def test_transport_error_is_bad_gateway(monkeypatch):
    def _down(request):
        raise httpx.ConnectError("connection refused", request=request)

    install_transport(monkeypatch, _down)
    client = make_client()
    resp = client.post("/api/coze-fetch", json={"query": "hi"})
    assert resp.status_code == 502
    assert resp.json()["detail"] == "connection refused"
    assert "stack" not in resp.json()

    resp = client.post("/api/coze-fetch", json={"query": "hi"}, headers={"X-Debug": "1"})
    assert "ConnectError" in resp.json()["stack"]


def test_fetch_auth_and_preflight(monkeypatch):
    seen = install_transport(monkeypatch, lambda request: httpx.Response(200, json={}))
    client = make_client(shared_secret="s3cret")

    resp = client.options("/api/coze-fetch")
    assert resp.status_code == 204
    assert "X-Coze-Path" in resp.headers["access-control-allow-headers"]

    assert client.get("/api/coze-fetch").status_code == 405
    assert client.post("/api/coze-fetch", json={"query": "hi"}).status_code == 401
    assert seen == []

    resp = client.post("/api/coze-fetch", json={"query": "hi"}, headers={"X-App-Auth": "s3cret"})
    assert resp.status_code == 200
    assert len(seen) == 1


def test_fetch_missing_api_key(monkeypatch):
    seen = install_transport(monkeypatch, lambda request: httpx.Response(200, json={}))
    resp = make_client(coze_api_key=None).post("/api/coze-fetch", json={"query": "hi"})
    assert resp.status_code == 500
    assert seen == []


def test_filter_payload_and_resolve_path():
    assert coze_fetch.filter_payload({"a": 1, "query": "q"}, ("query",)) == {"query": "q"}

    settings = Settings(fetch_default_path="/v3/chat", fetch_allowed_prefixes=("/v3/", "/v1/conversation"))
    assert coze_fetch.resolve_upstream_path(settings, None) == "/v3/chat"
    assert coze_fetch.resolve_upstream_path(settings, "") == "/v3/chat"
    assert coze_fetch.resolve_upstream_path(settings, "/v1/conversation/create") == "/v1/conversation/create"
    with pytest.raises(RelayError) as excinfo:
        coze_fetch.resolve_upstream_path(settings, "/v1/bot/publish")
    assert excinfo.value.status_code == 400
