"""Tests for the FastAPI adapter: routes exercised through TestClient."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import encode, github_push_payload, github_signature
from hookgate.adapters.fastapi import register_webhook_route, to_fastapi, to_response
from hookgate.providers.github import github, push
from hookgate.webhooks import ProcessResult

SECRET = "gh-secret"


def _client(webhook, **options) -> TestClient:
    app = FastAPI()
    register_webhook_route(app, "/webhooks/github", webhook, **options)
    return TestClient(app)


def _signed(body: bytes, event: str = "push", delivery: str = "guid-1") -> dict:
    return {
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": delivery,
        "X-Hub-Signature-256": github_signature(body, SECRET),
        "Content-Type": "application/json",
    }


class TestToResponse:
    def test_204_has_empty_body(self):
        response = to_response(ProcessResult(status=204, event_type="ping"))
        assert response.status_code == 204
        assert response.body == b""

    def test_result_body_used(self):
        response = to_response(ProcessResult(status=401, body={"ok": False, "error": "Signature verification failed"}))
        assert response.status_code == 401
        assert b"Signature verification failed" in response.body

    def test_default_body(self):
        response = to_response(ProcessResult(status=200, event_type="push"))
        assert response.body == b'{"ok":true,"eventType":"push"}'


class TestWebhookRoute:
    def test_valid_push(self):
        received = []
        client = _client(github(secret=SECRET).event(push, lambda payload, ctx: received.append(payload)))
        body = encode(github_push_payload())

        response = client.post("/webhooks/github", content=body, headers=_signed(body))

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert received[0].ref == "refs/heads/main"

    def test_bad_signature(self):
        client = _client(github(secret=SECRET).event(push, lambda payload, ctx: None))
        body = encode(github_push_payload())
        headers = _signed(body)
        headers["X-Hub-Signature-256"] = "sha256=" + "0" * 64

        response = client.post("/webhooks/github", content=body, headers=headers)

        assert response.status_code == 401
        assert response.json() == {"ok": False, "error": "Signature verification failed"}

    def test_unhandled_event_is_204(self):
        client = _client(github(secret=SECRET).event(push, lambda payload, ctx: None))
        response = client.post("/webhooks/github", content=b"{}", headers={"X-GitHub-Event": "ping"})
        assert response.status_code == 204
        assert response.content == b""

    def test_secret_option(self):
        client = _client(github().event(push, lambda payload, ctx: None), secret=SECRET)
        body = encode(github_push_payload())
        assert client.post("/webhooks/github", content=body, headers=_signed(body)).status_code == 200

    def test_body_limit_option(self):
        client = _client(github(secret=SECRET).event(push, lambda payload, ctx: None), max_body_bytes=16)
        body = encode(github_push_payload())
        response = client.post("/webhooks/github", content=body, headers=_signed(body))
        assert response.status_code == 413

    def test_on_success_called(self):
        succeeded = []
        client = _client(
            github(secret=SECRET).event(push, lambda payload, ctx: None),
            on_success=succeeded.append,
        )
        body = encode(github_push_payload())
        client.post("/webhooks/github", content=body, headers=_signed(body))
        assert succeeded == ["push"]

    def test_on_success_failure_ignored(self):
        def on_success(event_type):
            raise RuntimeError("metrics down")

        client = _client(github(secret=SECRET).event(push, lambda payload, ctx: None), on_success=on_success)
        body = encode(github_push_payload())
        assert client.post("/webhooks/github", content=body, headers=_signed(body)).status_code == 200

    def test_on_success_not_called_on_failure(self):
        succeeded = []
        client = _client(github(secret=SECRET).event(push, lambda payload, ctx: None), on_success=succeeded.append)
        client.post("/webhooks/github", content=b"{}", headers={"X-GitHub-Event": "push"})
        assert succeeded == []

    def test_route_observer(self):
        completed = []
        client = _client(
            github(secret=SECRET).event(push, lambda payload, ctx: None),
            observer={"on_completed": lambda event: completed.append(event.status)},
        )
        body = encode(github_push_payload())
        client.post("/webhooks/github", content=body, headers=_signed(body))
        assert completed == [200]

    def test_endpoint_name(self):
        endpoint = to_fastapi(github(secret=SECRET))
        assert endpoint.__name__ == "github_webhook"

    def test_get_not_allowed(self):
        client = _client(github(secret=SECRET).event(push, lambda payload, ctx: None))
        assert client.get("/webhooks/github").status_code == 405
