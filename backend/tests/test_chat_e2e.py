"""
End-to-end tests for the conversation HTTP surface.

Flow: create conversation -> submit message -> open SSE stream -> done,
with the model replaced by FakeLLMClient.

Strategy:
    - Build a lightweight FastAPI app with ONLY the conversations router
    - Wire it with configure_app_state and in-memory collaborators
    - Use Starlette TestClient; the stream body is read to completion
"""

import asyncio
import json

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

import main
from routers import conversations
from services.database import InMemoryDatabase, seed_users
from services.pending_store import InMemoryPendingStore

from conftest import FakeLLMClient, RecordingEmailService, call, text

BASE = "/api/v1/conversations"


def _build_test_app(rounds=None):
    app = FastAPI()
    main.register_exception_handlers(app)
    app.include_router(conversations.router)

    db = InMemoryDatabase()
    asyncio.run(seed_users(db))
    email = RecordingEmailService()
    main.configure_app_state(
        app,
        db=db,
        llm=FakeLLMClient(rounds),
        email=email,
        pending_store=InMemoryPendingStore(),
    )
    return app, email


def _parse_sse(body: str):
    """Return [(id, payload)] from an SSE body."""
    frames = []
    for block in body.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        frames.append((int(lines["id"]), json.loads(lines["data"])))
    return frames


@pytest.fixture
def client_factory():
    def make(rounds=None):
        app, email = _build_test_app(rounds)
        return TestClient(app), email

    return make


def _send(client, conversation_id, message):
    resp = client.post(f"{BASE}/{conversation_id}/messages", json={"message": message})
    assert resp.status_code == 200, resp.text
    return resp.json()["messageId"]


def _stream(client, conversation_id, token):
    resp = client.get(f"{BASE}/{conversation_id}/messages/{token}/stream")
    assert resp.status_code == 200, resp.text
    assert resp.headers["content-type"].startswith("text/event-stream")
    return _parse_sse(resp.text)


class TestConversationLifecycle:
    """Create and fetch."""

    def test_create_and_get(self, client_factory):
        client, _ = client_factory()
        created = client.post(BASE)
        assert created.status_code == 201
        body = created.json()
        assert body["title"] == "Nueva conversación"
        assert body["isAuthenticated"] is False

        fetched = client.get(f"{BASE}/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["messages"] == []

    def test_unknown_conversation(self, client_factory):
        client, _ = client_factory()
        resp = client.get(f"{BASE}/nope")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND_CONVERSATION"


class TestMessageStream:
    """Submit then stream."""

    def test_plain_turn(self, client_factory):
        client, _ = client_factory([[text("Hola, "), text("soy Procura.")]])
        conversation_id = client.post(BASE).json()["id"]

        frames = _stream(client, conversation_id, _send(client, conversation_id, "hola"))

        assert [i for i, _ in frames] == [1, 2, 3]
        assert [p["type"] for _, p in frames] == ["content", "content", "done"]

        messages = client.get(f"{BASE}/{conversation_id}").json()["messages"]
        assert [(m["role"], m["content"]) for m in messages] == [
            ("user", "hola"),
            ("assistant", "Hola, soy Procura."),
        ]

    def test_tool_turn(self, client_factory):
        rounds = [
            [call(0, id="call_1", name="get_user_requests", arguments="{}")],
            [text("Primero debes autenticarte.")],
        ]
        client, _ = client_factory(rounds)
        conversation_id = client.post(BASE).json()["id"]

        frames = _stream(client, conversation_id, _send(client, conversation_id, "mis solicitudes"))
        assert [p["type"] for _, p in frames] == ["tool_start", "tool_error", "content", "done"]
        assert frames[0][1]["tools"] == ["get_user_requests"]
        assert frames[1][1]["trace"].startswith("Executing tool: get_user_requests")

    def test_token_is_single_use(self, client_factory):
        client, _ = client_factory()
        conversation_id = client.post(BASE).json()["id"]
        token = _send(client, conversation_id, "hola")
        _stream(client, conversation_id, token)

        again = client.get(f"{BASE}/{conversation_id}/messages/{token}/stream")
        assert again.status_code == 404
        assert again.json()["error"]["message"] == "Message not found or expired"

    def test_token_bound_to_its_conversation(self, client_factory):
        client, _ = client_factory()
        first = client.post(BASE).json()["id"]
        second = client.post(BASE).json()["id"]
        token = _send(client, first, "hola")

        assert client.get(f"{BASE}/{second}/messages/{token}/stream").status_code == 404
        assert client.get(f"{BASE}/{first}/messages/{token}/stream").status_code == 200


class TestValidation:
    """Request-level validation happens before anything is queued."""

    def test_empty_message(self, client_factory):
        client, _ = client_factory()
        conversation_id = client.post(BASE).json()["id"]
        resp = client.post(f"{BASE}/{conversation_id}/messages", json={"message": "   "})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_EMPTY_MESSAGE"

    def test_message_too_long(self, client_factory):
        client, _ = client_factory()
        conversation_id = client.post(BASE).json()["id"]
        resp = client.post(f"{BASE}/{conversation_id}/messages", json={"message": "x" * 5000})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_MESSAGE_TOO_LONG"

    def test_submit_to_unknown_conversation(self, client_factory):
        client, _ = client_factory()
        resp = client.post(f"{BASE}/nope/messages", json={"message": "hola"})
        assert resp.status_code == 404


class TestSignInOverHttp:
    """Name, emailed code, authenticated conversation."""

    def test_sign_in(self, client_factory):
        client, email = client_factory()
        conversation_id = client.post(BASE).json()["id"]

        frames = _stream(client, conversation_id, _send(client, conversation_id, "Soy Olvadis"))
        assert [p["type"] for _, p in frames] == ["content", "done"]
        code = email.sent[0]["data"]["otpCode"]

        frames = _stream(client, conversation_id, _send(client, conversation_id, code))
        assert [p["type"] for _, p in frames] == ["content", "authenticated", "done"]
        assert frames[1][1]["user"]["name"] == "Olvadis"

        conversation = client.get(f"{BASE}/{conversation_id}").json()
        assert conversation["isAuthenticated"] is True
        assert conversation["title"] == "Chat con Olvadis"
        assert conversation["user"]["email"] == "olvadis@procura.local"


class TestHealth:
    """Application-level routes and middleware on the real app."""

    def test_health_and_security_headers(self):
        main.configure_app_state(
            main.app,
            db=InMemoryDatabase(),
            llm=FakeLLMClient(),
            email=RecordingEmailService(),
            pending_store=InMemoryPendingStore(),
        )
        main.app.state.redis = None
        resp = TestClient(main.app).get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["checks"] == {"pending_store": "memory"}
        assert resp.headers["X-Frame-Options"] == "DENY"
