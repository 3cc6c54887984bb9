import pytest
from fastapi.testclient import TestClient

import slide_tutor.server as server

from conftest import ScriptedLLM, text_reply, tool_reply
from slide_tutor.server import create_app, get_llm, get_store


@pytest.fixture
def llm(settings):
    return ScriptedLLM(settings)


@pytest.fixture
def client(llm, store):
    app = create_app()
    app.dependency_overrides[get_llm] = lambda: llm
    app.dependency_overrides[get_store] = lambda: store
    return TestClient(app)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_context(client):
    response = client.get("/api/context", params={"pdfUrl": "/sample.pdf", "page": "8"})
    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "The Observer Pattern"
    assert "observer pattern" in data["keywords"]
    assert "current_page" not in data


def test_context_missing_parameters(client):
    response = client.get("/api/context", params={"pdfUrl": "/sample.pdf"})
    assert response.status_code == 400
    assert response.json() == {"error": "missing required parameters"}


@pytest.mark.parametrize("page", ["0", "abc"])
def test_context_invalid_page(client, page):
    response = client.get("/api/context", params={"pdfUrl": "/sample.pdf", "page": page})
    assert response.status_code == 400
    assert response.json() == {"error": "invalid page number"}


def test_context_not_found(client):
    response = client.get("/api/context", params={"pdfUrl": "/sample.pdf", "page": "42"})
    assert response.status_code == 404
    assert response.json() == {"error": "no context data for this page"}


@pytest.mark.parametrize("body", [{}, {"messages": "hello"}, {"messages": None}])
def test_chat_rejects_invalid_messages(client, body):
    response = client.post("/api/chat", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid message format"}


def test_chat_text_reply(client, llm):
    llm.replies = [text_reply("Observers get notified.")]
    response = client.post("/api/chat", json={
        "messages": [{"id": "m1", "role": "user", "content": "What happens on change?"}],
        "context": {"title": "The Observer Pattern", "content": "...", "currentPage": 8, "totalPages": 10},
    })

    assert response.status_code == 200
    choice = response.json()["choices"][0]
    assert choice["message"] == {"role": "assistant", "content": "Observers get notified."}
    assert choice["finish_reason"] == "stop"

    call = llm.calls[0]
    assert call["messages"] == [{"role": "user", "content": "What happens on change?"}]
    assert "Page: 8 / Total pages: 10" in call["system_prompt"]
    assert [t["function"]["name"] for t in call["tools"]] == ["create_canvas", "switch_slide"]


def test_chat_tool_call_reply(client, llm):
    llm.replies = [tool_reply("switch_slide", '{"pageNumber": 3}', call_id="call_9")]
    response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "example?"}]})

    message = response.json()["choices"][0]["message"]
    assert message["tool_calls"] == [
        {"id": "call_9", "name": "switch_slide", "arguments": {"pageNumber": 3}}
    ]
    assert llm.calls[0]["system_prompt"] is None


def test_chat_model_error(client, llm):
    llm.replies = [RuntimeError("LLM API request failed with status 502: bad gateway")]
    response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})
    assert response.status_code == 500
    assert response.json() == {"error": "LLM API request failed with status 502: bad gateway"}


def test_chat_accepts_empty_messages(client, llm):
    llm.replies = [text_reply("Hello, what would you like to learn?")]
    response = client.post("/api/chat", json={"messages": []})

    assert response.status_code == 200
    assert response.json()["choices"][0]["message"]["content"] == "Hello, what would you like to learn?"
    assert llm.calls[0]["messages"] == []


def test_chat_empty_context_still_builds_prompt(client, llm):
    llm.replies = [text_reply("Sure.")]
    response = client.post("/api/chat", json={
        "messages": [{"role": "user", "content": "hi"}],
        "context": {},
    })

    assert response.status_code == 200
    system_prompt = llm.calls[0]["system_prompt"]
    assert system_prompt is not None
    assert "Title: not provided" in system_prompt


def test_logging_configured_on_startup_only(monkeypatch, settings):
    configured = []
    monkeypatch.setattr(server, "setup_logging", lambda log_file: configured.append(log_file))
    monkeypatch.setattr(server, "get_settings", lambda: settings)

    app = create_app()
    assert configured == []

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
    assert configured == [settings.log_file]
