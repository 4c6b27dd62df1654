"""
Tests for the FastAPI endpoints.
"""

import json

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from conftest import StubClientFactory, StubLLM
from nodeflow.api.dependencies import get_client_factory_builder
from nodeflow.main import app


# ============================================================
# Sync Test Client (for simple tests)
# ============================================================

client = TestClient(app)


CHAT_WORKFLOW = {
    "nodes": [
        {"id": "in", "type": "customInput", "data": {"label": "Question"}, "position": {"x": 0, "y": 0}},
        {"id": "llm", "type": "llm", "data": {"modelProvider": "openai"}, "position": {"x": 0, "y": 100}},
        {"id": "out", "type": "customOutput", "data": {}, "position": {"x": 0, "y": 200}},
    ],
    "edges": [
        {"id": "e1", "source": "in", "target": "llm"},
        {"id": "e2", "source": "llm", "target": "out"},
    ],
}

TOOL_WORKFLOW = {
    "nodes": [
        {"id": "in", "type": "input", "config": {}},
        {"id": "tool", "type": "composio", "config": {"toolAction": "SEARCH"}},
        {"id": "out", "type": "output", "config": {}},
    ],
    "edges": [
        {"source": "in", "target": "tool"},
        {"source": "tool", "target": "out"},
    ],
}


@pytest.fixture
def stub_clients():
    """Route every request's client factory to a stub."""
    factory = StubClientFactory()
    app.dependency_overrides[get_client_factory_builder] = lambda: (lambda api_keys: factory)
    yield factory
    app.dependency_overrides.pop(get_client_factory_builder, None)


def _frames(body: str):
    return [
        json.loads(frame[len("data: "):])
        for frame in body.split("\n\n")
        if frame.startswith("data: ")
    ]


class TestRootEndpoints:
    """Tests for root endpoints."""

    def test_root(self):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert "name" in data
        assert "version" in data
        assert "endpoints" in data

    def test_health(self):
        """Test health endpoint."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["node_kinds"]) == {"input", "llm", "tool", "agent", "output"}
        assert "openai" in data["providers"]


def test_routes_is_a_regular_package():
    """Package discovery only ships directories with an __init__.py."""
    import nodeflow.api.routes as routes

    assert routes.__file__ is not None
    assert routes.__file__.endswith("__init__.py")


class TestExecuteEndpoints:
    """Tests for /execute and /execute/stream."""

    def test_execute_chat(self, stub_clients):
        response = client.post("/execute", json={**CHAT_WORKFLOW, "input": "Hi"})
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["data"]["currentOutput"] == "Hello"
        assert len(data["data"]["nodeResults"]) == 3
        assert "duration" in data["data"]["metadata"]
        assert "timestamp" in data

    def test_execute_reports_node_failure(self, stub_clients):
        stub_clients.llm_client = StubLLM(errors=[ValueError("Invalid API key")])

        response = client.post("/execute", json={**CHAT_WORKFLOW, "input": "Hi"})
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is False
        assert "API key" in data["data"]["error"]
        assert data["data"]["nodeResults"]["llm"]["error"]["error"]["kind"] == "auth"

    def test_execute_halt_option(self, stub_clients):
        stub_clients.llm_client = StubLLM(errors=[ValueError("Invalid API key")])

        response = client.post("/execute", json={
            **CHAT_WORKFLOW,
            "input": "Hi",
            "options": {"haltOnNodeError": True},
        })

        data = response.json()
        assert data["success"] is False
        assert data["error"]["error"]["kind"] == "auth"
        assert "out" not in data["data"]["nodeResults"]

    def test_execute_invalid_graph(self, stub_clients):
        workflow = {"nodes": CHAT_WORKFLOW["nodes"][:2], "edges": CHAT_WORKFLOW["edges"][:1]}

        response = client.post("/execute", json={**workflow, "input": "Hi"})
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is False
        assert data["error"]["error"]["kind"] == "validation"

    def test_execute_malformed_payload(self, stub_clients):
        response = client.post("/execute", json={
            "nodes": [{"id": "x", "type": "teleporter"}],
            "edges": [],
            "input": "Hi",
        })
        assert response.status_code == 422

    def test_user_id_from_header(self, stub_clients):
        response = client.post(
            "/execute",
            json={**TOOL_WORKFLOW, "input": "find x"},
            headers={"X-User-Id": "header-user"},
        )

        assert response.json()["success"] is True
        assert stub_clients.tool_client.calls[0][1] == "header-user"

    def test_user_id_from_config_wins(self, stub_clients):
        client.post(
            "/execute",
            json={**TOOL_WORKFLOW, "input": "find x", "config": {"userId": "config-user"}},
            headers={"X-User-Id": "header-user"},
        )

        assert stub_clients.tool_client.calls[0][1] == "config-user"

    def test_tool_without_user(self, stub_clients):
        data = client.post("/execute", json={**TOOL_WORKFLOW, "input": "find x"}).json()

        assert data["success"] is False
        assert data["data"]["nodeResults"]["tool"]["success"] is False
        assert stub_clients.tool_client.calls == []

    def test_stream(self, stub_clients):
        response = client.post("/execute/stream", json={**CHAT_WORKFLOW, "input": "Hi"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        events = _frames(response.text)
        assert [e["kind"] for e in events] == [
            "log",
            "nodeStart", "nodeComplete",
            "nodeStart", "nodeComplete",
            "nodeStart", "nodeComplete",
            "complete",
        ]
        assert events[1]["payload"]["nodeName"] == "Question"
        assert events[-1]["payload"]["state"]["currentOutput"] == "Hello"

    def test_stream_with_node_logs(self, stub_clients):
        response = client.post("/execute/stream", json={
            **CHAT_WORKFLOW,
            "input": "Hi",
            "options": {"streamNodeLogs": True},
        })

        kinds = [e["kind"] for e in _frames(response.text)]
        assert kinds.count("log") == 4
        assert kinds[-1] == "complete"


class TestWorkflowEndpoints:
    """Tests for /workflows."""

    def test_validate(self):
        response = client.post("/workflows/validate", json=CHAT_WORKFLOW)
        assert response.status_code == 200

        data = response.json()
        assert data["valid"] is True
        assert data["entryPoints"] == ["in"]
        assert data["exitPoints"] == ["out"]
        assert data["waves"] == [["in"], ["llm"], ["out"]]
        assert "graph TD" in data["mermaidDiagram"]

    def test_validate_cycle(self):
        workflow = {
            "nodes": [
                {"id": "in", "type": "input"},
                {"id": "a", "type": "agent"},
                {"id": "b", "type": "agent"},
                {"id": "out", "type": "output"},
            ],
            "edges": [
                {"source": "in", "target": "a"},
                {"source": "a", "target": "b"},
                {"source": "b", "target": "a"},
                {"source": "b", "target": "out"},
            ],
        }
        data = client.post("/workflows/validate", json=workflow).json()

        assert data["valid"] is False
        assert data["error"]["error"]["kind"] == "validation"
        assert "cycle" in data["error"]["context"]["reason"]

    def test_list_templates(self):
        response = client.get("/workflows/templates")
        assert response.status_code == 200

        data = response.json()
        names = {t["name"]: t for t in data["templates"]}
        assert data["total"] == len(data["templates"])
        assert "chat-assistant" in names
        assert names["tool-assistant"]["requiresUserId"] is True
        assert names["chat-assistant"]["requiresUserId"] is False

    def test_execute_template(self, stub_clients):
        response = client.post("/workflows/templates/chat-assistant/execute", json={"input": "Hi"})
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["data"]["currentOutput"] == "Hello"
        assert stub_clients.llm_client.calls[0][0].role == "system"

    def test_execute_unknown_template(self, stub_clients):
        response = client.post("/workflows/templates/nope/execute", json={"input": "Hi"})
        assert response.status_code == 404


class TestWebSocket:
    """Tests for /ws/execute."""

    def test_execute_over_websocket(self, stub_clients):
        with client.websocket_connect("/ws/execute") as ws:
            ws.send_json({"action": "start", **CHAT_WORKFLOW, "input": "Hi"})

            events = []
            while not events or events[-1]["kind"] not in ("complete", "error"):
                events.append(ws.receive_json())

        assert [e["kind"] for e in events][0] == "log"
        assert events[-1]["kind"] == "complete"
        assert events[-1]["payload"]["state"]["currentOutput"] == "Hello"

    def test_requires_start_action(self, stub_clients):
        with client.websocket_connect("/ws/execute") as ws:
            ws.send_json({"action": "stop"})
            message = ws.receive_json()

        assert message["kind"] == "error"
        assert "start" in message["payload"]["error"]

    def test_invalid_payload(self, stub_clients):
        with client.websocket_connect("/ws/execute") as ws:
            ws.send_json({"action": "start", "nodes": "not-a-list"})
            message = ws.receive_json()

        assert message["kind"] == "error"
        assert message["payload"]["error"] == "Invalid workflow payload"


# ============================================================
# Async Tests (for async endpoints)
# ============================================================

@pytest.mark.asyncio
async def test_execute_async_client(stub_clients):
    """Test running a workflow through the ASGI transport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post("/execute", json={**CHAT_WORKFLOW, "input": "Hi"})
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["data"]["executionLog"][0] == "Starting workflow execution"


@pytest.mark.asyncio
async def test_stream_async_client(stub_clients):
    """Test consuming the SSE stream through the ASGI transport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        async with ac.stream("POST", "/execute/stream", json={**CHAT_WORKFLOW, "input": "Hi"}) as response:
            body = "".join([chunk async for chunk in response.aiter_text()])

    events = _frames(body)
    assert events[0]["kind"] == "log"
    assert events[-1]["kind"] == "complete"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
