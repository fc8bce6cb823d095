"""Tests for the plugin admin REST API."""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from plugin_host.core import create_core
from plugin_host.plugins.definition import PluginMessages, PluginRoutes
from plugin_host.routers import plugins_router
from plugin_host.routing import NavigationItem, RouteDefinition


def build_app(core=None):
    app = FastAPI()
    app.include_router(plugins_router)
    app.state.core = core
    return app


@pytest.fixture
def core(make_definition):
    core = create_core()

    async def echo(message):
        return {"echo": message.payload, "from": message.source}

    definition = make_definition(
        "echo",
        name="Echo",
        messages=PluginMessages(handlers={"say": echo}),
        routes=PluginRoutes(
            base_path="/echo",
            routes=[RouteDefinition(path="/", meta={"title": "Echo"})],
            navigation=[NavigationItem(id="echo", label="Echo", path="/echo", order=1)],
        ),
    )
    asyncio.run(core.registry.register(definition))
    return core


@pytest.fixture
def client(core):
    # One event loop for the whole test so dispatch tasks can finish
    with TestClient(build_app(core)) as client:
        yield client


class TestPluginEndpoints:

    def test_list_plugins(self, client):
        response = client.get("/api/plugins")

        assert response.status_code == 200
        plugins = response.json()["plugins"]
        assert [p["id"] for p in plugins] == ["echo"]
        assert plugins[0]["status"] == "enabled"

    def test_get_plugin(self, client):
        response = client.get("/api/plugins/echo")

        assert response.status_code == 200
        assert response.json()["name"] == "Echo"
        assert response.json()["config"] == {}

    def test_get_unknown_plugin(self, client):
        assert client.get("/api/plugins/missing").status_code == 404

    def test_disable_and_enable(self, client):
        response = client.post("/api/plugins/echo/disable")
        assert response.status_code == 200
        assert response.json()["plugin"]["status"] == "disabled"

        response = client.post("/api/plugins/echo/enable")
        assert response.json()["plugin"]["status"] == "enabled"

    def test_enable_unknown_plugin(self, client):
        assert client.post("/api/plugins/missing/enable").status_code == 404
        assert client.post("/api/plugins/missing/disable").status_code == 404

    def test_enable_failed_plugin_conflicts(self, core, make_definition):
        def setup(context):
            raise RuntimeError("setup exploded")

        with pytest.raises(RuntimeError):
            asyncio.run(core.registry.register(make_definition("broken", setup=setup)))

        with TestClient(build_app(core)) as client:
            response = client.post("/api/plugins/broken/enable")

        assert response.status_code == 409
        assert "error" in response.json()["detail"]

    def test_unregister(self, client):
        assert client.delete("/api/plugins/echo").status_code == 200

        assert client.get("/api/plugins/echo").status_code == 404
        assert client.delete("/api/plugins/echo").status_code == 404
        assert client.get("/api/plugins/routes").json()["routes"] == []

    def test_routes(self, client):
        data = client.get("/api/plugins/routes").json()

        assert data["routes"] == [{"path": "/echo", "plugin": "echo", "meta": {"title": "Echo"}}]
        assert data["navigation"] == [{"id": "echo", "label": "Echo", "path": "/echo", "order": 1}]

    def test_core_not_initialized(self):
        client = TestClient(build_app())

        assert client.get("/api/plugins").status_code == 503


class TestMessageEndpoints:

    def test_send_records_history(self, client):
        response = client.post("/api/messages/client.created", json={"payload": {"clientId": "c1"}})
        assert response.status_code == 200

        messages = client.get("/api/messages/history", params={"type": "client.*"}).json()["messages"]

        assert len(messages) == 1
        assert messages[0]["type"] == "client.created"
        assert messages[0]["payload"] == {"clientId": "c1"}
        assert messages[0]["source"] == "core"
        assert messages[0]["correlationId"] is None

    def test_history_limit(self, client):
        for n in range(3):
            client.post("/api/messages/tick", json={"payload": n})

        messages = client.get("/api/messages/history", params={"limit": 2}).json()["messages"]

        assert [m["payload"] for m in messages] == [1, 2]

    def test_request_reply(self, client):
        response = client.post("/api/messages/echo:say/request", json={"payload": "hi", "timeout": 1})

        assert response.status_code == 200
        assert response.json() == {"result": {"echo": "hi", "from": "core"}}

    def test_request_timeout(self, client):
        response = client.post("/api/messages/nobody.home/request", json={"timeout": 0.05})

        assert response.status_code == 504
        assert "nobody.home" in response.json()["detail"]
