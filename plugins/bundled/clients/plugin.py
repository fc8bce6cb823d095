"""Clients plugin entry point."""

import logging
from typing import Any, Dict, Optional

from plugin_host.messaging.message import Message
from plugin_host.plugins.context import PluginContext
from plugin_host.plugins.definition import (
    MessageSchema,
    MethodContext,
    PluginApi,
    PluginDefinition,
    PluginMessages,
    PluginMethod,
    PluginRoutes,
)
from plugin_host.plugins.hooks import CallbackHooks
from plugin_host.plugins.manifest import PluginManifest
from plugin_host.routing import NavigationItem, RouteDefinition

logger = logging.getLogger(__name__)

CLIENT_SCHEMA = {
    "type": "object",
    "properties": {"clientId": {"type": "string"}, "name": {"type": "string"}},
    "required": ["clientId"],
}


class ClientsPlugin:
    """Keeps a copy of every client announced on the bus in plugin storage."""

    def __init__(self):
        self.context: Optional[PluginContext] = None

    async def setup(self, context: PluginContext) -> None:
        self.context = context
        context.logger.info("Clients plugin initializing...")

    async def teardown(self) -> None:
        logger.info("Clients plugin cleaning up...")
        self.context = None

    async def on_created(self, message: Message) -> Dict[str, Any]:
        client = dict(message.payload)
        await self.context.storage.set(client["clientId"], client)
        self.context.bus.send("client.created", client)
        return {"received": True, "type": "client.created"}

    async def on_updated(self, message: Message) -> Dict[str, Any]:
        client_id = message.payload["clientId"]
        current = await self.context.storage.get(client_id, {})
        current.update(message.payload.get("changes", {}))
        current["clientId"] = client_id
        await self.context.storage.set(client_id, current)
        self.context.bus.send("client.updated", current)
        return {"received": True, "type": "client.updated"}

    async def on_deleted(self, message: Message) -> Dict[str, Any]:
        client_id = message.payload["clientId"]
        await self.context.storage.delete(client_id)
        self.context.bus.send("client.deleted", {"clientId": client_id})
        return {"received": True, "type": "client.deleted"}

    async def get_client(self, client_id: str, ctx: MethodContext) -> Optional[Dict[str, Any]]:
        return await self.context.storage.get(client_id)

    def list_clients_page(self, params: Dict[str, str]) -> Dict[str, Any]:
        return {"page": "clients", "params": params}


def create_plugin() -> PluginDefinition:
    """Plugin entry point - called by PluginLoader.load_plugin()."""
    plugin = ClientsPlugin()

    manifest = PluginManifest(
        id="clients",
        name="Clients",
        version="1.0.0",
        description="Client management for maintaining customer relationships",
        author="Plugin Host Team",
        icon="users",
        permissions=["storage:read", "storage:write", "routes:register", "plugins:communicate"],
        lifecycle=CallbackHooks(
            on_enable=lambda: logger.info("Clients plugin enabled"),
            on_disable=lambda: logger.info("Clients plugin disabled"),
        ),
        priority=10,
    )

    return PluginDefinition(
        manifest=manifest,
        api=PluginApi(
            methods={
                "get_client": PluginMethod(
                    handler=plugin.get_client,
                    description="Look up a stored client by id",
                ),
            },
        ),
        routes=PluginRoutes(
            base_path="/clients",
            routes=[
                RouteDefinition(path="/", endpoint=plugin.list_clients_page, meta={"title": "Clients"}),
                RouteDefinition(path="/:id", endpoint=plugin.list_clients_page, meta={"title": "Client"}),
            ],
            navigation=[NavigationItem(id="clients", label="Clients", path="/clients", icon="users", order=10)],
        ),
        messages=PluginMessages(
            handlers={
                "client.created": plugin.on_created,
                "client.updated": plugin.on_updated,
                "client.deleted": plugin.on_deleted,
            },
            schemas={
                "client.created": MessageSchema(
                    type="clients:client.created",
                    payload=CLIENT_SCHEMA,
                    description="Notification that a new client was created",
                ),
                "client.updated": MessageSchema(
                    type="clients:client.updated",
                    payload={"type": "object", "properties": {"clientId": {"type": "string"},
                                                              "changes": {"type": "object"}}},
                    description="Notification that a client was updated",
                ),
                "client.deleted": MessageSchema(
                    type="clients:client.deleted",
                    payload=CLIENT_SCHEMA,
                    description="Notification that a client was deleted",
                ),
            },
        ),
        setup=plugin.setup,
        teardown=plugin.teardown,
    )
