"""Inventory plugin entry point."""

import logging
from typing import Any, Dict, Optional

from plugin_host.messaging.message import Message
from plugin_host.observable import Observable
from plugin_host.plugins.context import PluginContext
from plugin_host.plugins.definition import (
    MessageSubscription,
    MethodContext,
    PluginApi,
    PluginDefinition,
    PluginMessages,
    PluginMethod,
    PluginStores,
)
from plugin_host.plugins.manifest import PluginDependency, PluginManifest

logger = logging.getLogger(__name__)

DEFAULT_LOW_STOCK_THRESHOLD = 5


class InventoryPlugin:
    """Tracks stock per SKU and reserves it when orders come in."""

    def __init__(self):
        self.context: Optional[PluginContext] = None
        self.stock: Observable[Dict[str, int]] = Observable({})
        self.known_clients = 0
        self.threshold = DEFAULT_LOW_STOCK_THRESHOLD

    async def setup(self, context: PluginContext) -> None:
        self.context = context
        self.threshold = int(context.config.get("low_stock_threshold", DEFAULT_LOW_STOCK_THRESHOLD))
        self.stock.set(await context.storage.get("stock", {}))
        context.logger.info(f"Inventory loaded with {len(self.stock.get())} SKU(s)")

    async def teardown(self) -> None:
        await self.context.storage.set("stock", self.stock.get())
        self.context = None

    async def _save(self, stock: Dict[str, int]) -> None:
        self.stock.set(stock)
        await self.context.storage.set("stock", stock)

    async def on_order_created(self, message: Message) -> Dict[str, Any]:
        sku = message.payload["sku"]
        quantity = int(message.payload.get("quantity", 1))

        stock = dict(self.stock.get())
        available = stock.get(sku, 0)
        if available < quantity:
            return {"reserved": False, "sku": sku, "available": available}

        stock[sku] = available - quantity
        await self._save(stock)
        if stock[sku] <= self.threshold:
            self.context.bus.send("inventory.low_stock", {"sku": sku, "available": stock[sku]})
        return {"reserved": True, "sku": sku, "available": stock[sku]}

    def on_client_created(self, message: Message) -> None:
        self.known_clients += 1

    def get_stock(self, sku: str, ctx: MethodContext) -> int:
        return self.stock.get().get(sku, 0)

    async def restock(self, input: Dict[str, Any], ctx: MethodContext) -> int:
        stock = dict(self.stock.get())
        stock[input["sku"]] = stock.get(input["sku"], 0) + int(input["quantity"])
        await self._save(stock)
        return stock[input["sku"]]


def create_plugin() -> PluginDefinition:
    """Plugin entry point - called by PluginLoader.load_plugin()."""
    plugin = InventoryPlugin()

    return PluginDefinition(
        manifest=PluginManifest(
            id="inventory",
            name="Inventory",
            version="1.0.0",
            description="Stock levels and reservations",
            dependencies=[PluginDependency(plugin_id="clients", version="1.0.0", optional=True)],
            permissions=["storage:read", "storage:write", "plugins:communicate"],
        ),
        api=PluginApi(
            methods={
                "get_stock": PluginMethod(handler=plugin.get_stock, description="Units on hand for a SKU"),
                "restock": PluginMethod(handler=plugin.restock, description="Add units for a SKU"),
            },
        ),
        messages=PluginMessages(
            handlers={"order.created": plugin.on_order_created},
            subscriptions=[
                MessageSubscription(type="client.created", handler=plugin.on_client_created, source="clients"),
            ],
        ),
        stores=PluginStores(writable={"stock": plugin.stock}),
        setup=plugin.setup,
        teardown=plugin.teardown,
    )
