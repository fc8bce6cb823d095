"""Plugin host core: plugin registry, message bus and their collaborators.

Imports are lazy so that lightweight pieces (the bus, discovery, config) can be
used without pulling in FastAPI.
"""

__all__ = [
    "Core",
    "create_core",
    "MessageBus",
    "Message",
    "MessageHandler",
    "PluginRegistry",
    "PluginInstance",
    "PluginStatus",
    "PluginManifest",
    "PluginDefinition",
    "Observable",
]


def __getattr__(name):
    if name in ("Core", "create_core"):
        from plugin_host import core
        return getattr(core, name)
    if name == "MessageBus":
        from plugin_host.messaging.bus import MessageBus
        return MessageBus
    if name in ("Message", "MessageHandler"):
        from plugin_host.messaging import message
        return getattr(message, name)
    if name in ("PluginRegistry", "PluginInstance", "PluginStatus"):
        from plugin_host.plugins import registry
        return getattr(registry, name)
    if name == "PluginManifest":
        from plugin_host.plugins.manifest import PluginManifest
        return PluginManifest
    if name == "PluginDefinition":
        from plugin_host.plugins.definition import PluginDefinition
        return PluginDefinition
    if name == "Observable":
        from plugin_host.observable import Observable
        return Observable
    raise AttributeError(f"module 'plugin_host' has no attribute {name!r}")
