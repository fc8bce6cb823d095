"""Plugin system: manifests, registry, discovery and loading.

Imports are lazy so discovery/config can be used (e.g. from the CLI) without
importing the whole runtime.
"""

__all__ = [
    "PluginManifest",
    "PluginDependency",
    "LifecycleHooks",
    "CallbackHooks",
    "PluginDefinition",
    "PluginApi",
    "PluginMethod",
    "PluginMessages",
    "PluginRoutes",
    "PluginStores",
    "PluginRegistry",
    "PluginInstance",
    "PluginStatus",
    "PluginContext",
    "CoreAPI",
    "PluginDiscovery",
    "PluginEntry",
    "PluginLoader",
    "PluginConfigService",
    "NamespacedStorage",
]


def __getattr__(name):
    if name in ("PluginManifest", "PluginDependency"):
        from plugin_host.plugins import manifest
        return getattr(manifest, name)
    if name in ("LifecycleHooks", "CallbackHooks"):
        from plugin_host.plugins import hooks
        return getattr(hooks, name)
    if name in ("PluginDefinition", "PluginApi", "PluginMethod", "PluginMessages", "PluginRoutes", "PluginStores"):
        from plugin_host.plugins import definition
        return getattr(definition, name)
    if name in ("PluginRegistry", "PluginInstance", "PluginStatus"):
        from plugin_host.plugins import registry
        return getattr(registry, name)
    if name in ("PluginContext", "CoreAPI"):
        from plugin_host.plugins import context
        return getattr(context, name)
    if name in ("PluginDiscovery", "PluginEntry"):
        from plugin_host.plugins import discovery
        return getattr(discovery, name)
    if name == "PluginLoader":
        from plugin_host.plugins.loader import PluginLoader
        return PluginLoader
    if name == "PluginConfigService":
        from plugin_host.plugins.config import PluginConfigService
        return PluginConfigService
    if name == "NamespacedStorage":
        from plugin_host.plugins.storage import NamespacedStorage
        return NamespacedStorage
    raise AttributeError(f"module 'plugin_host.plugins' has no attribute {name!r}")
