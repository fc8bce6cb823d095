"""Exception types raised by the plugin registry, loader and message bus."""

from typing import List


class PluginHostError(Exception):
    """Base class for all plugin host errors."""


class ManifestValidationError(PluginHostError):
    """Manifest is missing required fields or has malformed id/version."""

    def __init__(self, plugin_id: str, errors: List[str]):
        self.plugin_id = plugin_id
        self.errors = list(errors)
        super().__init__(f"Invalid manifest for {plugin_id or '<unknown>'}: {', '.join(self.errors)}")


class DuplicateRegistrationError(PluginHostError):
    def __init__(self, plugin_id: str):
        self.plugin_id = plugin_id
        super().__init__(f"Plugin {plugin_id} is already registered")


class MissingDependencyError(PluginHostError):
    """One or more required dependencies are not registered.

    ``missing`` holds ``pluginId@version`` strings, in declaration order.
    """

    def __init__(self, plugin_id: str, missing: List[str]):
        self.plugin_id = plugin_id
        self.missing = list(missing)
        super().__init__(f"Missing dependencies for {plugin_id}: {', '.join(self.missing)}")


class PluginNotRegisteredError(PluginHostError):
    def __init__(self, plugin_id: str):
        self.plugin_id = plugin_id
        super().__init__(f"Plugin {plugin_id} is not registered")


class PluginMethodNotFoundError(PluginHostError):
    def __init__(self, plugin_id: str, method: str):
        self.plugin_id = plugin_id
        self.method = method
        super().__init__(f"Method not found: {plugin_id}.{method}")


class PluginLoadError(PluginHostError):
    """A plugin entry point could not be imported or resolved."""


class RequestTimeoutError(PluginHostError, TimeoutError):
    def __init__(self, message_type: str, timeout: float):
        self.message_type = message_type
        self.timeout = timeout
        super().__init__(f"Request timeout for {message_type} after {timeout}s")


class PluginStateError(PluginHostError):
    """Operation not allowed in the plugin's current lifecycle status."""

    def __init__(self, plugin_id: str, status: str, action: str):
        self.plugin_id = plugin_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} plugin {plugin_id} while it is {status}")
