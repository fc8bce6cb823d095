"""Shared fixtures for plugin host tests."""

import pytest

from plugin_host.core import create_core
from plugin_host.messaging.bus import MessageBus
from plugin_host.plugins.definition import PluginDefinition
from plugin_host.plugins.manifest import PluginManifest

MANIFEST_FIELDS = ("dependencies", "lifecycle", "enabled", "priority", "permissions", "description")


@pytest.fixture
def bus():
    return MessageBus()


@pytest.fixture
def core():
    return create_core()


@pytest.fixture
def make_definition():
    """Factory for PluginDefinitions with a valid manifest.

    Manifest fields (dependencies, lifecycle, enabled ...) and definition
    fields (setup, messages, routes ...) can be mixed as keyword arguments.
    """

    def make(plugin_id="sample", version="1.0.0", name="Sample", **kwargs):
        manifest_kwargs = {key: kwargs.pop(key) for key in MANIFEST_FIELDS if key in kwargs}
        manifest = PluginManifest(id=plugin_id, name=name, version=version, **manifest_kwargs)
        return PluginDefinition(manifest=manifest, **kwargs)

    return make
