"""Tests for plugin discovery, load ordering and the loader."""

import json
import sys
import textwrap

import pytest

from plugin_host.errors import PluginLoadError
from plugin_host.plugins.discovery import PluginDiscovery, PluginEntry, dynamic_entry
from plugin_host.plugins.loader import PluginLoader, order_entries
from plugin_host.plugins.manifest import PluginDependency

PLUGIN_SOURCE = textwrap.dedent(
    """
    from plugin_host.plugins.definition import PluginDefinition
    from plugin_host.plugins.manifest import PluginManifest

    from helpers import DESCRIPTION


    def create_plugin():
        return PluginDefinition(
            manifest=PluginManifest(id="{plugin_id}", name="{plugin_id}", version="1.0.0", description=DESCRIPTION),
        )
    """
)


@pytest.fixture(autouse=True)
def forget_plugin_helpers():
    yield
    # Each test writes its own helpers.py next to plugin.py
    sys.modules.pop("helpers", None)


def write_plugin(root, plugin_id, descriptor=None, source=None):
    plugin_dir = root / plugin_id
    plugin_dir.mkdir(parents=True)
    data = {"id": plugin_id, "entry_point": "plugin:create_plugin"}
    data.update(descriptor or {})
    (plugin_dir / "plugin.json").write_text(json.dumps(data), encoding="utf-8")
    (plugin_dir / "plugin.py").write_text(
        source if source is not None else PLUGIN_SOURCE.replace("{plugin_id}", plugin_id),
        encoding="utf-8",
    )
    (plugin_dir / "helpers.py").write_text(f'DESCRIPTION = "{plugin_id} helper"\n', encoding="utf-8")
    return plugin_dir


def entry(plugin_id, priority=0, depends_on=()):
    return PluginEntry(
        id=plugin_id,
        source="test",
        priority=priority,
        dependencies=[PluginDependency(plugin_id=d) for d in depends_on],
    )


class TestPluginDiscovery:

    def test_discovers_descriptors(self, tmp_path):
        write_plugin(tmp_path / "bundled", "clients", {"priority": 10})
        write_plugin(
            tmp_path / "bundled",
            "inventory",
            {"dependencies": [{"pluginId": "clients", "optional": True}]},
        )

        entries = PluginDiscovery([(tmp_path / "bundled", "bundled")]).discover_all()

        assert [e.id for e in entries] == ["clients", "inventory"]
        assert entries[0].priority == 10
        assert entries[0].source == "bundled"
        assert entries[1].dependencies[0].plugin_id == "clients"
        assert entries[1].dependencies[0].optional

    def test_first_found_wins(self, tmp_path):
        write_plugin(tmp_path / "bundled", "clients")
        write_plugin(tmp_path / "installed", "clients")

        entries = PluginDiscovery([
            (tmp_path / "bundled", "bundled"),
            (tmp_path / "installed", "installed"),
        ]).discover_all()

        assert len(entries) == 1
        assert entries[0].source == "bundled"

    def test_skips_invalid_descriptors(self, tmp_path):
        root = tmp_path / "plugins"
        write_plugin(root, "good")
        broken = root / "broken"
        broken.mkdir()
        (broken / "plugin.json").write_text("{not json", encoding="utf-8")
        incomplete = root / "incomplete"
        incomplete.mkdir()
        (incomplete / "plugin.json").write_text(json.dumps({"id": "incomplete"}), encoding="utf-8")
        (root / "no-descriptor").mkdir()

        entries = PluginDiscovery([(root, "bundled"), (tmp_path / "missing", "external")]).discover_all()

        assert [e.id for e in entries] == ["good"]

    def test_discover_single(self, tmp_path):
        plugin_dir = write_plugin(tmp_path, "clients")

        discovery = PluginDiscovery([])

        assert discovery.discover_single(plugin_dir, "installed").source == "installed"
        assert discovery.discover_single(tmp_path) is None


class TestOrderEntries:

    def test_dependencies_first(self):
        ordered = order_entries([entry("inventory", depends_on=["clients"]), entry("clients")])

        assert [e.id for e in ordered] == ["clients", "inventory"]

    def test_priority_breaks_ties(self):
        ordered = order_entries([entry("a"), entry("b", priority=5), entry("c", priority=5)])

        assert [e.id for e in ordered] == ["b", "c", "a"]

    def test_unknown_dependencies_ignored(self):
        ordered = order_entries([entry("a", depends_on=["elsewhere"])])

        assert [e.id for e in ordered] == ["a"]

    def test_cycle_appended_in_discovery_order(self):
        ordered = order_entries([
            entry("x", depends_on=["y"]),
            entry("y", depends_on=["x"]),
            entry("free"),
        ])

        assert [e.id for e in ordered] == ["free", "x", "y"]


class TestPluginLoader:

    @pytest.mark.asyncio
    async def test_loads_entry_point_from_directory(self, tmp_path):
        write_plugin(tmp_path, "clients")
        [found] = PluginDiscovery([(tmp_path, "bundled")]).discover_all()
        loader = PluginLoader()

        definition = await loader.load_plugin(found)

        assert definition.manifest.id == "clients"
        assert definition.manifest.description == "clients helper"
        assert await loader.load_plugin(found) is definition
        assert loader.get_loaded() == {"clients": definition}

    @pytest.mark.asyncio
    async def test_manifest_id_must_match_entry(self, tmp_path, make_definition):
        loader = PluginLoader()

        with pytest.raises(PluginLoadError, match="produced manifest id 'other'"):
            await loader.load_plugin(dynamic_entry("clients", lambda: make_definition("other")))

    @pytest.mark.asyncio
    async def test_missing_attribute(self, tmp_path):
        write_plugin(tmp_path, "clients", {"entry_point": "plugin:nothing_here"})
        [found] = PluginDiscovery([(tmp_path, "bundled")]).discover_all()

        with pytest.raises(PluginLoadError, match="no attribute 'nothing_here'"):
            await PluginLoader().load_plugin(found)

    @pytest.mark.asyncio
    async def test_import_error_is_wrapped(self, tmp_path):
        write_plugin(tmp_path, "clients", source="raise ImportError('nope')\n")
        [found] = PluginDiscovery([(tmp_path, "bundled")]).discover_all()

        with pytest.raises(PluginLoadError, match="Error importing"):
            await PluginLoader().load_plugin(found)

    @pytest.mark.asyncio
    async def test_factory_must_return_definition(self):
        with pytest.raises(PluginLoadError, match="expected PluginDefinition"):
            await PluginLoader().load_plugin(dynamic_entry("clients", lambda: {"id": "clients"}))

    @pytest.mark.asyncio
    async def test_async_factory(self, make_definition):
        async def factory():
            return make_definition("clients")

        definition = await PluginLoader().load_plugin(dynamic_entry("clients", factory))

        assert definition.id == "clients"

    @pytest.mark.asyncio
    async def test_load_all_skips_disabled_and_broken(self, make_definition):
        def broken():
            raise RuntimeError("factory exploded")

        entries = [
            dynamic_entry("inventory", lambda: make_definition("inventory"),
                          dependencies=[PluginDependency(plugin_id="clients")]),
            dynamic_entry("clients", lambda: make_definition("clients")),
            dynamic_entry("broken", broken),
            dynamic_entry("off", lambda: make_definition("off"), enabled=False),
        ]

        definitions = await PluginLoader().load_all(entries)

        assert [d.id for d in definitions] == ["clients", "inventory"]
