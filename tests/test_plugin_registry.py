"""Tests for PluginRegistry: validation, lifecycle and failure handling."""

import asyncio
import logging
from unittest.mock import MagicMock

import pytest

from plugin_host.errors import (
    DuplicateRegistrationError,
    ManifestValidationError,
    MissingDependencyError,
    PluginNotRegisteredError,
    PluginStateError,
)
from plugin_host.observable import Observable
from plugin_host.plugins.context import CoreAPI
from plugin_host.plugins.definition import (
    MessageSubscription,
    PluginMessages,
    PluginRoutes,
    PluginStores,
)
from plugin_host.plugins.hooks import CallbackHooks, LifecycleHooks
from plugin_host.plugins.manifest import PluginDependency
from plugin_host.plugins.registry import PluginRegistry, PluginStatus
from plugin_host.routing import NavigationItem, RouteDefinition


class RecordingHooks(LifecycleHooks):
    """Records every hook call in a shared list."""

    def __init__(self, calls, fail_on=None):
        self.calls = calls
        self.fail_on = fail_on
        self.errors = []

    async def _record(self, name):
        self.calls.append(name)
        if name == self.fail_on:
            raise RuntimeError(f"{name} failed")

    async def on_before_load(self):
        await self._record("on_before_load")

    async def on_load(self):
        await self._record("on_load")

    async def on_enable(self):
        await self._record("on_enable")

    async def on_disable(self):
        await self._record("on_disable")

    async def on_unload(self):
        await self._record("on_unload")

    def on_error(self, error):
        self.errors.append(error)


class TestRegisterValidation:
    """Manifest validation happens before anything is set up."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("plugin_id", ["MyPlugin", "my_plugin", "my plugin", "plugin!"])
    async def test_rejects_non_kebab_case_ids(self, core, make_definition, plugin_id):
        setup = MagicMock()

        with pytest.raises(ManifestValidationError) as exc_info:
            await core.registry.register(make_definition(plugin_id, setup=setup))

        assert "kebab-case" in str(exc_info.value)
        setup.assert_not_called()
        assert core.registry.get_all() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("version", ["v1", "1.0", "one.two.three"])
    async def test_rejects_bad_versions(self, core, make_definition, version):
        with pytest.raises(ManifestValidationError, match="semver"):
            await core.registry.register(make_definition(version=version))

    @pytest.mark.asyncio
    async def test_version_prefix_match_is_enough(self, core, make_definition):
        await core.registry.register(make_definition(version="1.2.3-beta"))

        assert core.registry.has("sample")

    @pytest.mark.asyncio
    async def test_reports_every_missing_field(self, core, make_definition):
        with pytest.raises(ManifestValidationError) as exc_info:
            await core.registry.register(make_definition(plugin_id="", name="", version=""))

        assert exc_info.value.errors == [
            "Missing required field: id",
            "Missing required field: name",
            "Missing required field: version",
        ]

    @pytest.mark.asyncio
    async def test_duplicate_id_leaves_table_unchanged(self, core, make_definition):
        await core.registry.register(make_definition())
        before = core.registry.get_store().get()

        with pytest.raises(DuplicateRegistrationError, match="already registered"):
            await core.registry.register(make_definition(name="Other"))

        assert core.registry.get_store().get() is before
        assert core.registry.get("sample").manifest.name == "Sample"

    @pytest.mark.asyncio
    async def test_missing_dependency(self, core, make_definition):
        setup = MagicMock()
        definition = make_definition(
            dependencies=[PluginDependency(plugin_id="x", version="1.0.0")],
            setup=setup,
        )

        with pytest.raises(MissingDependencyError) as exc_info:
            await core.registry.register(definition)

        assert "x@1.0.0" in str(exc_info.value)
        assert exc_info.value.missing == ["x@1.0.0"]
        setup.assert_not_called()
        assert not core.registry.has("sample")

    @pytest.mark.asyncio
    async def test_optional_dependency_may_be_missing(self, core, make_definition):
        definition = make_definition(
            dependencies=[PluginDependency(plugin_id="x", version="1.0.0", optional=True)],
        )

        await core.registry.register(definition)

        assert core.registry.get("sample").status == PluginStatus.ENABLED

    @pytest.mark.asyncio
    async def test_dependency_satisfied_once_registered(self, core, make_definition):
        await core.registry.register(make_definition("base"))

        await core.registry.register(
            make_definition("child", dependencies=[PluginDependency(pluginId="base")])
        )

        assert [p.id for p in core.registry.get_all()] == ["base", "child"]

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_registration(self, core, make_definition):
        async def slow_before_load():
            await asyncio.sleep(0.01)

        hooks = CallbackHooks(on_before_load=slow_before_load)
        first = make_definition(lifecycle=hooks)
        second = make_definition(lifecycle=hooks)

        results = await asyncio.gather(
            core.registry.register(first),
            core.registry.register(second),
            return_exceptions=True,
        )

        assert results[0] is None
        assert isinstance(results[1], DuplicateRegistrationError)
        assert core.registry.count() == 1

    @pytest.mark.asyncio
    async def test_unregister_rejected_while_loading(self, core, make_definition):
        release = asyncio.Event()

        async def setup(context):
            await release.wait()

        definition = make_definition(setup=setup, messages=PluginMessages(handlers={"ping": lambda m: "pong"}))
        registering = asyncio.create_task(core.registry.register(definition))
        await asyncio.sleep(0)
        assert core.registry.get("sample").status == PluginStatus.LOADING

        with pytest.raises(PluginStateError, match="while it is loading"):
            await core.registry.unregister("sample")

        release.set()
        await registering
        assert core.registry.get("sample").status == PluginStatus.ENABLED

        await core.registry.unregister("sample")

        assert not core.registry.has("sample")
        assert core.messages.subscription_count() == 0


class TestRegisterLifecycle:
    """Successful registration."""

    @pytest.mark.asyncio
    async def test_hooks_and_setup_run_in_order(self, core, make_definition):
        calls = []

        def setup(context):
            calls.append("setup")

        await core.registry.register(make_definition(lifecycle=RecordingHooks(calls), setup=setup))

        assert calls == ["on_before_load", "setup", "on_load"]
        assert core.registry.get("sample").status == PluginStatus.ENABLED

    @pytest.mark.asyncio
    async def test_disabled_manifest_registers_disabled(self, core, make_definition):
        await core.registry.register(make_definition(enabled=False))

        assert core.registry.get("sample").status == PluginStatus.DISABLED

    @pytest.mark.asyncio
    async def test_context_is_namespaced(self, core, make_definition):
        captured = {}

        async def setup(context):
            captured["context"] = context
            await context.storage.set("key", "value")

        await core.registry.register(make_definition(setup=setup))

        context = captured["context"]
        assert context.plugin_id == "sample"
        assert context.core is core.api
        assert context.logger.name == "plugin.sample"
        assert context.get_logger("db").name == "plugin.sample.db"
        assert context.storage.prefix == "plugin:sample:"
        assert await context.storage.get("key") == "value"
        assert context.config == {}
        assert core.registry.get_context("sample") is context

    @pytest.mark.asyncio
    async def test_context_bus_publishes_as_plugin(self, core, make_definition):
        received = []
        core.messages.subscribe("sample.ready", received.append)

        await core.registry.register(
            make_definition(setup=lambda context: context.bus.send("sample.ready"))
        )
        await core.messages.drain()

        assert received[0].source == "sample"

    @pytest.mark.asyncio
    async def test_config_provider_feeds_context(self, make_definition):
        captured = {}
        core_api = CoreAPI(messages=MagicMock(), routes=MagicMock(), state=MagicMock(), events=MagicMock())
        registry = PluginRegistry(core_api, config_provider=lambda plugin_id: {"threshold": 3})

        await registry.register(make_definition(setup=lambda context: captured.update(context.config)))

        assert captured == {"threshold": 3}

    @pytest.mark.asyncio
    async def test_message_handlers_are_namespaced(self, core, make_definition):
        handler = MagicMock(return_value=None)
        definition = make_definition(
            "inventory",
            name="Inventory",
            messages=PluginMessages(handlers={"order.created": handler}),
        )

        await core.registry.register(definition)
        core.messages.send("inventory:order.created", {"sku": "X"})
        core.messages.send("order.created", {"sku": "Y"})
        await core.messages.drain()

        handler.assert_called_once()
        assert handler.call_args.args[0].payload == {"sku": "X"}

    @pytest.mark.asyncio
    async def test_handlers_answer_requests_from_any_source(self, core, make_definition):
        definition = make_definition(messages=PluginMessages(handlers={"ping": lambda m: "pong"}))
        await core.registry.register(definition)

        assert await core.messages.create_scoped("other").request("sample:ping", timeout=1) == "pong"

    @pytest.mark.asyncio
    async def test_subscriptions_go_through_scoped_bus(self, core, make_definition):
        received = []
        definition = make_definition(
            messages=PluginMessages(
                subscriptions=[MessageSubscription(type="client.created", handler=received.append, source="clients")]
            )
        )
        await core.registry.register(definition)

        core.messages.send("client.created")
        core.messages.create_scoped("clients").send("client.created")
        core.messages.create_scoped("clients").send("client.created", target="someone-else")
        await core.messages.drain()

        assert len(received) == 1
        assert received[0].source == "clients"

    @pytest.mark.asyncio
    async def test_routes_and_navigation_registered(self, core, make_definition):
        routes = PluginRoutes(
            base_path="/sample",
            routes=[RouteDefinition(path="/"), RouteDefinition(path="/:id")],
            navigation=[NavigationItem(id="sample", label="Sample", path="/sample")],
        )

        await core.registry.register(make_definition(routes=routes))

        paths = [r.full_path for r in core.routes.get_all_routes()]
        assert paths == ["/sample", "/sample/:id"]
        assert all(r.plugin_id == "sample" for r in core.routes.get_all_routes())
        assert [n.id for n in core.routes.get_navigation()] == ["sample"]

    @pytest.mark.asyncio
    async def test_load_listener_receives_instance(self, core, make_definition):
        loaded = []
        core.registry.on_load(loaded.append)

        await core.registry.register(make_definition())

        assert loaded[0].id == "sample"
        assert loaded[0].status == PluginStatus.ENABLED

    @pytest.mark.asyncio
    async def test_store_publishes_status_snapshots(self, core, make_definition):
        snapshots = []
        core.registry.get_store().subscribe(snapshots.append)

        await core.registry.register(make_definition())

        assert snapshots[0] == {}
        statuses = [snap["sample"].status for snap in snapshots[1:]]
        assert statuses == [PluginStatus.LOADING, PluginStatus.ENABLED]
        # Each change is a new snapshot, earlier ones are untouched
        assert snapshots[1]["sample"].status == PluginStatus.LOADING

    @pytest.mark.asyncio
    async def test_stores_exposed_on_instance(self, core, make_definition):
        counter = Observable(0)

        await core.registry.register(make_definition(stores=PluginStores(readable={"counter": counter})))

        assert core.registry.get("sample").stores.readable["counter"] is counter


class TestRegisterFailure:
    """Failures after the plugin entered the table."""

    @pytest.mark.asyncio
    async def test_setup_failure_marks_error_and_rethrows(self, core, make_definition):
        error = RuntimeError("setup exploded")
        calls = []
        hooks = RecordingHooks(calls)
        errors, loaded = [], []
        core.registry.on_error(lambda plugin_id, e: errors.append((plugin_id, e)))
        core.registry.on_load(loaded.append)

        def setup(context):
            raise error

        with pytest.raises(RuntimeError) as exc_info:
            await core.registry.register(make_definition(lifecycle=hooks, setup=setup))

        assert exc_info.value is error
        instance = core.registry.get("sample")
        assert instance.status == PluginStatus.ERROR
        assert instance.error == "setup exploded"
        assert errors == [("sample", error)]
        assert hooks.errors == [error]
        assert loaded == []
        assert "on_load" not in calls

    @pytest.mark.asyncio
    async def test_before_load_failure_marks_error(self, core, make_definition):
        setup = MagicMock()
        hooks = RecordingHooks([], fail_on="on_before_load")

        with pytest.raises(RuntimeError, match="on_before_load failed"):
            await core.registry.register(make_definition(lifecycle=hooks, setup=setup))

        setup.assert_not_called()
        assert core.registry.get("sample").status == PluginStatus.ERROR
        assert len(hooks.errors) == 1

    @pytest.mark.asyncio
    async def test_failing_error_listener_does_not_mask_error(self, core, make_definition, caplog):
        def broken_listener(plugin_id, error):
            raise ValueError("listener broke")

        core.registry.on_error(broken_listener)

        def setup(context):
            raise RuntimeError("setup exploded")

        with caplog.at_level(logging.ERROR):
            with pytest.raises(RuntimeError, match="setup exploded"):
                await core.registry.register(make_definition(setup=setup))

        assert "Error listener failed for plugin sample" in caplog.text


class TestUnregister:
    """Teardown and removal."""

    @pytest.mark.asyncio
    async def test_removes_plugin_and_contributions(self, core, make_definition):
        calls = []
        unloaded = []
        core.registry.on_unload(unloaded.append)
        definition = make_definition(
            lifecycle=RecordingHooks(calls),
            teardown=lambda: calls.append("teardown"),
            routes=PluginRoutes(
                base_path="/sample",
                routes=[RouteDefinition(path="/")],
                navigation=[NavigationItem(id="sample", label="Sample", path="/sample")],
            ),
            messages=PluginMessages(
                handlers={"ping": lambda m: "pong"},
                subscriptions=[MessageSubscription(type="client.*", handler=lambda m: None)],
            ),
        )
        await core.registry.register(definition)
        assert core.messages.subscription_count() == 2
        calls.clear()

        await core.registry.unregister("sample")

        assert calls == ["on_unload", "teardown"]
        assert unloaded == ["sample"]
        assert not core.registry.has("sample")
        assert core.registry.get_context("sample") is None
        assert core.routes.get_all_routes() == []
        assert core.routes.get_navigation() == []
        assert core.messages.subscription_count() == 0

    @pytest.mark.asyncio
    async def test_removes_child_routes(self, core, make_definition):
        routes = PluginRoutes(
            base_path="/clients",
            routes=[RouteDefinition(path="/", children=[RouteDefinition(path="/[id]")])],
        )
        await core.registry.register(make_definition("clients", routes=routes))
        assert [r.full_path for r in core.routes.get_all_routes()] == ["/clients", "/clients/[id]"]
        assert core.registry.get("clients").to_dict()["routes"] == ["/clients", "/clients/[id]"]

        await core.registry.unregister("clients")

        assert core.routes.get_all_routes() == []
        assert core.routes.match_route("/clients/c1") is None

    @pytest.mark.asyncio
    async def test_can_register_again_after_unregister(self, core, make_definition):
        await core.registry.register(make_definition())
        await core.registry.unregister("sample")

        await core.registry.register(make_definition())

        assert core.registry.get("sample").status == PluginStatus.ENABLED

    @pytest.mark.asyncio
    async def test_unknown_plugin(self, core, make_definition):
        await core.registry.register(make_definition())
        before = core.registry.get_all()

        with pytest.raises(PluginNotRegisteredError, match="not registered"):
            await core.registry.unregister("missing-id")

        assert core.registry.get_all() == before

    @pytest.mark.asyncio
    async def test_teardown_failure_leaves_plugin_unloading(self, core, make_definition):
        errors = []
        core.registry.on_error(lambda plugin_id, e: errors.append(plugin_id))

        def teardown():
            raise RuntimeError("teardown exploded")

        await core.registry.register(make_definition(teardown=teardown))

        with pytest.raises(RuntimeError, match="teardown exploded"):
            await core.registry.unregister("sample")

        assert core.registry.get("sample").status == PluginStatus.UNLOADING
        assert errors == ["sample"]

    @pytest.mark.asyncio
    async def test_unsubscribed_listener_not_called(self, core, make_definition):
        unloaded = []
        unsubscribe = core.registry.on_unload(unloaded.append)
        unsubscribe()
        unsubscribe()

        await core.registry.register(make_definition())
        await core.registry.unregister("sample")

        assert unloaded == []


class TestEnableDisable:
    """Status toggles."""

    @pytest.mark.asyncio
    async def test_disable_then_enable(self, core, make_definition):
        calls = []
        await core.registry.register(make_definition(lifecycle=RecordingHooks(calls)))

        await core.registry.disable("sample")
        assert core.registry.get("sample").status == PluginStatus.DISABLED

        await core.registry.enable("sample")
        assert core.registry.get("sample").status == PluginStatus.ENABLED
        assert calls[-2:] == ["on_disable", "on_enable"]

    @pytest.mark.asyncio
    async def test_hook_failure_keeps_status(self, core, make_definition):
        hooks = RecordingHooks([], fail_on="on_disable")
        await core.registry.register(make_definition(lifecycle=hooks))

        with pytest.raises(RuntimeError, match="on_disable failed"):
            await core.registry.disable("sample")

        assert core.registry.get("sample").status == PluginStatus.ENABLED

    @pytest.mark.asyncio
    async def test_unknown_plugin(self, core):
        with pytest.raises(PluginNotRegisteredError):
            await core.registry.enable("missing-id")
        with pytest.raises(PluginNotRegisteredError):
            await core.registry.disable("missing-id")

    @pytest.mark.asyncio
    async def test_error_status_cannot_be_toggled(self, core, make_definition):
        def setup(context):
            raise RuntimeError("setup exploded")

        with pytest.raises(RuntimeError):
            await core.registry.register(make_definition(setup=setup))

        with pytest.raises(PluginStateError, match="Cannot enable plugin sample while it is error"):
            await core.registry.enable("sample")
        with pytest.raises(PluginStateError):
            await core.registry.disable("sample")

        assert core.registry.get("sample").status == PluginStatus.ERROR

    @pytest.mark.asyncio
    async def test_stuck_unloading_cannot_be_toggled(self, core, make_definition):
        def teardown():
            raise RuntimeError("teardown exploded")

        await core.registry.register(make_definition(teardown=teardown))
        with pytest.raises(RuntimeError):
            await core.registry.unregister("sample")

        with pytest.raises(PluginStateError, match="while it is unloading"):
            await core.registry.enable("sample")

        assert core.registry.get("sample").status == PluginStatus.UNLOADING


class TestInstanceSerialization:
    """PluginInstance.to_dict() for API responses."""

    @pytest.mark.asyncio
    async def test_to_dict(self, core, make_definition):
        definition = make_definition(
            dependencies=[PluginDependency(plugin_id="base", optional=True)],
            permissions=["storage:read"],
            routes=PluginRoutes(base_path="/sample", routes=[RouteDefinition(path="/list")]),
        )
        await core.registry.register(definition)

        data = core.registry.get("sample").to_dict()

        assert data["id"] == "sample"
        assert data["status"] == "enabled"
        assert data["dependencies"] == ["base@*"]
        assert data["permissions"] == ["storage:read"]
        assert data["routes"] == ["/sample/list"]
        assert data["methods"] == []
        assert data["error"] is None
