"""Plugin lifecycle hooks."""

import inspect
from typing import Any, Awaitable, Callable, Optional, Union

HookCallable = Callable[[], Union[None, Awaitable[None]]]


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class LifecycleHooks:
    """Hooks the registry invokes while driving a plugin through its lifecycle.

    Every hook is a no-op by default; subclass and override what the plugin needs.
    Order on registration: on_before_load -> (setup) -> on_load.
    """

    async def on_before_load(self) -> None:
        pass

    async def on_load(self) -> None:
        pass

    async def on_enable(self) -> None:
        pass

    async def on_disable(self) -> None:
        pass

    async def on_unload(self) -> None:
        pass

    def on_error(self, error: BaseException) -> None:
        pass


class CallbackHooks(LifecycleHooks):
    """LifecycleHooks built from individual callables (sync or async)."""

    def __init__(
        self,
        on_before_load: Optional[HookCallable] = None,
        on_load: Optional[HookCallable] = None,
        on_enable: Optional[HookCallable] = None,
        on_disable: Optional[HookCallable] = None,
        on_unload: Optional[HookCallable] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ):
        self._callbacks = {
            "on_before_load": on_before_load,
            "on_load": on_load,
            "on_enable": on_enable,
            "on_disable": on_disable,
            "on_unload": on_unload,
        }
        self._on_error = on_error

    async def _run(self, name: str) -> None:
        callback = self._callbacks[name]
        if callback is not None:
            await maybe_await(callback())

    async def on_before_load(self) -> None:
        await self._run("on_before_load")

    async def on_load(self) -> None:
        await self._run("on_load")

    async def on_enable(self) -> None:
        await self._run("on_enable")

    async def on_disable(self) -> None:
        await self._run("on_disable")

    async def on_unload(self) -> None:
        await self._run("on_unload")

    def on_error(self, error: BaseException) -> None:
        if self._on_error is not None:
            self._on_error(error)
