"""
Process-level wiring of the permission store and the control channel.

`ControlPlane` is what the rest of the application talks to:

- `is_authorized(chat_id, user_id)` for the chat and file-serving layers
- `request_reload()` for a synchronous manual reload (chat admin command)
- `enqueue(command)` for fire-and-forget commands from any thread

Commands coming from the FIFO and from `enqueue` go through the same
`dispatch` coroutine, so there is one reload path and one shutdown path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional

from file2link.config import AppConfig
from file2link.control.listener import ControlListener
from file2link.control.protocol import ControlCommand
from file2link.control.scheduler import RefreshScheduler
from file2link.permissions.parser import ensure_policy_file
from file2link.permissions.store import PolicyStore, ReloadResult, file_source

logger = logging.getLogger(__name__)


class ControlPlane:
    def __init__(self, config: AppConfig, *, store: Optional[PolicyStore] = None) -> None:
        self.config = config
        self.store = store or PolicyStore(file_source(config.permissions_path))
        self.scheduler = RefreshScheduler(
            lambda: self.request_reload(trigger="scheduler"),
            config.refresh_interval_seconds,
        )
        self.listener: Optional[ControlListener] = None
        self.stop_event: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._commands: Optional["asyncio.Queue[ControlCommand]"] = None
        self._tasks: List["asyncio.Task[Any]"] = []
        self._shutdown_hooks: List[Callable[[], Any]] = []

    # Query / reload interface used by the chat and HTTP layers.

    def is_authorized(self, chat_id: int, user_id: int) -> bool:
        return self.store.authorize(chat_id, user_id)

    def request_reload(self, *, trigger: str = "manual") -> ReloadResult:
        return self.store.reload(trigger=trigger)

    def load_initial(self) -> ReloadResult:
        """
        First load before serving. Failure is not fatal: the store stays on the
        deny-all policy until a later reload succeeds.
        """
        if self.config.bootstrap_permissions:
            try:
                ensure_policy_file(self.config.permissions_path, allow_all=self.config.bootstrap_allow_all)
            except OSError as e:
                logger.error("Failed to create initial permissions file %s: %s", self.config.permissions_path, e)

        result = self.request_reload(trigger="startup")
        if not result.ok:
            logger.error("No valid permissions loaded at startup, denying all access: %s", result.error)
        return result

    def add_shutdown_hook(self, hook: Callable[[], Any]) -> None:
        self._shutdown_hooks.append(hook)

    @property
    def stopping(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    # Command handling.

    def enqueue(self, command: ControlCommand) -> None:
        """Queue a command for the dispatcher. Safe to call from any thread."""
        if self._loop is None or self._commands is None:
            raise RuntimeError("ControlPlane is not running")
        self._loop.call_soon_threadsafe(self._commands.put_nowait, command)

    async def dispatch(self, command: ControlCommand) -> None:
        if command is ControlCommand.RELOAD:
            if self.stopping:
                logger.info("Ignoring reload requested during shutdown")
                return
            result = await asyncio.to_thread(self.request_reload, trigger="control")
            if not result.ok:
                logger.warning("Failed to load new permissions config, using old one: %s", result.error)
        elif command is ControlCommand.SHUTDOWN:
            self.initiate_shutdown()

    def initiate_shutdown(self) -> None:
        if self.stop_event is None or self.stop_event.is_set():
            return
        logger.info("Shutting down")
        self.stop_event.set()
        for hook in self._shutdown_hooks:
            try:
                hook()
            except Exception:
                logger.exception("Shutdown hook failed")

    async def _consume_commands(self) -> None:
        assert self._commands is not None and self.stop_event is not None
        while not self.stop_event.is_set():
            get_task = asyncio.ensure_future(self._commands.get())
            stop_task = asyncio.ensure_future(self.stop_event.wait())
            try:
                done, _ = await asyncio.wait({get_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                stop_task.cancel()
            if get_task not in done:
                get_task.cancel()
                break
            await self.dispatch(get_task.result())

    # Lifecycle.

    async def start(self) -> None:
        """
        Open the control pipe and start the background units.

        Raises ChannelError when the pipe cannot be created or opened; callers
        must treat that as fatal.
        """
        self._loop = asyncio.get_running_loop()
        self.stop_event = asyncio.Event()
        self._commands = asyncio.Queue()

        self.listener = ControlListener(self.config.pipe_path, self.dispatch, stop_event=self.stop_event)
        await self.listener.open()

        self._tasks = [
            asyncio.create_task(self.listener.run(), name="control-listener"),
            asyncio.create_task(self.scheduler.run(self.stop_event), name="permissions-refresh"),
            asyncio.create_task(self._consume_commands(), name="control-dispatch"),
        ]

    async def stop(self) -> None:
        """Signal every unit to stop and wait for them to release their resources."""
        self.initiate_shutdown()
        if not self._tasks:
            return
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, res in zip(self._tasks, results):
            if isinstance(res, BaseException) and not isinstance(res, asyncio.CancelledError):
                logger.error("Background task %s ended with error: %s", task.get_name(), res)
        self._tasks = []
        self._loop = None
        logger.info("Control plane stopped")

