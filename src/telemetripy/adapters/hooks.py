"""Process-wide hooks that report uncaught exceptions.

Covers uncaught exceptions on the main thread (``sys.excepthook``), in
other threads (``threading.excepthook``) and in asyncio tasks nobody
awaited (the loop exception handler). Each hook chains to whatever was
installed before and is restored on ``uninstall``.
"""

import asyncio
import logging
import sys
import threading
from collections.abc import Callable
from types import TracebackType
from typing import Any

_logger = logging.getLogger(__name__)

ErrorCallback = Callable[[BaseException, dict[str, Any] | None], None]


class GlobalErrorHooks:
    """Installs and removes uncaught-exception hooks.

    Args:
        on_error: Called with the exception and optional extra info.
    """

    def __init__(self, on_error: ErrorCallback) -> None:
        self._on_error = on_error
        self._previous_excepthook: Callable[..., Any] | None = None
        self._previous_threading_hook: Callable[..., Any] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_loop_handler: Callable[..., Any] | None = None
        self.installed = False

    def install(self) -> None:
        if self.installed:
            return
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._excepthook
        self._previous_threading_hook = threading.excepthook
        threading.excepthook = self._threading_hook
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
        if self._loop is not None:
            self._previous_loop_handler = self._loop.get_exception_handler()
            self._loop.set_exception_handler(self._loop_handler)
        self.installed = True

    def uninstall(self) -> None:
        if not self.installed:
            return
        if sys.excepthook == self._excepthook and self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
        if (
            threading.excepthook == self._threading_hook
            and self._previous_threading_hook is not None
        ):
            threading.excepthook = self._previous_threading_hook
        if self._loop is not None and not self._loop.is_closed():
            if self._loop.get_exception_handler() == self._loop_handler:
                self._loop.set_exception_handler(self._previous_loop_handler)
        self._loop = None
        self.installed = False

    def _report(self, error: BaseException, info: dict[str, Any] | None = None) -> None:
        try:
            self._on_error(error, info)
        except Exception:
            _logger.warning("Error hook callback failed", exc_info=True)

    def _excepthook(
        self,
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_tb: TracebackType | None,
    ) -> None:
        if not issubclass(exc_type, KeyboardInterrupt):
            self._report(exc_value, {"source": "excepthook"})
        if self._previous_excepthook is not None:
            self._previous_excepthook(exc_type, exc_value, exc_tb)

    def _threading_hook(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_value is not None:
            thread_name = args.thread.name if args.thread is not None else ""
            self._report(args.exc_value, {"source": "thread", "thread": thread_name})
        if self._previous_threading_hook is not None:
            self._previous_threading_hook(args)

    def _loop_handler(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exception = context.get("exception")
        if isinstance(exception, BaseException):
            self._report(exception, {"source": "asyncio"})
        else:
            message = context.get("message", "Unhandled exception in event loop")
            self._report(
                RuntimeError(f"Unhandled Promise Rejection: {message}"), {"source": "asyncio"}
            )
        if self._previous_loop_handler is not None:
            self._previous_loop_handler(loop, context)
        else:
            loop.default_exception_handler(context)
