"""
Graceful shutdown for the web server and background jobs.

On SIGINT/SIGTERM the manager stops accepting new work, waits for tracked
tasks (e.g. a reservation sweep in progress) and then runs the registered
cleanup handlers in order: stop periodic tasks, close the payment gateway
HTTP session, dispose the database engine.
"""

import asyncio
import logging
import signal
from datetime import datetime
from typing import Awaitable, Callable, List, Optional


class GracefulShutdownManager:

    def __init__(self, timeout: int = 30):
        """
        Args:
            timeout: Maximum time in seconds to wait for tracked tasks
        """
        self.timeout = timeout
        self.shutdown_event = asyncio.Event()
        self.shutdown_completed = asyncio.Event()
        self.shutdown_handlers: List[Callable[[], Awaitable[None]]] = []
        self.active_tasks: set = set()
        self.is_shutting_down = False
        self.shutdown_initiated_at: Optional[datetime] = None

    def register_shutdown_handler(self, handler: Callable[[], Awaitable[None]]):
        """Handlers are awaited in registration order."""
        self.shutdown_handlers.append(handler)
        logging.debug(f"Graceful shutdown: registered handler {getattr(handler, '__name__', handler)}")

    def track_task(self, task: asyncio.Task):
        self.active_tasks.add(task)
        task.add_done_callback(self.active_tasks.discard)

    async def initiate_shutdown(self, signal_name: Optional[str] = None):
        if self.is_shutting_down:
            logging.warning("Graceful shutdown: already shutting down, ignoring duplicate request")
            return

        self.is_shutting_down = True
        self.shutdown_initiated_at = datetime.now()
        signal_info = f" (signal: {signal_name})" if signal_name else ""
        logging.info(f"Graceful shutdown: initiating{signal_info}")
        self.shutdown_event.set()

        if self.active_tasks:
            logging.info(f"Graceful shutdown: waiting for {len(self.active_tasks)} active tasks")
            done, pending = await asyncio.wait(set(self.active_tasks), timeout=self.timeout)
            for task in pending:
                logging.warning(f"Graceful shutdown: cancelling task {task.get_name()}")
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        for handler in self.shutdown_handlers:
            handler_name = getattr(handler, "__name__", repr(handler))
            try:
                await handler()
            except Exception as e:
                logging.error(f"Graceful shutdown: handler {handler_name} failed: {e}", exc_info=True)

        duration = (datetime.now() - self.shutdown_initiated_at).total_seconds()
        logging.info(f"Graceful shutdown: completed in {duration:.2f}s")
        self.shutdown_completed.set()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> bool:
        """Route SIGINT/SIGTERM to initiate_shutdown. Returns False where unsupported (Windows)."""
        try:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(
                    sig,
                    lambda s=sig: loop.create_task(self.initiate_shutdown(signal.Signals(s).name)),
                )
        except (NotImplementedError, RuntimeError) as e:
            logging.warning(f"Graceful shutdown: signal handlers not installed: {e}")
            return False
        logging.info("Graceful shutdown: signal handlers registered (SIGINT, SIGTERM)")
        return True

    async def wait_for_shutdown(self):
        """Block until shutdown handlers have finished."""
        await self.shutdown_completed.wait()
