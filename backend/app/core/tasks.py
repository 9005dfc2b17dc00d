"""
Worker pool for calls that must not run on the request path.

Integration calls are submitted here and the caller gets a ``TaskHandle`` back.
The handle can be blocked on with a timeout, polled, awaited from async code
or cancelled.
"""
import asyncio
import contextvars
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import CancelledError as FutureCancelled
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Generic, Optional, TypeVar

from app.core.errors import IntegrationTimeoutError, IntegrationUnavailableError
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class TaskHandle(Generic[T]):
    """Handle on a submitted task."""

    def __init__(self, future: "Future[T]", name: str, integration: Optional[str] = None):
        self.future = future
        self.name = name
        self.integration = integration

    def done(self) -> bool:
        return self.future.done()

    def cancel(self) -> bool:
        """Cancel the task if it has not started yet."""
        cancelled = self.future.cancel()
        if cancelled:
            logger.info(f"Task cancelled: {self.name}")
        return cancelled

    def result(self, timeout: Optional[float] = None) -> T:
        """Block until the task finishes and return its value.

        Raises the task's own exception, or ``IntegrationTimeoutError`` when
        the wait exceeds ``timeout``. A timed out task is abandoned.
        """
        try:
            return self.future.result(timeout=timeout)
        except FutureTimeout:
            self.future.cancel()
            logger.warning(f"Task {self.name} abandoned after {timeout}s")
            raise IntegrationTimeoutError(
                self.integration or self.name,
                f"{self.integration or self.name} did not respond within {timeout} seconds",
            )
        except FutureCancelled:
            raise IntegrationUnavailableError(
                self.integration or self.name, f"Task {self.name} was cancelled"
            )

    async def wait(self, timeout: Optional[float] = None) -> T:
        """Await the task from async code without blocking the event loop."""
        try:
            return await asyncio.wait_for(asyncio.wrap_future(self.future), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Task {self.name} abandoned after {timeout}s")
            raise IntegrationTimeoutError(
                self.integration or self.name,
                f"{self.integration or self.name} did not respond within {timeout} seconds",
            )


class TaskExecutor:
    """Bounded thread pool owned by the composition root."""

    def __init__(self, max_workers: int = 64, thread_name_prefix: str = "umbrella-task"):
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=thread_name_prefix
        )

    def submit(
        self,
        fn: Callable[..., T],
        *args: Any,
        name: Optional[str] = None,
        integration: Optional[str] = None,
        **kwargs: Any,
    ) -> TaskHandle[T]:
        """Run ``fn`` on the pool; the caller's logging context goes with it."""
        context = contextvars.copy_context()
        future = self._executor.submit(context.run, fn, *args, **kwargs)
        return TaskHandle(future, name or getattr(fn, "__name__", "task"), integration)

    def shutdown(self, wait: bool = True) -> None:
        logger.info("Shutting down task executor")
        self._executor.shutdown(wait=wait, cancel_futures=True)
