"""
Tests for the task executor and task handles.
"""
import threading

import pytest

from app.core.errors import IntegrationTimeoutError, IntegrationUnavailableError
from app.core.logging import correlation_id_var
from app.core.tasks import TaskExecutor


@pytest.fixture
def executor():
    executor = TaskExecutor(max_workers=2)
    yield executor
    executor.shutdown(wait=True)


def test_result_returns_value(executor):
    handle = executor.submit(lambda a, b: a + b, 2, 3, name="add")
    assert handle.result(timeout=5) == 5
    assert handle.done()


def test_result_reraises_task_exception(executor):
    def boom():
        raise IntegrationUnavailableError("SPEEDPAY", "down")

    handle = executor.submit(boom, name="boom", integration="SPEEDPAY")
    with pytest.raises(IntegrationUnavailableError):
        handle.result(timeout=5)


def test_result_timeout_becomes_integration_timeout(executor):
    release = threading.Event()
    handle = executor.submit(release.wait, 5, name="slow", integration="CLUE")
    try:
        with pytest.raises(IntegrationTimeoutError) as exc_info:
            handle.result(timeout=0.05)
        assert exc_info.value.integration == "CLUE"
    finally:
        release.set()


def test_cancel_queued_task():
    executor = TaskExecutor(max_workers=1)
    release = threading.Event()
    try:
        executor.submit(release.wait, 5, name="blocker")
        queued = executor.submit(lambda: "never", name="queued", integration="RMV")
        assert queued.cancel() is True
        with pytest.raises(IntegrationUnavailableError):
            queued.result(timeout=1)
    finally:
        release.set()
        executor.shutdown(wait=True)


def test_correlation_id_is_copied_into_task(executor):
    token = correlation_id_var.set("trace-123")
    try:
        handle = executor.submit(correlation_id_var.get, name="read-context")
    finally:
        correlation_id_var.reset(token)
    assert handle.result(timeout=5) == "trace-123"


@pytest.mark.asyncio
async def test_wait_from_async_code(executor):
    handle = executor.submit(lambda: {"ok": True}, name="async")
    assert await handle.wait(timeout=5) == {"ok": True}


@pytest.mark.asyncio
async def test_wait_timeout(executor):
    release = threading.Event()
    handle = executor.submit(release.wait, 5, name="slow-async", integration="RMV")
    try:
        with pytest.raises(IntegrationTimeoutError):
            await handle.wait(timeout=0.05)
    finally:
        release.set()
