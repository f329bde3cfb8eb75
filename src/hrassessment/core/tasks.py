"""Background task runners that record each task's outcome on its owner."""

from __future__ import annotations

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Protocol, runtime_checkable

import pendulum
import structlog

from ..schemas.tasks import TaskRecord

FALLBACK_APPLIED = "fallback_applied"

TaskBody = Callable[[], Any]
FailureHandler = Callable[[BaseException], Any]


@runtime_checkable
class TaskOwner(Protocol):
    tasks: list[TaskRecord]


@runtime_checkable
class TaskRunner(Protocol):
    """Contract for dispatching detached work."""

    def submit(
        self,
        name: str,
        owner: TaskOwner,
        func: TaskBody,
        *,
        on_failure: FailureHandler | None = None,
    ) -> TaskRecord:
        """Record a pending task on ``owner`` and schedule ``func``."""


class _BaseTaskRunner:
    def __init__(self, *, now_provider: Any | None = None) -> None:
        self._now_provider = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    def _register(self, name: str, owner: TaskOwner) -> TaskRecord:
        record = TaskRecord(task_id=uuid.uuid4().hex, name=name)
        owner.tasks.append(record)
        return record

    def _execute(self, record: TaskRecord, func: TaskBody, on_failure: FailureHandler | None) -> None:
        record.status = "running"
        record.started_at = self._now_provider()
        try:
            with structlog.contextvars.bound_contextvars(task=record.name, task_id=record.task_id):
                result = func()
        except Exception as exc:
            record.error = f"{type(exc).__name__}: {exc}"
            self._logger.warning("task.failed", task=record.name, task_id=record.task_id, error=record.error)
            record.status = "failed"
            if on_failure is not None:
                try:
                    on_failure(exc)
                except Exception:
                    # The recovery path itself failed; the owner keeps the failed record.
                    self._logger.exception("task.fallback_failed", task=record.name, task_id=record.task_id)
                else:
                    record.status = FALLBACK_APPLIED
        else:
            record.status = FALLBACK_APPLIED if result == FALLBACK_APPLIED else "succeeded"
            self._logger.info("task.finished", task=record.name, task_id=record.task_id, status=record.status)
        finally:
            record.finished_at = self._now_provider()


class InlineTaskRunner(_BaseTaskRunner):
    """Runs tasks synchronously in the caller's thread."""

    def submit(
        self,
        name: str,
        owner: TaskOwner,
        func: TaskBody,
        *,
        on_failure: FailureHandler | None = None,
    ) -> TaskRecord:
        record = self._register(name, owner)
        self._execute(record, func, on_failure)
        return record


class ThreadTaskRunner(_BaseTaskRunner):
    """Runs tasks detached on a thread pool."""

    def __init__(self, *, max_workers: int = 4, now_provider: Any | None = None) -> None:
        super().__init__(now_provider=now_provider)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="assessment-task")
        self._futures: set[Future] = set()
        self._lock = threading.Lock()

    def submit(
        self,
        name: str,
        owner: TaskOwner,
        func: TaskBody,
        *,
        on_failure: FailureHandler | None = None,
    ) -> TaskRecord:
        record = self._register(name, owner)
        future = self._executor.submit(self._execute, record, func, on_failure)
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)
        return record

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)

    def wait(self, timeout: float | None = None) -> None:
        """Block until every submitted task has finished."""
        with self._lock:
            futures = list(self._futures)
        for future in futures:
            future.result(timeout=timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)


__all__ = [
    "FALLBACK_APPLIED",
    "InlineTaskRunner",
    "TaskOwner",
    "TaskRunner",
    "ThreadTaskRunner",
]
