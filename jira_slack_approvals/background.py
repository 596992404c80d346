"""Spawn work that must outlive the HTTP response that triggered it."""

from contextvars import copy_context
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

import structlog
from structlog.contextvars import bind_contextvars, get_contextvars

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="approval-bg")


def _report_failure(name: str, future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        structlog.get_logger().error(
            "background_task_failed",
            task=name,
            error=str(exc),
            exc_info=(type(exc), exc, exc.__traceback__),
        )


def run_async(
    func: Callable[..., Any],
    /,
    *args: Any,
    trace_id: str | None = None,
    **kwargs: Any,
) -> Future:
    """Submit *func* to the shared thread pool and return a Future.

    The caller's structlog context is copied into the worker, seeded with
    *trace_id* when given. Anything the task raises is logged as
    ``background_task_failed``; nobody waits on the returned future.
    """

    context = copy_context()
    if trace_id is not None:
        existing_trace = context.run(lambda: get_contextvars().get("trace_id"))
        if existing_trace != trace_id:
            context.run(lambda: bind_contextvars(trace_id=trace_id))

    def runner() -> Any:
        return context.run(func, *args, **kwargs)

    name = getattr(func, "__qualname__", repr(func))
    future = _executor.submit(runner)
    future.add_done_callback(lambda done: context.run(_report_failure, name, done))
    return future
