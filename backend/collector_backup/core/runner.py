"""Bridge from synchronous services to the async subprocess/driver layer."""

from __future__ import annotations

import asyncio
import threading
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


def run_sync(factory: Callable[[], Awaitable[T]]) -> T:
    """Run the coroutine produced by `factory` on a dedicated thread and loop.

    Services are called from FastAPI's threadpool and from the scheduler
    thread, either of which may already own a running loop, so the coroutine
    always gets its own thread. Exceptions are re-raised in the caller.
    """
    result_container: dict[str, object] = {}

    def _runner() -> None:
        try:
            result_container["result"] = asyncio.run(factory())
        except BaseException as exc:  # noqa: BLE001 - re-raised in caller thread
            result_container["error"] = exc

    thread = threading.Thread(target=_runner, daemon=True)
    thread.start()
    thread.join()
    if "error" in result_container:
        raise result_container["error"]  # type: ignore[misc]
    return result_container.get("result")  # type: ignore[return-value]
