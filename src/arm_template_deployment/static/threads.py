# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def run_in_daemon_thread(func: Callable[..., T], *args: Any) -> T:
    """
    Run a blocking call in a daemon thread and await its result.

    The thread is not joined on shutdown: a cancelled caller returns at once and the
    call finishes in the background, or dies with the process.
    """
    name = getattr(func, "__name__", "blocking call")
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def settle(result: Any, error: Exception | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def notify(result: Any, error: Exception | None) -> None:
        try:
            loop.call_soon_threadsafe(settle, result, error)
        except RuntimeError:
            # The loop is closed, nobody is waiting anymore
            logger.debug(f"Discarding result of {name}, the event loop is closed")

    def target() -> None:
        try:
            result = func(*args)
        except Exception as e:
            notify(None, e)
        else:
            notify(result, None)

    threading.Thread(target=target, name=f"blocking-{name}", daemon=True).start()

    try:
        return await future
    except asyncio.CancelledError:
        logger.warning(f"Stopped waiting for {name}, it is abandoned in the background")
        raise
