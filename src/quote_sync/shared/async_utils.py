"""Async helpers to keep event loop shutdown quiet."""

import asyncio
from typing import Any, Coroutine, Dict, TypeVar

T = TypeVar("T")

_SHUTDOWN_NOISE = ("Unclosed client session", "Unclosed connector")


def suppress_shutdown_noise(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    """
    Ignore aiohttp's unclosed-session warnings raised during loop teardown.

    They surface when the process is interrupted while a pricing request is
    still open. Other exceptions go to the default handler.
    """
    message = context.get("message", "") or ""
    if any(noise in message for noise in _SHUTDOWN_NOISE):
        return
    loop.default_exception_handler(context)


def create_event_loop() -> asyncio.AbstractEventLoop:
    """Create an event loop with the shutdown noise filter attached."""
    loop = asyncio.new_event_loop()
    loop.set_exception_handler(suppress_shutdown_noise)
    return loop


def run_coroutine(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a coroutine on a fresh event loop with the noise filter installed.

    Mirrors asyncio.run but cancels leftover tasks (pending debounce timers,
    batch requests) before closing the loop.
    """
    loop = create_event_loop()
    asyncio.set_event_loop(loop)

    try:
        return loop.run_until_complete(coro)
    finally:
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()

            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))

            loop.run_until_complete(loop.shutdown_asyncgens())
        finally:
            asyncio.set_event_loop(None)
            loop.close()
