"""
Async bridge for dramatiq actors.

Actors are synchronous and run on worker threads. Each thread keeps one
event loop for its lifetime, and every task opens its own NullPool
engine so no connection is ever shared between loops.
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.database import create_engine, create_session_maker

T = TypeVar("T")

_thread_local = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """Return this worker thread's event loop, creating it on first use."""
    loop = getattr(_thread_local, "loop", None)
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.loop = loop
        logger.debug(
            f"Created event loop for worker thread {threading.current_thread().name}"
        )
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run coroutine to completion on the thread's event loop."""
    return get_event_loop().run_until_complete(coro)


@asynccontextmanager
async def create_local_session(database_url: str) -> AsyncIterator[AsyncSession]:
    """
    Open a session on a task-local engine.

    Args:
        database_url: SQLAlchemy async URL

    Yields:
        AsyncSession; the engine is disposed on exit
    """
    local_engine = create_engine(database_url, use_null_pool=True)
    try:
        async with create_session_maker(local_engine)() as session:
            yield session
    finally:
        await local_engine.dispose()


async def run_in_local_session(
    database_url: str,
    operation: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """
    Await operation(session) inside create_local_session().

    Example:
        await run_in_local_session(
            url, lambda s: MembershipService(s, config).expire_memberships()
        )
    """
    async with create_local_session(database_url) as session:
        return await operation(session)
