import asyncio
from collections import OrderedDict
from collections.abc import AsyncGenerator, Awaitable
from contextlib import asynccontextmanager
from functools import wraps

from aiojobs import Scheduler


@asynccontextmanager
async def get_scheduler() -> AsyncGenerator[Scheduler]:
    """
    Get a scheduler for long-running background jobs.

    Jobs still running when the scheduler closes are given 10 secs to finish, a reminder tick is expected to be shorter.
    """
    async with Scheduler(
        close_timeout=10,
    ) as scheduler:
        yield scheduler


def lru_acache(maxsize: int = 128):
    """
    Caches an async function's return value each time it is called.

    Values are scoped to the running event loop, as HTTP sessions cannot be shared across loops. If the maxsize is reached, the least recently used value is removed.
    """

    def decorator(func):
        cache: OrderedDict[tuple, Awaitable] = OrderedDict()

        @wraps(func)
        async def wrapper(*args, **kwargs) -> Awaitable:
            # Key on event loop, args and kwargs, frozenset makes kwargs hashable
            key = (
                id(asyncio.get_event_loop()),
                args,
                frozenset(kwargs.items()),
            )

            if key in cache:
                cache.move_to_end(key)
                return cache[key]

            value = await func(*args, **kwargs)
            cache[key] = value
            cache.move_to_end(key)

            if len(cache) > maxsize:
                cache.popitem(last=False)

            return value

        return wrapper

    return decorator
