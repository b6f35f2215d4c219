from aiohttp import (
    AsyncResolver,
    ClientSession,
    ClientTimeout,
    DummyCookieJar,
    TCPConnector,
)
from aiohttp_retry import JitterRetry, RetryClient

from family_tasks.helpers.cache import lru_acache


@lru_acache()
async def _aiohttp_cookie_jar() -> DummyCookieJar:
    """
    Create a cookie jar mock for AIOHTTP.

    Neither JSONBin nor Telegram need cookies. Object is cached for performance.
    """
    return DummyCookieJar()


@lru_acache()
async def aiohttp_session() -> ClientSession:
    """
    Create an AIOHTTP session.

    Object is cached for performance. Callers pass their own per-request timeout, the session one is an upper bound.

    Returns a `ClientSession` instance.
    """
    return ClientSession(
        cookie_jar=await _aiohttp_cookie_jar(),
        trust_env=True,
        # Performance
        connector=TCPConnector(resolver=AsyncResolver()),
        # Reliability
        timeout=ClientTimeout(
            connect=5,
            total=60,
        ),
    )


@lru_acache()
async def retry_session() -> RetryClient:
    """
    Create an AIOHTTP client retrying on transport errors, with jitter.

    Only for idempotent-enough calls, where a duplicate is better than a loss (e.g. chat messages). Object is cached for performance.

    Returns a `RetryClient` instance.
    """
    return RetryClient(
        client_session=await aiohttp_session(),
        # Reliability
        retry_options=JitterRetry(
            attempts=3,
            max_timeout=8,
            start_timeout=0.8,
            statuses={429, 500, 502, 503, 504},
        ),
        raise_for_status=False,
    )
