# =============================================================================
# personio/context.py  -  Server Context (one per server instance)
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Builds the component graph from a PersonioConfig and owns its lifecycle:
#
#     httpx.AsyncClient -> CredentialBroker -> PersonioClient
#                                   \               |
#                            ErrorNormalizer   ResponseCache
#                                                   |
#     ThrottledExecutor ------------------> RequestDispatcher
#
#   Everything shared across calls hangs off this object.  There are no
#   module-level singletons, so tests build as many isolated contexts as
#   they like.
#
# SHUTDOWN ORDER (aclose):
#   1. drop queued upstream calls
#   2. revoke the bearer token, if one was issued
#   3. flush the cache
#   4. close the HTTP connection pool
# =============================================================================

import logging
import time
from collections.abc import Callable
from typing import Optional

import httpx

from personio.auth import CredentialBroker
from personio.cache import ResponseCache
from personio.client import PersonioClient
from personio.config import PersonioConfig
from personio.dispatcher import RequestDispatcher
from personio.errors import ErrorNormalizer
from personio.throttle import ThrottledExecutor

logger = logging.getLogger(__name__)

RATE_LIMIT_INTERVAL = 60.0


class PersonioContext:
    def __init__(
        self,
        config: PersonioConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.http = httpx.AsyncClient(
            base_url=config.api_base_url,
            timeout=config.timeout,
            transport=transport,
        )
        self.broker = CredentialBroker.from_config(config, self.http, clock=clock)
        self.normalizer = ErrorNormalizer(secrets=self.broker.secrets)
        self.client = PersonioClient(self.http, self.broker, self.normalizer)
        self.cache = ResponseCache(config.cache_ttl, clock=clock)
        self.executor = ThrottledExecutor(
            concurrency_cap=config.rate_limit.burst_concurrency,
            interval_cap=config.rate_limit.requests_per_minute,
            interval=RATE_LIMIT_INTERVAL,
            clock=clock,
        )
        self.dispatcher = RequestDispatcher(
            self.client, self.cache, self.executor, self.normalizer
        )
        self._closed = False

    async def execute(self, operation_name: str, params: Optional[dict] = None):
        return await self.dispatcher.execute(operation_name, params)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        dropped = self.executor.clear()
        if dropped:
            logger.info(f"Dropped {dropped} queued upstream call(s) on shutdown")
        try:
            await self.client.aclose()
        finally:
            self.cache.flush()
            await self.http.aclose()

    async def __aenter__(self) -> "PersonioContext":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
