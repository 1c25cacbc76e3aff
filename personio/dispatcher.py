# =============================================================================
# personio/dispatcher.py  -  Request Dispatcher
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   execute(operation_name, params) is the single entry point the MCP layer
#   calls.  For each logical call it walks this state machine:
#
#     Validating -> CacheCheck -> CacheHit                         (reads)
#                              -> Admitting -> Executing
#                                 -> Transforming -> CacheWrite    (reads)
#     Validating -> Admitting -> Executing
#                -> Invalidating -> Transforming                   (mutations)
#
#   Any state can fail.  The failure is normalized into one ErrorDescriptor
#   and raised as a PersonioError; the caller never gets a partial result
#   and never sees a raw httpx or pydantic exception.
#
# HOW OPERATIONS USE IT:
#   Handlers in personio/operations/ receive the dispatcher and build their
#   call out of three primitives:
#     read()          cached upstream read
#     read_derived()  cached value computed from other reads
#     mutate()        upstream write followed by cache invalidation
# =============================================================================

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Optional

import pydantic

from personio.cache import ResponseCache
from personio.client import PersonioClient
from personio.errors import ErrorNormalizer, PersonioError, ValidationError
from personio.operations import OPERATIONS, Operation
from personio.throttle import ThrottledExecutor

logger = logging.getLogger(__name__)


def _format_validation_error(name: str, exc: pydantic.ValidationError) -> ValidationError:
    errors = exc.errors(include_url=False, include_context=False, include_input=False)
    summary = "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'arguments'}: {error['msg']}"
        for error in errors
    )
    return ValidationError(f"Invalid arguments for {name}: {summary}", details=errors)


class RequestDispatcher:
    def __init__(
        self,
        client: PersonioClient,
        cache: ResponseCache,
        executor: ThrottledExecutor,
        normalizer: Optional[ErrorNormalizer] = None,
        operations: Optional[dict[str, Operation]] = None,
    ):
        self.client = client
        self.cache = cache
        self.executor = executor
        self.normalizer = normalizer or client.normalizer
        self.operations = OPERATIONS if operations is None else operations

    async def execute(self, operation_name: str, params: Optional[dict] = None) -> Any:
        try:
            operation = self._lookup(operation_name)
            arguments = self._validate(operation, params)
            logger.debug(f"{operation_name}: validated")
            return await operation.handler(self, arguments)
        except PersonioError as exc:
            logger.warning(f"{operation_name} failed: {exc.code}: {exc.message}")
            raise
        except Exception as exc:
            error = self.normalizer.to_exception(exc)
            logger.warning(f"{operation_name} failed: {error.code}: {error.message}")
            raise error from None

    def _lookup(self, name: str) -> Operation:
        try:
            return self.operations[name]
        except KeyError:
            raise ValidationError(f"Unknown operation: {name}") from None

    def _validate(self, operation: Operation, params: Optional[dict]) -> Any:
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise ValidationError(f"Arguments for {operation.name} must be an object")
        try:
            return operation.params_model.model_validate(params)
        except pydantic.ValidationError as exc:
            raise _format_validation_error(operation.name, exc) from None

    # -------------------------------------------------------------------------
    # Primitives used by operation handlers
    # -------------------------------------------------------------------------
    async def read(
        self,
        key: Optional[str],
        fetch: Callable[[], Awaitable[Any]],
        transform: Optional[Callable[[Any], Any]] = None,
        *,
        ttl: Optional[float] = None,
        cacheable: bool = True,
    ) -> Any:
        """Cache check, throttled upstream fetch, transform, cache write."""
        cacheable = cacheable and key is not None
        if cacheable:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        raw = await self.executor.execute(fetch)
        result = transform(raw) if transform is not None else raw

        if cacheable:
            self.cache.set(key, result, ttl)
        return result

    async def read_derived(
        self,
        key: str,
        build: Callable[[], Awaitable[Any]],
        *,
        ttl: Optional[float] = None,
    ) -> Any:
        """Like read(), but the value is computed by `build` from other reads."""
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        result = await build()
        self.cache.set(key, result, ttl)
        return result

    async def mutate(
        self,
        perform: Callable[[], Awaitable[Any]],
        transform: Optional[Callable[[Any], Any]] = None,
        *,
        invalidate: Iterable[str] = (),
    ) -> Any:
        """Throttled upstream write, drop the affected keys, then transform."""
        raw = await self.executor.execute(perform)
        # Keys are dropped once the write returns, whether or not transform succeeds
        keys = list(invalidate)
        if keys:
            self.cache.delete(*keys)
        return transform(raw) if transform is not None else raw
