# =============================================================================
# personio/operations/base.py  -  Operation Registry
# =============================================================================
#
# Every logical operation the server exposes (a tool call or a resource read)
# is a handler registered here under a stable name, together with the
# pydantic model its arguments are validated against.  RequestDispatcher
# looks operations up by name; handlers never validate their own input.
# =============================================================================

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel

if TYPE_CHECKING:
    from personio.dispatcher import RequestDispatcher

Handler = Callable[["RequestDispatcher", Any], Awaitable[Any]]


class NoParams(BaseModel):
    """Argument model for operations that take no arguments."""


@dataclass(frozen=True)
class Operation:
    name: str
    params_model: type[BaseModel]
    handler: Handler
    mutation: bool = False
    description: str = ""


OPERATIONS: dict[str, Operation] = {}


def operation(name: str, params_model: type[BaseModel] = NoParams, *, mutation: bool = False):
    """Register the decorated coroutine as operation `name`."""

    def decorator(handler: Handler) -> Handler:
        if name in OPERATIONS:
            raise ValueError(f"Operation {name!r} registered twice")
        OPERATIONS[name] = Operation(
            name=name,
            params_model=params_model,
            handler=handler,
            mutation=mutation,
            description=(handler.__doc__ or "").strip().splitlines()[0] if handler.__doc__ else "",
        )
        return handler

    return decorator


# Personio speaks ISO dates and 24h wall-clock times
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def check_date_range(start: Optional[str], end: Optional[str]) -> None:
    """Raise ValueError unless both are real dates with end >= start."""
    parsed = [date.fromisoformat(value) for value in (start, end) if value is not None]
    if len(parsed) == 2 and parsed[1] < parsed[0]:
        raise ValueError("end_date must not be before start_date")
