"""
Call Timeouts

Architectural Intent:
- Every store, ticket and notification call made by the loop is bounded
- A timeout is re-raised as the error type the caller already handles, so
  it is treated as a transient or persistence failure and never crashes
  the loop
"""

import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


async def bounded(
    awaitable: Awaitable[T],
    timeout: float,
    error_cls: type[Exception],
    what: str,
) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except TimeoutError as e:
        raise error_cls(f"{what} timed out after {timeout}s") from e
