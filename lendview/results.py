"""Typed read results and the single place read failures are converted."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Generic, TypeVar, Union

from .errors import ReadError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: ReadError

    @property
    def ok(self) -> bool:
        return False

    def unwrap_or(self, default: T) -> T:
        return default


Result = Union[Ok[T], Err]


async def safe_read(
    awaitable: Awaitable[T], what: str = "", timeout: float | None = None
) -> Result[T]:
    """Await a ledger read and turn any failure into ``Err(ReadError)``.

    Timeouts are failures like any other. Cancellation is not swallowed.
    """
    try:
        if timeout is not None:
            return Ok(await asyncio.wait_for(awaitable, timeout))
        return Ok(await awaitable)
    except ReadError as e:
        logger.debug("Read %s failed (%s): %s", what, e.kind, e)
        return Err(e)
    except asyncio.TimeoutError:
        logger.debug("Read %s timed out", what)
        return Err(ReadError(f"{what or 'read'} timed out", kind=ReadError.TIMEOUT))
    except Exception as e:
        logger.debug("Read %s failed: %s", what, e)
        return Err(ReadError(f"{what or 'read'} failed: {e}", kind=ReadError.TRANSPORT))
