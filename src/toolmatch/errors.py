"""Typed errors for the recommendation engine.

Input errors are rejected before reaching the engine. Strategy failures are
recovered locally by the fallback chain and never reach the caller.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from src.toolmatch.retrieval.models import SearchStrategy


class ToolMatchError(Exception):
    """Base class for all engine errors."""


class InvalidTaskError(ToolMatchError, ValueError):
    """Malformed or missing task name / preference shape. Never retried."""


class StoreUnavailableError(ToolMatchError):
    """Raised by store adapters when the backing store cannot be reached."""


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    STORE_UNAVAILABLE = "store_unavailable"
    EMPTY_RESULT = "empty_result"
    INSUFFICIENT_KNOWLEDGE = "insufficient_knowledge"
    UNEXPECTED = "unexpected"


class StrategyFailure(ToolMatchError):
    """A single retrieval strategy failed. The fallback chain moves on."""

    def __init__(
        self,
        strategy: "SearchStrategy",
        kind: FailureKind,
        message: str = "",
        cause: Optional[BaseException] = None,
    ) -> None:
        self.strategy = strategy
        self.kind = kind
        self.message = message or kind.value
        self.cause = cause
        super().__init__(f"{strategy.value}: {self.message}")


def categorize_error(exc: BaseException) -> FailureKind:
    """Map an arbitrary exception raised by a store to a FailureKind."""
    if isinstance(exc, StrategyFailure):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return FailureKind.TIMEOUT
    if isinstance(exc, (StoreUnavailableError, ConnectionError, OSError)):
        return FailureKind.STORE_UNAVAILABLE

    message = str(exc).lower()
    if "timeout" in message or "timed out" in message:
        return FailureKind.TIMEOUT
    if "unavailable" in message or "connection" in message or "not exist" in message:
        return FailureKind.STORE_UNAVAILABLE
    return FailureKind.UNEXPECTED
