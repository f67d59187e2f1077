from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from supportbot.core.config import settings
from supportbot.core.exceptions import ExternalCallbackError

T = TypeVar("T")


def resolve_timeout(timeout_seconds: Optional[float]) -> float:
    if timeout_seconds is None or timeout_seconds <= 0:
        return float(settings.SUPPORT_CALLBACK_TIMEOUT_SECONDS)
    return float(timeout_seconds)


async def call_with_timeout(
    name: str,
    factory: Callable[[], Awaitable[T]],
    timeout_seconds: Optional[float],
) -> T:
    """Await one external callback, bounded in time. Single attempt, no retries."""
    try:
        return await asyncio.wait_for(factory(), timeout=resolve_timeout(timeout_seconds))
    except asyncio.TimeoutError as exc:
        raise ExternalCallbackError(name, "timed out") from exc
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        raise ExternalCallbackError(name, str(exc) or exc.__class__.__name__) from exc
