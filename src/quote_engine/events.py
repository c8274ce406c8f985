"""
Callback dispatch for per-run progress sinks.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Any], Union[None, Awaitable[None]]]


async def dispatch(callback: Optional[ProgressCallback], event: Any) -> None:
    """
    Deliver an event to a sync or async callback.

    Sink failures are logged and never reach the caller.
    """
    if callback is None:
        return
    try:
        result = callback(event)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error(f"Progress callback failed: {e}")
