"""
Bounded Poller.

Fixed-interval retry loop with a hard wall-clock deadline, used to wait on
remote analysis jobs that have no push channel. Errors during polling are
recorded and retried; only the deadline surfaces to the caller.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ..core.errors import (
    ExternalAnalysisTimeoutError,
    ExternalAnalysisTransientError,
    get_error_message,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PollSession:
    job_id: str
    deadline: float
    retry_interval_ms: int
    last_error: Optional[ExternalAnalysisTransientError] = None


async def poll_until_success(
    fetch_status: Callable[[], Awaitable[T]],
    is_success: Callable[[T], bool],
    max_wait_ms: int,
    retry_interval_ms: int,
    *,
    job_id: str = "",
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call `fetch_status` until it reports success or the deadline passes.

    Args:
        fetch_status: Fetches the current job status. May raise.
        is_success: Decides whether a status is final.
        max_wait_ms: Deadline, measured from the first call.
        retry_interval_ms: Pause between attempts.
        job_id: Used in log messages only.
        clock: Seconds, monotonic. Injected by tests.
        sleep: Async sleep taking seconds. Injected by tests.

    Returns:
        The first successful status, or the last unsuccessful one if the
        deadline passed and the final attempt did not raise.

    Raises:
        ExternalAnalysisTimeoutError: If the deadline passed and the final
        attempt raised (or no attempt ever returned).
    """
    session = PollSession(
        job_id=job_id,
        deadline=clock() + max_wait_ms / 1000,
        retry_interval_ms=retry_interval_ms,
    )
    last_response: Optional[T] = None
    have_response = False

    while True:
        try:
            response = await fetch_status()
            session.last_error = None
            last_response, have_response = response, True
            if is_success(response):
                return response
        except Exception as e:
            session.last_error = ExternalAnalysisTransientError(get_error_message(e))
            logger.debug(f"Polling job {session.job_id or '?'} failed, will retry: {e}")

        if clock() >= session.deadline:
            break
        await sleep(session.retry_interval_ms / 1000)

    if session.last_error is None and have_response:
        logger.warning(f"Job {session.job_id or '?'} did not succeed within {max_wait_ms}ms")
        return last_response

    last_message = get_error_message(session.last_error) if session.last_error else ""
    raise ExternalAnalysisTimeoutError(
        f"No successful response after {max_wait_ms}ms. {last_message}".rstrip()
    )
