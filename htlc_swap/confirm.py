"""
Waiting and retry primitives.

- wait_for_change: poll a liveness counter (e.g. wallet seqno) until it moves
  away from its pre-submission value, bounded by a deadline
- retry_read: retry an idempotent read with backoff

Submissions are never retried here.
"""

import time
import logging
from typing import Callable, TypeVar, Tuple, Type

from .errors import (
    HTLCError, Timeout, NotFound, DecodeError, ContractRevert, InvalidArgument,
    ProtocolViolation,
)

log = logging.getLogger(__name__)

T = TypeVar("T")

# Data or protocol preconditions: retrying cannot help
NON_RETRYABLE = (NotFound, DecodeError, ContractRevert, InvalidArgument, ProtocolViolation)


def wait_for_change(
    read: Callable[[], T],
    initial: T,
    deadline: float,
    poll_interval: float = 1.5,
    clock: Callable[[], float] = time.time,
    sleep: Callable[[float], None] = time.sleep,
    what: str = "confirmation",
) -> T:
    """
    Poll `read()` until it returns something other than `initial`.

    Read failures are logged and polling continues; the deadline is the
    only way out besides a change.

    Raises:
        Timeout: deadline reached with the value unchanged
    """
    while True:
        try:
            current = read()
        except HTLCError as e:
            log.warning(f"Read failed while waiting for {what}: {e}")
        else:
            if current != initial:
                return current

        remaining = deadline - clock()
        if remaining <= 0:
            raise Timeout(f"Timed out waiting for {what}")

        log.debug(f"Waiting for {what}...")
        sleep(min(poll_interval, remaining))


def retry_read(
    fn: Callable[[], T],
    attempts: int = 3,
    backoff: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: Tuple[Type[Exception], ...] = (HTLCError,),
) -> T:
    """
    Call an idempotent read, retrying transient failures with doubling backoff.

    NotFound, DecodeError, ContractRevert and argument errors are raised
    immediately.
    """
    if attempts < 1:
        raise InvalidArgument(f"attempts must be >= 1, got {attempts}")

    delay = backoff
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except NON_RETRYABLE:
            raise
        except retry_on as e:
            if attempt == attempts:
                raise
            log.warning(f"Read failed (attempt {attempt}/{attempts}): {e}, retrying in {delay:.1f}s")
            sleep(delay)
            delay *= 2
