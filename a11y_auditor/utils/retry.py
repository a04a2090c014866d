"""Linear-backoff retry helpers built on ``backoff``"""

import logging
from typing import Callable, Optional, Tuple, Type, TypeVar

import backoff

from ..errors import MaxRetriesExceededError, ScanCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear(base: float = 1.0, start: int = 2):
    """Wait generator yielding ``base * n`` for n = start, start + 1, ...

    The first retry waits ``start`` times the base delay, mirroring the
    attempt-number multiplier used for checker retries.
    """
    # Advance past the priming send() backoff performs
    yield
    n = start
    while True:
        yield base * n
        n += 1


def with_retry(
    fn: Callable[[], T],
    max_retries: int,
    delay_ms: int,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """
    Call ``fn`` until it succeeds or ``max_retries`` attempts have been made

    Every attempt re-invokes ``fn`` from scratch. Cancellation is never
    retried. Exhaustion raises MaxRetriesExceededError chained to the last
    failure.

    Args:
        fn: Zero-argument callable to invoke
        max_retries: Total number of attempts (>= 1)
        delay_ms: Base delay in milliseconds for the linear schedule
        on_retry: Called with (attempt, error) after each failed attempt that
            will be retried
        retry_on: Exception types that trigger a retry

    Returns:
        Whatever ``fn`` returns on the first successful attempt
    """

    def _log_backoff(details):
        error = details.get("exception")
        logger.warning(
            f"Attempt {details['tries']}/{max_retries} failed, retrying in {details['wait']:.2f}s"
        )
        logger.debug(f"Error: {error}")
        if on_retry is not None:
            on_retry(details["tries"], error)

    def _log_giveup(details):
        logger.error(f"Giving up after {details['tries']} attempts")

    retrying = backoff.on_exception(
        linear,
        retry_on,
        max_tries=max_retries,
        jitter=None,
        giveup=lambda e: isinstance(e, ScanCancelledError),
        on_backoff=_log_backoff,
        on_giveup=_log_giveup,
        logger=None,
        base=delay_ms / 1000.0,
    )(fn)

    try:
        return retrying()
    except ScanCancelledError:
        raise
    except retry_on as e:
        raise MaxRetriesExceededError(max_retries, e) from e
