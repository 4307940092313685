import time
import logging
from typing import Callable, Any

logger = logging.getLogger("retry-helper")

def execute_with_retry(
    func: Callable[[], Any],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retryable_exceptions: tuple = (Exception,),
    operation: str = "operation",
    sleep: Callable[[float], Any] = time.sleep
) -> Any:
    """
    Executes a function with exponential backoff retry.
    The delay doubles after every failed attempt and is capped at max_delay.
    Raises the last exception if retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return func()
        except retryable_exceptions as e:
            attempt += 1
            if attempt > max_retries:
                logger.error(f"{operation} failed after {attempt} attempts: {e}")
                raise

            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            logger.warning(f"{operation} attempt {attempt}/{max_retries} failed: {e}. Retrying in {delay}s...")
            sleep(delay)


def backoff_delays(base_delay: float = 1.0, max_delay: float = 30.0):
    """
    Yields an unbounded sequence of capped exponential delays, for loops
    that retry forever (bus reconnects).
    """
    delay = base_delay
    while True:
        yield delay
        delay = min(delay * 2, max_delay)
