from typing import Callable

from tenacity import (
    RetryError,
    Retrying,
    retry_if_result,
    stop_before_delay,
    wait_fixed,
)

from rolling_upgrade.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BUDGET_SECONDS = 10.0
DEFAULT_INTERVAL_SECONDS = 0.5


def await_until(
    predicate: Callable[[], bool],
    budget: float = DEFAULT_BUDGET_SECONDS,
    interval: float = DEFAULT_INTERVAL_SECONDS,
    description: str = "condition",
) -> bool:
    """
    Evaluate `predicate` every `interval` seconds until it returns True or
    `budget` seconds have passed.

    An exception from the predicate is logged and counts as a False attempt;
    the cluster is expected to answer badly now and then while nodes restart.
    Returns False when the budget runs out. Whether that is fatal is the
    caller's decision.
    """
    attempts = 0

    def attempt() -> bool:
        nonlocal attempts
        attempts += 1
        try:
            return bool(predicate())
        except Exception as exc:
            logger.warning(
                "poll_attempt_failed",
                description=description,
                attempt=attempts,
                error=f"{type(exc).__name__}: {exc}",
            )
            return False

    # a fresh Retrying per call: no timer or counter is shared between callers
    # no sleep is started that would end past the budget
    retrying = Retrying(
        stop=stop_before_delay(budget),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda ok: not ok),
    )
    try:
        result = retrying(attempt)
    except RetryError:
        logger.warning("poll_budget_exhausted", description=description, attempts=attempts, budget=budget)
        return False

    logger.debug("poll_succeeded", description=description, attempts=attempts)
    return result
