"""
Evaluation webhook delivery.

deliver() POSTs the final payload and keeps retrying with exponential backoff
(1s, doubling, capped at 60s) until a 2xx arrives or the overall deadline
passes. It never raises: a notification that cannot be delivered must not
fail the job that produced it.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional, Union

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    wait_exponential,
)

from .models import EvaluationPayload
from .settings import settings

logger = logging.getLogger(__name__)

INITIAL_DELAY = 1
MAX_DELAY = 60


def _post_once(http, url: str, payload: Dict[str, Any], timeout: float) -> bool:
    r = http.post(url, json=payload, headers={"Content-Type": "application/json"}, timeout=timeout)
    if 200 <= r.status_code < 300:
        logger.info("Notified evaluation server %s: %s", url, r.status_code)
        return True
    logger.warning("Evaluation server returned %s: %s", r.status_code, (r.text or "")[:400])
    return False


def deliver(
    url: str,
    payload: Union[EvaluationPayload, Dict[str, Any]],
    deadline_minutes: float = 10,
    request_timeout: float = 30,
    *,
    session: Optional[Any] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """
    POST payload to url until it succeeds or deadline_minutes elapse.
    Returns True on the first 2xx response, False once the deadline is exceeded.
    """
    body = payload.model_dump() if isinstance(payload, EvaluationPayload) else dict(payload)
    http = session or requests
    deadline = clock() + deadline_minutes * 60
    backoff = wait_exponential(multiplier=INITIAL_DELAY, min=INITIAL_DELAY, max=MAX_DELAY)

    def _remaining() -> float:
        return max(0.0, deadline - clock())

    def _wait(retry_state) -> float:
        return min(backoff(retry_state), _remaining())

    def _stop(retry_state) -> bool:
        return _remaining() <= 0

    def _before_sleep(retry_state):
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            logger.warning("Error sending evaluation to %s: %s", url, outcome.exception())
        logger.info(
            "Retrying evaluation delivery in %.1fs (attempt %s)",
            retry_state.next_action.sleep if retry_state.next_action else 0,
            retry_state.attempt_number,
        )

    def _give_up(retry_state) -> bool:
        logger.error(
            "Failed to notify evaluation server %s within %s minutes (%s attempts)",
            url,
            deadline_minutes,
            retry_state.attempt_number,
        )
        return False

    retrying = Retrying(
        stop=_stop,
        wait=_wait,
        retry=retry_if_exception_type(Exception) | retry_if_result(lambda ok: not ok),
        sleep=sleep,
        before_sleep=_before_sleep,
        retry_error_callback=_give_up,
    )
    return retrying(_post_once, http, url, body, request_timeout)


class Notifier:
    """Pipeline-facing wrapper that applies the configured deadline and timeout."""

    def __init__(
        self,
        deadline_minutes: Optional[float] = None,
        request_timeout: Optional[float] = None,
        session: Optional[Any] = None,
    ):
        self.deadline_minutes = (
            settings.EVAL_DEADLINE_MINUTES if deadline_minutes is None else deadline_minutes
        )
        self.request_timeout = (
            settings.EVAL_REQUEST_TIMEOUT if request_timeout is None else request_timeout
        )
        self.session = session

    def send(self, url: str, payload: EvaluationPayload) -> bool:
        return deliver(
            url,
            payload,
            deadline_minutes=self.deadline_minutes,
            request_timeout=self.request_timeout,
            session=self.session,
        )
