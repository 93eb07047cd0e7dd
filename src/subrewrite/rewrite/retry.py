from __future__ import annotations

import logging
import random
import time
from typing import Callable, TypeVar

from subrewrite.errors import TransientServiceError


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5
BASE_DELAY_SECONDS = 2.0
JITTER_SECONDS = 1.0


def backoff_delay(attempt: int, jitter: float) -> float:
    return (2**attempt) * BASE_DELAY_SECONDS + jitter * JITTER_SECONDS


def call_with_retry(
    fn: Callable[[], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
    jitter: Callable[[], float] = random.random,
) -> T:
    """
    调用 fn，仅在限流（TransientServiceError）时按指数退避重试。

    - 第 attempt 次失败后等待 2^attempt * 2s + [0, 1)s；
    - AuthorizationFailure 及其它异常直接向上抛出，不消耗重试次数；
    - 次数耗尽后抛出最后一次的错误。
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(max_attempts - 1):
        try:
            return fn()
        except TransientServiceError as exc:
            delay = backoff_delay(attempt, jitter())
            logger.warning(
                "Rate limit hit (attempt %d/%d): %s. Retrying in %.0fms...",
                attempt + 1,
                max_attempts,
                exc,
                delay * 1000,
            )
            sleep(delay)
    # 最后一次尝试的异常直接向上传播
    return fn()
