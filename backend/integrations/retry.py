# backend/integrations/retry.py
# 재시도 가능한 에러 → 상한 있는 지수 백오프

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """max_attempts 는 첫 시도 포함"""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """attempt 번째 실패 후 대기 시간 (1부터)"""
        return min(self.base_delay * (self.backoff_multiplier ** (attempt - 1)), self.max_delay)


def is_retryable(error: BaseException) -> bool:
    return bool(getattr(error, "retryable", False))


async def retry_async(
    operation: Callable[[], Awaitable[Any]],
    config: Optional[RetryConfig] = None,
    description: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    operation 실행, retryable 에러만 재시도

    - retryable=False 에러는 즉시 전파
    - 시도 소진 시 마지막 에러 전파
    - RateLimitedError.retry_after 가 있으면 그 값 사용 (max_delay 상한)
    """
    config = config or RetryConfig()
    attempts = max(1, config.max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e) or attempt >= attempts:
                if is_retryable(e):
                    logger.error("%s failed after %d attempts: %s", description, attempt, e)
                raise

            delay = config.delay_for(attempt)
            retry_after = getattr(e, "retry_after", None)
            if retry_after:
                delay = min(float(retry_after), config.max_delay)

            logger.warning("%s failed (attempt %d/%d): %s. Retrying in %.2fs",
                           description, attempt, attempts, e, delay)
            await sleep(delay)
