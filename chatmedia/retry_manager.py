"""
Retry manager for flaky media operations.

Used for protocol attachment downloads (fixed backoff, per-attempt timeout)
and for remote metadata lookups.
"""

import asyncio
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from chatmedia.utils import logger


class BackoffStrategy(Enum):
    """Стратегии backoff для retry логики."""
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass
class RetryConfig:
    """Параметры повторов для одной операции."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    jitter: bool = True
    jitter_range: float = 0.1
    backoff_multiplier: float = 2.0
    # Таймаут одной попытки; None = без ограничения
    attempt_timeout: Optional[float] = None

    def delay_after(self, attempt: int) -> float:
        """Пауза после неудачной попытки номер attempt (с 1), без jitter."""
        if self.strategy == BackoffStrategy.LINEAR:
            delay = self.base_delay * attempt
        elif self.strategy == BackoffStrategy.EXPONENTIAL:
            delay = self.base_delay * (self.backoff_multiplier ** (attempt - 1))
        else:
            delay = self.base_delay
        return min(delay, self.max_delay)


@dataclass
class OperationStats:
    """Счётчики попыток одной операции."""
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    total_duration: float = 0.0

    def record(self, succeeded: bool, duration: float, timed_out: bool = False):
        self.attempts += 1
        self.total_duration += duration
        if succeeded:
            self.successes += 1
        else:
            self.failures += 1
            if timed_out:
                self.timeouts += 1

    @property
    def success_rate(self) -> float:
        if self.attempts == 0:
            return 1.0
        return self.successes / self.attempts

    @property
    def avg_duration(self) -> float:
        if self.attempts == 0:
            return 0.0
        return self.total_duration / self.attempts


def _is_retryable(error: BaseException) -> bool:
    # Ошибки без атрибута retryable (таймауты, OSError, aiohttp) считаем временными
    return getattr(error, "retryable", True)


class SmartRetryManager:
    """Повторяет асинхронные операции с backoff и таймаутом на попытку."""

    def __init__(self, default_config: Optional[RetryConfig] = None,
                 sleep: Callable[[float], Any] = asyncio.sleep):
        self.default_config = default_config or RetryConfig()
        self.operation_stats: Dict[str, OperationStats] = {}
        self._sleep = sleep

    def get_stats(self, operation_name: str) -> OperationStats:
        return self.operation_stats.setdefault(operation_name, OperationStats())

    def calculate_delay(self, attempt: int, config: Optional[RetryConfig] = None) -> float:
        """Пауза перед следующей попыткой с учётом jitter."""
        config = config or self.default_config
        delay = config.delay_after(attempt)
        if not config.jitter or config.jitter_range <= 0 or delay <= 0:
            return delay
        spread = random.uniform(-config.jitter_range, config.jitter_range)
        return max(0.0, delay * (1 + spread))

    async def _attempt(self, operation: Callable[..., Any], config: RetryConfig,
                       args: tuple, kwargs: dict) -> Any:
        if config.attempt_timeout:
            return await asyncio.wait_for(operation(*args, **kwargs), timeout=config.attempt_timeout)
        return await operation(*args, **kwargs)

    async def retry_async(self,
                          operation: Callable[..., Any],
                          operation_name: str,
                          config: Optional[RetryConfig] = None,
                          *args, **kwargs) -> Any:
        """
        Выполнить операцию, повторяя её при временных ошибках.

        Результат просроченной попытки отбрасывается. Исключение с
        retryable=False прерывает цикл сразу; после последней попытки
        поднимается последнее исключение.
        """
        config = config or self.default_config
        stats = self.get_stats(operation_name)
        last_error: Optional[BaseException] = None

        for attempt in range(1, config.max_attempts + 1):
            started = time.monotonic()
            try:
                result = await self._attempt(operation, config, args, kwargs)
            except asyncio.TimeoutError as e:
                last_error = e
                stats.record(False, time.monotonic() - started, timed_out=True)
                logger.warning(
                    f"[{operation_name}] Attempt {attempt}/{config.max_attempts} "
                    f"timed out after {config.attempt_timeout}s"
                )
            except Exception as e:
                last_error = e
                stats.record(False, time.monotonic() - started)
                if not _is_retryable(e):
                    logger.warning(f"[{operation_name}] Non-retryable failure: {e}")
                    break
                logger.warning(f"[{operation_name}] Attempt {attempt}/{config.max_attempts} failed: {e}")
            else:
                stats.record(True, time.monotonic() - started)
                if attempt > 1:
                    logger.info(f"[{operation_name}] Recovered on attempt {attempt}/{config.max_attempts}")
                return result

            if attempt < config.max_attempts:
                delay = self.calculate_delay(attempt, config)
                if delay > 0:
                    logger.debug(f"[{operation_name}] Next attempt in {delay:.2f}s")
                    await self._sleep(delay)

        logger.error(f"[{operation_name}] Giving up after {stats.failures} failed attempt(s): {last_error}")
        raise last_error

    def get_operation_summary(self, operation_name: str) -> Dict[str, Any]:
        stats = self.operation_stats.get(operation_name)
        if stats is None:
            return {"error": "No stats available"}
        return {
            "operation": operation_name,
            "attempts": stats.attempts,
            "success_rate": f"{stats.success_rate:.1%}",
            "timeouts": stats.timeouts,
            "avg_duration": f"{stats.avg_duration:.3f}s",
        }

    def reset_stats(self, operation_name: Optional[str] = None):
        if operation_name:
            self.operation_stats.pop(operation_name, None)
        else:
            self.operation_stats.clear()


# Загрузка вложения: 3 попытки, пауза 1 с, 30 с на попытку
PROTOCOL_FETCH_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    max_delay=1.0,
    strategy=BackoffStrategy.FIXED,
    jitter=False,
    attempt_timeout=30.0,
)

METADATA_LOOKUP_CONFIG = RetryConfig(
    max_attempts=2,
    base_delay=0.5,
    max_delay=5.0,
    strategy=BackoffStrategy.LINEAR,
    jitter=False,
)
