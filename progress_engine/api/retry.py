"""Retry con backoff exponencial para llamadas REST asíncronas."""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuración para retry con backoff."""

    max_attempts: int = 3
    base_delay: float = 0.5  # segundos
    max_delay: float = 10.0  # segundos
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)

    def calculate_delay(self, attempt: int) -> float:
        """Calcula el delay para un intento dado.

        Args:
            attempt: Número de intento (1-indexed)

        Returns:
            Delay en segundos
        """
        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            # Añadir jitter de ±25%
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0, delay)


def async_retry(
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
):
    """Decorador para coroutines con retry y backoff exponencial.

    Example:
        @async_retry(RetryConfig(max_attempts=3, retryable_exceptions=(httpx.TransportError,)))
        async def fetch():
            ...
    """
    config = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(1, config.max_attempts + 1):
                try:
                    return await func(*args, **kwargs)

                except config.retryable_exceptions as e:
                    if attempt == config.max_attempts:
                        logger.error(
                            "RETRY_EXHAUSTED func=%s attempts=%d err=%s",
                            func.__name__, attempt, e
                        )
                        raise

                    delay = config.calculate_delay(attempt)
                    logger.warning(
                        "RETRY func=%s attempt=%d/%d delay=%.2fs err=%s",
                        func.__name__, attempt, config.max_attempts, delay, e
                    )

                    if on_retry:
                        on_retry(attempt, e)

                    await asyncio.sleep(delay)

            raise RuntimeError("Retry loop completed without result")

        return wrapper
    return decorator
