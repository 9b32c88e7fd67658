from __future__ import annotations

import asyncio
import random

from ..config import RetryPolicyConfig


def compute_backoff(
    attempt: int,
    initial: float = 1.0,
    coefficient: float = 2.0,
    maximum: float = 30.0,
    jitter: float = 0.5,
) -> float:
    """Compute exponential backoff with jitter after failed ``attempt`` (1-based)."""
    delay = min(initial * coefficient ** (attempt - 1), maximum)
    if jitter:
        delay += random.uniform(0, jitter)
    return delay


async def schedule_retry(attempt: int, policy: RetryPolicyConfig) -> float:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(
        attempt,
        initial=policy.initial_interval,
        coefficient=policy.backoff_coefficient,
        maximum=policy.maximum_interval,
        jitter=policy.jitter,
    )
    if delay > 0:
        await asyncio.sleep(delay)
    return delay
