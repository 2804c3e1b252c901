from __future__ import annotations

import asyncio
import random
import time


async def _sleep_backoff(attempt: int) -> None:
    # Exponential backoff with jitter; attempt starts at 0.
    base = min(8.0, 0.5 * (2**attempt))
    jitter = random.random() * 0.2
    await asyncio.sleep(base + jitter)


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))
