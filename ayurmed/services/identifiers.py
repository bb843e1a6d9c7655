"""Allocation of human-presentable identifiers (Health IDs, licence numbers).

Random numbers are drawn from a bounded range and checked against the
store before use. When a range keeps colliding, the next wider range is
tried, so allocation only fails if every width up to ``max_digits`` is full.
"""

import logging
import random
import uuid
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

HEALTH_ID_PREFIX = "PID"
LICENSE_PREFIX = "IMC"

ATTEMPTS_PER_WIDTH = 20


async def allocate_code(
    prefix: str,
    digits: int,
    exists: Callable[[str], Awaitable[bool]],
    *,
    max_digits: int = 8,
    rng: random.Random | None = None,
) -> str:
    """Return ``<prefix>-<n>`` where ``exists`` reports the code as free."""
    rng = rng or random.Random()
    for width in range(digits, max_digits + 1):
        low, high = 10 ** (width - 1), 10**width - 1
        for _ in range(ATTEMPTS_PER_WIDTH):
            code = f"{prefix}-{rng.randint(low, high)}"
            if not await exists(code):
                return code
        logger.warning("%s codes with %d digits keep colliding, widening", prefix, width)
    raise RuntimeError(f"Could not allocate a unique {prefix} code")


async def allocate_health_id(exists: Callable[[str], Awaitable[bool]], rng: random.Random | None = None) -> str:
    return await allocate_code(HEALTH_ID_PREFIX, 4, exists, rng=rng)


async def allocate_license_number(exists: Callable[[str], Awaitable[bool]], rng: random.Random | None = None) -> str:
    return await allocate_code(LICENSE_PREFIX, 5, exists, rng=rng)


def new_record_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"
