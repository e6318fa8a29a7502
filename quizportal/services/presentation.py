"""Question presentation for the take view.

With ``random_order`` the questions and their options are shuffled by a PRNG
seeded with the attempt id, so every reload of one attempt shows the same order.
"""

import json
import logging
import random
import uuid
from typing import Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_options(raw: str | None) -> list[str]:
    """Decode stored options (JSON array); anything else yields an empty list."""
    if not raw:
        return []
    try:
        options = json.loads(raw)
    except ValueError:
        logger.warning("Unparseable question options: %s", raw[:80])
        return []
    if not isinstance(options, list):
        return []
    return [str(opt) for opt in options]


def attempt_rng(attempt_id: uuid.UUID) -> random.Random:
    return random.Random(str(attempt_id))


def seeded_shuffle(items: Sequence[T], rng: random.Random) -> list[T]:
    shuffled = list(items)
    rng.shuffle(shuffled)
    return shuffled
