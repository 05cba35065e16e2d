"""
Identifier generation for visit entries.

Two identifiers are assigned at creation:
- ``number``: human-readable visit number shown to staff, ``V-<6 digits>-<3 digits>``
  built from the last six digits of the epoch-millisecond clock and a random suffix.
  It is not guaranteed unique across batches.
- ``id``: opaque random UUID, encoded into the entry's QR code.
"""

import random
import re
import time
import uuid
from typing import List, Optional

NUMBER_PATTERN = re.compile(r"^V-\d{6}-\d{3}$")

_rng = random.SystemRandom()


# PUBLIC_INTERFACE
def generate_number(now_ms: Optional[int] = None, rand: Optional[int] = None) -> str:
    """
    Build a visit number.

    Args:
        now_ms (int): Epoch milliseconds; defaults to the current clock.
        rand (int): Suffix in 0..999; defaults to a random value.

    Returns:
        str: e.g. ``V-123456-007``
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if rand is None:
        rand = _rng.randint(0, 999)
    return "V-%s-%03d" % (str(now_ms)[-6:].rjust(6, "0"), rand)


# PUBLIC_INTERFACE
def generate_distinct_numbers(count: int) -> List[str]:
    """
    Generate ``count`` visit numbers that differ from one another.
    """
    numbers: List[str] = []
    seen = set()
    while len(numbers) < count:
        number = generate_number()
        if number in seen:
            continue
        seen.add(number)
        numbers.append(number)
    return numbers


# PUBLIC_INTERFACE
def generate_id() -> str:
    return str(uuid.uuid4())
