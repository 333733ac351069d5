"""
Booking reference generator.

References look like ``TG04718265``: a two-letter prefix and eight digits.
Inside one process the digits walk a full-period permutation of
0..99,999,999 (an affine step modulo 10^8 with a stride coprime to it),
starting from an offset seeded by the clock and the OS random source. A
process therefore never repeats itself before 10^8 references, and two
processes only collide when their walks happen to cross. Those collisions
are caught by the unique constraint on bookings.reference and the
coordinator asks for another reference.
"""

import itertools
import re
import secrets
import time
from typing import Optional

from ticketing.core.config import get_settings

REFERENCE_SPACE = 10 ** 8
# Coprime with 10^8 (not divisible by 2 or 5), so the walk visits every value
STRIDE = 61_803_399

REFERENCE_PATTERN = re.compile(r"^[A-Z]{2}\d{8}$")


class ReferenceGenerator:
    def __init__(self, prefix: Optional[str] = None):
        prefix = prefix or get_settings().REFERENCE_PREFIX
        if not re.fullmatch(r"[A-Z]{2}", prefix):
            raise ValueError(f"Reference prefix must be two uppercase letters, got {prefix!r}")
        self.prefix = prefix
        self._offset = (time.time_ns() // 1_000_000 + secrets.randbelow(REFERENCE_SPACE)) % REFERENCE_SPACE
        self._counter = itertools.count()

    def generate(self) -> str:
        step = next(self._counter)
        value = (self._offset + step * STRIDE) % REFERENCE_SPACE
        return f"{self.prefix}{value:08d}"


def is_valid_reference(reference: str) -> bool:
    return bool(REFERENCE_PATTERN.match(reference))
