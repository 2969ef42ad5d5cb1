"""Order number generation.

Format: prefix + base-36 millisecond timestamp + random base-36 suffix, all
upper case (e.g. ``BMFLZ3K9Q2A7F0C``). Uniqueness is probabilistic; the
orders table enforces it and the ledger retries on conflict.
"""

from __future__ import annotations

import secrets
import time
from typing import Optional

BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
SUFFIX_LENGTH = 4


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def generate_order_number(prefix: str = "BMF", now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{prefix.upper()}{to_base36(now_ms)}{suffix}"
