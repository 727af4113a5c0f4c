"""
Order number generation.

Numbers look like ``MSO-20240115-K3Z9QA``: prefix, the UTC date and six
random base36 characters. There is no counter; the store's unique index on
``order_number`` is the arbiter and callers regenerate on collision.
"""

import random
import re
import string
from datetime import datetime, timezone
from typing import Callable, Optional

BASE36_ALPHABET = string.digits + string.ascii_uppercase
SUFFIX_LENGTH = 6


def order_number_pattern(prefix: str = "MSO") -> "re.Pattern[str]":
    """Regex matching order numbers generated with ``prefix``."""
    return re.compile(
        rf"^{re.escape(prefix)}-\d{{8}}-[A-Z0-9]{{{SUFFIX_LENGTH}}}$"
    )


class OrderNumberGenerator:
    """Produces human-readable order numbers."""

    def __init__(
        self,
        prefix: str = "MSO",
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.prefix = prefix
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng or random.SystemRandom()

    def generate(self) -> str:
        """Generate a new order number."""
        date_part = self._clock().strftime("%Y%m%d")
        suffix = "".join(
            self._rng.choice(BASE36_ALPHABET) for _ in range(SUFFIX_LENGTH)
        )
        return f"{self.prefix}-{date_part}-{suffix}"

    __call__ = generate
