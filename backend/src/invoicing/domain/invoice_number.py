"""
Invoice number value object and its generator.

Numbers look like "INV-001000": a 2-4 letter upper-case prefix, a dash,
and 3-6 digits.

Design Decisions:
- Generated numbers come from a process-local counter seeded at 1000
- The counter is lock-protected for threads in one process but is NOT
  coordinated across processes; callers that run several workers must
  check uniqueness at the persistence boundary (see InvoiceService)
"""

import re
import threading
from dataclasses import dataclass

from .errors import InvalidValueError, RequiredFieldError

INVOICE_NUMBER_PATTERN = re.compile(r"[A-Z]{2,4}-[0-9]{3,6}")

DEFAULT_PREFIX = "INV"
DEFAULT_SEED = 1000
COUNTER_WIDTH = 6


class InvoiceNumberSequence:
    """Monotonically increasing, thread-safe counter."""

    def __init__(self, seed: int = DEFAULT_SEED) -> None:
        self._next = seed
        self._lock = threading.Lock()

    def next_value(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value


_default_sequence = InvoiceNumberSequence()


@dataclass(frozen=True)
class InvoiceNumber:
    """A validated invoice number."""
    value: str

    def __post_init__(self) -> None:
        if self.value is None or not str(self.value).strip():
            raise RequiredFieldError("InvoiceNumber")
        if not isinstance(self.value, str) or not INVOICE_NUMBER_PATTERN.fullmatch(self.value):
            raise InvalidValueError(
                "InvoiceNumber",
                f"Invalid format: {self.value}. Expected format: XXX-123456",
            )

    @classmethod
    def generate(
        cls,
        prefix: str = DEFAULT_PREFIX,
        sequence: InvoiceNumberSequence | None = None,
    ) -> "InvoiceNumber":
        """
        Produce the next number for a prefix.

        Args:
            prefix: 2-4 upper-case letters
            sequence: Counter to draw from; the process-wide one if None

        Returns:
            InvoiceNumber such as "INV-001000"
        """
        counter = (sequence or _default_sequence).next_value()
        return cls(f"{prefix}-{counter:0{COUNTER_WIDTH}d}")

    @classmethod
    def parse(cls, value: str) -> "InvoiceNumber":
        """Rebuild a number from its stored text form."""
        return cls(value)

    @property
    def prefix(self) -> str:
        return self.value.split("-", 1)[0]

    @property
    def sequence_number(self) -> int:
        return int(self.value.split("-", 1)[1])

    def __str__(self) -> str:
        return self.value
