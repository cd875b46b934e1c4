"""Canonical 13-digit ticket barcode (EAN-13 structure).

Layout: ``PPP CCC SSSSSS K``

- PPP: fixed deployment prefix (978)
- CCC: category code (001=A, 002=B, 003=C, 004=D)
- SSSSSS: zero-padded ticket sequence
- K: EAN-13 check digit over the first 12 digits
"""

from raffle_tickets.barcode.categories import (
    CATEGORY_CODES,
    Category,
    TicketIdentifier,
    to_category,
)
from raffle_tickets.config import settings
from raffle_tickets.exceptions import SequenceOutOfRange

BARCODE_LENGTH = 13
CATEGORY_CODE_WIDTH = 3


def ean13_check_digit(digits12: str) -> int:
    """EAN-13 check digit: weights 1,3,1,3... from the left, mod 10."""
    if len(digits12) != 12 or not digits12.isdigit():
        raise ValueError("Check digit needs exactly 12 digits")
    total = sum(
        int(d) if i % 2 == 0 else int(d) * 3
        for i, d in enumerate(digits12)
    )
    return (10 - total % 10) % 10


class IdentifierCodec:
    """Encode / decode / validate canonical barcodes."""

    def __init__(
        self,
        prefix: str | None = None,
        capacities: dict[str, int] | None = None,
    ):
        self.prefix = prefix if prefix is not None else settings.BARCODE_PREFIX
        if not self.prefix.isdigit():
            raise ValueError(f"Barcode prefix must be digits: {self.prefix!r}")

        self.sequence_width = (
            BARCODE_LENGTH - 1 - len(self.prefix) - CATEGORY_CODE_WIDTH
        )
        if self.sequence_width <= 0:
            raise ValueError(f"Prefix {self.prefix!r} leaves no room for a sequence")

        field_max = 10 ** self.sequence_width - 1
        configured = capacities if capacities is not None else settings.CATEGORY_CAPACITY
        self._capacity = {
            category: min(configured.get(category.value, field_max), field_max)
            for category in Category
        }
        self._code_to_category = {code: cat for cat, code in CATEGORY_CODES.items()}

    def capacity(self, category: Category | str) -> int:
        return self._capacity[to_category(category)]

    def encode(self, category: Category | str, sequence: int) -> str:
        category = to_category(category)
        capacity = self._capacity[category]
        if not isinstance(sequence, int) or sequence <= 0 or sequence > capacity:
            raise SequenceOutOfRange(
                f"Sequence for category {category.value} must be between 1 and {capacity}, "
                f"got {sequence}"
            )

        body = (
            self.prefix
            + CATEGORY_CODES[category]
            + str(sequence).zfill(self.sequence_width)
        )
        return body + str(ean13_check_digit(body))

    def validate(self, barcode: str) -> bool:
        return self._parse(barcode) is not None

    def decode(self, barcode: str) -> TicketIdentifier | None:
        return self._parse(barcode)

    def _parse(self, barcode: str) -> TicketIdentifier | None:
        if not isinstance(barcode, str) or len(barcode) != BARCODE_LENGTH:
            return None
        if not barcode.isascii() or not barcode.isdigit():
            return None
        if not barcode.startswith(self.prefix):
            return None

        code_start = len(self.prefix)
        code_end = code_start + CATEGORY_CODE_WIDTH
        category = self._code_to_category.get(barcode[code_start:code_end])
        if category is None:
            return None

        if int(barcode[-1]) != ean13_check_digit(barcode[:12]):
            return None

        sequence = int(barcode[code_end:12])
        if sequence <= 0 or sequence > self._capacity[category]:
            return None
        return TicketIdentifier(category, sequence)


_default_codec: IdentifierCodec | None = None


def get_codec() -> IdentifierCodec:
    """Process-wide codec built from settings."""
    global _default_codec
    if _default_codec is None:
        _default_codec = IdentifierCodec()
    return _default_codec
