"""Ticket categories and human-readable ticket numbers."""

import re
from enum import Enum
from typing import NamedTuple

from raffle_tickets.exceptions import InvalidCategory


class Category(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"


# 3-digit segment of the canonical barcode
CATEGORY_CODES: dict[Category, str] = {
    Category.A: "001",
    Category.B: "002",
    Category.C: "003",
    Category.D: "004",
}

# Leading digit of the retired 8-digit barcodes
LEGACY_PREFIXES: dict[Category, str] = {
    Category.A: "1",
    Category.B: "2",
    Category.C: "3",
    Category.D: "4",
}

CATEGORY_NAMES: dict[Category, str] = {
    Category.A: "Regular",
    Category.B: "Silver",
    Category.C: "Gold",
    Category.D: "Platinum",
}

_TICKET_NUMBER_RE = re.compile(r"^([A-Da-d])-?(\d{1,7})$")


class TicketIdentifier(NamedTuple):
    category: Category
    sequence: int

    @property
    def ticket_number(self) -> str:
        return format_ticket_number(self.category, self.sequence)


def to_category(value: Category | str) -> Category:
    """Coerce a category name, raising InvalidCategory for unknown values."""
    if isinstance(value, Category):
        return value
    try:
        return Category(str(value).strip().upper())
    except ValueError:
        raise InvalidCategory(
            f"Invalid category: {value}. Valid: {[c.value for c in Category]}"
        ) from None


def format_ticket_number(category: Category | str, sequence: int) -> str:
    """A-000001 style number printed on the ticket face."""
    return f"{to_category(category).value}-{sequence:06d}"


def parse_ticket_number(ticket_number: str) -> TicketIdentifier | None:
    """Parse ``A-000001`` (dash optional). Returns None when malformed."""
    if not ticket_number:
        return None
    match = _TICKET_NUMBER_RE.match(ticket_number.strip())
    if not match:
        return None
    sequence = int(match.group(2))
    if sequence <= 0:
        return None
    return TicketIdentifier(Category(match.group(1).upper()), sequence)
