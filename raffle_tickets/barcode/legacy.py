"""Retired 8-digit barcodes and the tagged encoding variants.

Old tickets were printed with ``<prefix digit><7-digit sequence>`` and no
check digit (A-000001 -> 10000001). They are only read during migration;
new barcodes are always canonical.
"""

import re
from dataclasses import dataclass
from enum import Enum

from raffle_tickets.barcode.categories import (
    LEGACY_PREFIXES,
    Category,
    TicketIdentifier,
    to_category,
)
from raffle_tickets.barcode.codec import IdentifierCodec, get_codec
from raffle_tickets.exceptions import SequenceOutOfRange

LEGACY_LENGTH = 8
LEGACY_SEQUENCE_MAX = 9_999_999

_LEGACY_RE = re.compile(r"^[1-4]\d{7}$")
_PREFIX_TO_CATEGORY = {prefix: cat for cat, prefix in LEGACY_PREFIXES.items()}


class EncodingScheme(str, Enum):
    CANONICAL = "canonical"
    LEGACY = "legacy"


@dataclass(frozen=True)
class CanonicalEncoding:
    barcode: str
    identifier: TicketIdentifier
    scheme: EncodingScheme = EncodingScheme.CANONICAL


@dataclass(frozen=True)
class LegacyEncoding:
    barcode: str
    identifier: TicketIdentifier
    scheme: EncodingScheme = EncodingScheme.LEGACY


IdentifierEncoding = CanonicalEncoding | LegacyEncoding


def encode_legacy(category: Category | str, sequence: int) -> str:
    category = to_category(category)
    if sequence <= 0 or sequence > LEGACY_SEQUENCE_MAX:
        raise SequenceOutOfRange(
            f"Legacy sequence must be between 1 and {LEGACY_SEQUENCE_MAX}, got {sequence}"
        )
    return LEGACY_PREFIXES[category] + str(sequence).zfill(LEGACY_LENGTH - 1)


def decode_legacy(barcode: str) -> TicketIdentifier | None:
    if not isinstance(barcode, str):
        return None
    cleaned = barcode.strip()
    if not _LEGACY_RE.match(cleaned):
        return None
    sequence = int(cleaned[1:])
    if sequence == 0:
        return None
    return TicketIdentifier(_PREFIX_TO_CATEGORY[cleaned[0]], sequence)


def classify_encoding(
    barcode: str, codec: IdentifierCodec | None = None
) -> IdentifierEncoding | None:
    """Tag a scanned or stored string with the scheme it was produced by.

    Returns None for anything that is neither a valid canonical barcode nor
    a well-formed legacy one.
    """
    if not isinstance(barcode, str):
        return None
    codec = codec or get_codec()
    cleaned = barcode.strip()

    identifier = codec.decode(cleaned)
    if identifier is not None:
        return CanonicalEncoding(cleaned, identifier)

    identifier = decode_legacy(cleaned)
    if identifier is not None:
        return LegacyEncoding(cleaned, identifier)
    return None
