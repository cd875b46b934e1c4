"""Legacy barcode migration: retire 8-digit barcodes in favour of canonical ones.

A ticket whose stored barcode is not its canonical 13-digit barcode gets the
canonical one assigned, keeps the old string in ``legacy_barcode`` and, if
still unsold, is flagged INVALID until a reprint reissues it.
"""

from enum import Enum

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_tickets.barcode.categories import Category, TicketIdentifier, to_category
from raffle_tickets.barcode.codec import IdentifierCodec, get_codec
from raffle_tickets.barcode.legacy import LegacyEncoding, classify_encoding
from raffle_tickets.db.crud import ticket as crud
from raffle_tickets.db.models.ticket import Ticket, TicketStatus
from raffle_tickets.exceptions import PersistenceConflict
from raffle_tickets.schemas.ticket import (
    BarcodeStatistics,
    CategoryBarcodeStats,
    LegacyTicketSchema,
    MigrationReport,
)

LEGACY_NOTE = "Legacy barcode - replaced with canonical 13-digit barcode"


class LegacyIssue(str, Enum):
    MISSING_BARCODE = "MISSING_BARCODE"
    LEGACY_FORMAT = "LEGACY_FORMAT"
    INVALID_FORMAT = "INVALID_FORMAT"
    MISMATCHED = "MISMATCHED"  # valid canonical barcode of another ticket


def classify_ticket(ticket: Ticket, codec: IdentifierCodec) -> LegacyIssue | None:
    """None when the ticket already carries its own canonical barcode."""
    if ticket.barcode is None:
        return LegacyIssue.MISSING_BARCODE

    identifier = TicketIdentifier(Category(ticket.category), ticket.sequence)
    encoding = classify_encoding(ticket.barcode, codec)
    if encoding is None:
        return LegacyIssue.INVALID_FORMAT
    if isinstance(encoding, LegacyEncoding):
        return LegacyIssue.LEGACY_FORMAT
    if encoding.identifier != identifier:
        return LegacyIssue.MISMATCHED
    return None


async def detect_legacy_tickets(
    session: AsyncSession,
    category: Category | str | None = None,
    codec: IdentifierCodec | None = None,
) -> list[LegacyTicketSchema]:
    codec = codec or get_codec()
    tickets = await crud.get_all(session, to_category(category).value if category else None)

    found = []
    for ticket in tickets:
        issue = classify_ticket(ticket, codec)
        if issue is not None:
            found.append(LegacyTicketSchema(
                ticket_id=ticket.id,
                ticket_number=ticket.ticket_number,
                barcode=ticket.barcode,
                issue=issue.value,
            ))
    return found


async def convert_ticket(
    session: AsyncSession, ticket: Ticket, codec: IdentifierCodec | None = None
) -> bool:
    """Replace a non-canonical barcode. Returns True if the ticket was flagged."""
    codec = codec or get_codec()
    canonical = codec.encode(ticket.category, ticket.sequence)
    old = ticket.barcode
    if old is None or old == canonical:
        return False

    owner = await crud.barcode_owner(session, canonical)
    if owner is not None and owner != ticket.id:
        raise PersistenceConflict(
            f"Barcode {canonical} for {ticket.ticket_number} is held by ticket id {owner}"
        )

    if not await crud.replace_barcode(session, ticket.id, old, canonical):
        logger.debug("{} barcode changed concurrently; skipping", ticket.ticket_number)
        return False

    flagged = await crud.flag_invalid(session, [ticket.id], LEGACY_NOTE) > 0
    logger.info(
        "Converted {}: {} -> {}{}",
        ticket.ticket_number, old, canonical, " (flagged INVALID)" if flagged else "",
    )
    return flagged


async def migrate_legacy_barcodes(
    session: AsyncSession,
    category: Category | str | None = None,
    codec: IdentifierCodec | None = None,
) -> MigrationReport:
    """Convert every non-canonical barcode; tickets with none are left for lazy assignment."""
    codec = codec or get_codec()
    tickets = await crud.get_all(session, to_category(category).value if category else None)
    logger.info("Scanning {} tickets for legacy barcodes", len(tickets))

    converted = flagged = missing = 0
    errors: list[str] = []

    for ticket in tickets:
        issue = classify_ticket(ticket, codec)
        if issue is None:
            continue
        if issue is LegacyIssue.MISSING_BARCODE:
            missing += 1
            continue
        try:
            if await convert_ticket(session, ticket, codec):
                flagged += 1
            converted += 1
        except PersistenceConflict as e:
            logger.warning("Legacy conversion skipped: {}", e)
            errors.append(str(e))

        if converted and converted % 1000 == 0:
            logger.info("Progress: {} tickets converted", converted)

    logger.info(
        "Legacy migration done: {} converted, {} flagged, {} missing, {} errors",
        converted, flagged, missing, len(errors),
    )
    return MigrationReport(
        total=len(tickets),
        converted=converted,
        flagged=flagged,
        missing=missing,
        errors=errors,
    )


async def barcode_statistics(
    session: AsyncSession, codec: IdentifierCodec | None = None
) -> BarcodeStatistics:
    codec = codec or get_codec()
    tickets = await crud.get_all(session)

    per_category = {
        cat.value: {"total": 0, "canonical": 0, "legacy": 0, "missing": 0, "flagged_invalid": 0}
        for cat in Category
    }
    for ticket in tickets:
        stats = per_category[ticket.category]
        stats["total"] += 1
        issue = classify_ticket(ticket, codec)
        if issue is None:
            stats["canonical"] += 1
        elif issue is LegacyIssue.MISSING_BARCODE:
            stats["missing"] += 1
        else:
            stats["legacy"] += 1
        if ticket.status == TicketStatus.INVALID.value:
            stats["flagged_invalid"] += 1

    by_category = [
        CategoryBarcodeStats(category=cat, **stats)
        for cat, stats in per_category.items()
    ]
    return BarcodeStatistics(
        total_tickets=len(tickets),
        canonical=sum(s.canonical for s in by_category),
        legacy=sum(s.legacy for s in by_category),
        missing=sum(s.missing for s in by_category),
        flagged_invalid=sum(s.flagged_invalid for s in by_category),
        by_category=by_category,
    )
