"""Sale service: decides whether a scanned barcode may be sold.

Checks run in a fixed order and the first failing one wins:

1. not a valid canonical barcode  -> INVALID_FORMAT (nothing is looked up)
2. no ticket for that identifier  -> NOT_FOUND
3. ticket superseded by migration -> SUPERSEDED_TICKET
4. ticket already sold / won      -> ALREADY_SOLD
5. otherwise accepted

Format rejection happens before any lookup so a malformed scan never reveals
which tickets exist.

Every check, accepted or rejected, leaves a row in the ``ticket_scans`` audit
log. The row is written in the caller's transaction.
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_tickets.barcode.codec import IdentifierCodec, get_codec
from raffle_tickets.db.crud import ticket as crud
from raffle_tickets.db.crud import ticket_scan as scan_crud
from raffle_tickets.db.models.ticket import Ticket, TicketStatus
from raffle_tickets.db.models.ticket_scan import ScanType
from raffle_tickets.schemas.sale import REJECTION_MESSAGES, SaleDecision, SaleRejection
from raffle_tickets.schemas.ticket import TicketSchema
from raffle_tickets.services.ticket_service import ensure_codes

SOLD_STATUSES = {TicketStatus.SOLD.value, TicketStatus.WON.value}


def _reject(reason: SaleRejection, ticket: Ticket | None = None) -> SaleDecision:
    return SaleDecision(
        accepted=False,
        reason=reason,
        message=REJECTION_MESSAGES[reason],
        ticket=TicketSchema.model_validate(ticket) if ticket is not None else None,
    )


def _accept(ticket: Ticket, message: str = "Ticket is available for sale.") -> SaleDecision:
    return SaleDecision(
        accepted=True,
        message=message,
        ticket=TicketSchema.model_validate(ticket),
    )


def _scanned(barcode) -> str:
    return barcode.strip() if isinstance(barcode, str) else ""


async def _log_scan(
    session: AsyncSession,
    scan_type: ScanType,
    barcode,
    decision: SaleDecision,
    scanned_by: str | None,
    scan_method: str,
    notes: str | None,
) -> None:
    await scan_crud.add_scan(session, {
        "ticket_id": decision.ticket.id if decision.ticket is not None else None,
        "barcode": _scanned(barcode)[:64],
        "scan_type": scan_type.value,
        "scan_method": scan_method,
        "accepted": decision.accepted,
        "reason": decision.reason.value if decision.reason is not None else None,
        "scanned_by": scanned_by,
        "notes": notes,
    })


async def validate_for_sale(
    session: AsyncSession,
    barcode: str,
    codec: IdentifierCodec | None = None,
    *,
    scanned_by: str | None = None,
    scan_method: str = "barcode",
    notes: str | None = None,
) -> SaleDecision:
    decision = await _check(session, barcode, codec or get_codec())
    await _log_scan(
        session, ScanType.VALIDATE, barcode, decision, scanned_by, scan_method, notes
    )
    return decision


async def _check(session: AsyncSession, barcode: str, codec: IdentifierCodec) -> SaleDecision:
    scanned = _scanned(barcode)

    identifier = codec.decode(scanned)
    if identifier is None:
        logger.info("Sale check rejected malformed barcode {!r}", barcode)
        return _reject(SaleRejection.INVALID_FORMAT)

    ticket = await crud.get_by_identifier(
        session, identifier.category.value, identifier.sequence
    )
    if ticket is None:
        return _reject(SaleRejection.NOT_FOUND)

    if ticket.status == TicketStatus.INVALID.value:
        return _reject(SaleRejection.SUPERSEDED_TICKET, ticket)

    if ticket.status in SOLD_STATUSES:
        return _reject(SaleRejection.ALREADY_SOLD, ticket)

    return _accept(ticket)


async def sell_ticket(
    session: AsyncSession,
    barcode: str,
    codec: IdentifierCodec | None = None,
    *,
    scanned_by: str | None = None,
    scan_method: str = "barcode",
    notes: str | None = None,
) -> SaleDecision:
    """Run the sale check, then move the ticket AVAILABLE -> SOLD.

    Raises PersistenceConflict when the ticket's canonical barcode turns out
    to be held by another ticket; nothing is sold or logged in that case.
    """
    decision = await _sell(session, barcode, codec or get_codec())
    await _log_scan(
        session, ScanType.SALE, barcode, decision, scanned_by, scan_method, notes
    )
    return decision


async def _sell(session: AsyncSession, barcode: str, codec: IdentifierCodec) -> SaleDecision:
    decision = await _check(session, barcode, codec)
    if not decision.accepted:
        return decision

    ticket = await crud.get_by_id(session, decision.ticket.id)
    ticket = await ensure_codes(session, ticket, codec)
    if ticket.status == TicketStatus.INVALID.value:
        # The stored barcode was legacy; ensure_codes just superseded it
        return _reject(SaleRejection.SUPERSEDED_TICKET, ticket)

    if not await crud.mark_sold(session, ticket.id):
        ticket = await crud.get_by_id(session, ticket.id)
        if ticket.status == TicketStatus.INVALID.value:
            return _reject(SaleRejection.SUPERSEDED_TICKET, ticket)
        return _reject(SaleRejection.ALREADY_SOLD, ticket)

    ticket = await crud.get_by_id(session, ticket.id)
    logger.info("Ticket {} sold", ticket.ticket_number)
    return _accept(ticket, message="Ticket sold.")
