"""Ticket service: pool creation, lookups and lazy code assignment."""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_tickets.barcode.categories import Category, parse_ticket_number, to_category
from raffle_tickets.barcode.codec import IdentifierCodec, get_codec
from raffle_tickets.barcode.verification import build_verification_ref
from raffle_tickets.db.crud import ticket as crud
from raffle_tickets.db.models.ticket import Ticket
from raffle_tickets.exceptions import PersistenceConflict, SequenceOutOfRange
from raffle_tickets.schemas.ticket import TicketPoolResponse
from raffle_tickets.services import migration_service

POOL_INSERT_BATCH = 1000


async def create_ticket_pool(
    session: AsyncSession,
    category: Category | str,
    start: int,
    end: int,
    codec: IdentifierCodec | None = None,
) -> TicketPoolResponse:
    """Create AVAILABLE tickets for ``start..end``; existing numbers are skipped."""
    codec = codec or get_codec()
    category = to_category(category)
    capacity = codec.capacity(category)
    if start < 1 or end < start or end > capacity:
        raise SequenceOutOfRange(
            f"Range {start}-{end} is outside 1-{capacity} for category {category.value}"
        )

    existing = await crud.existing_sequences(session, category.value, start, end)
    missing = [seq for seq in range(start, end + 1) if seq not in existing]

    created = 0
    for i in range(0, len(missing), POOL_INSERT_BATCH):
        created += await crud.bulk_create(
            session, category.value, missing[i:i + POOL_INSERT_BATCH]
        )

    logger.info(
        "Ticket pool {} {}-{}: {} created, {} already existed",
        category.value, start, end, created, len(existing),
    )
    return TicketPoolResponse(
        category=category.value,
        start=start,
        end=end,
        created=created,
        skipped=len(existing),
    )


async def get_ticket_by_number(session: AsyncSession, ticket_number: str) -> Ticket | None:
    identifier = parse_ticket_number(ticket_number)
    if identifier is None:
        return None
    return await crud.get_by_identifier(
        session, identifier.category.value, identifier.sequence
    )


async def get_ticket_by_barcode(session: AsyncSession, barcode: str) -> Ticket | None:
    return await crud.get_by_barcode(session, barcode.strip())


async def get_tickets_in_range(
    session: AsyncSession, category: Category | str, start: int, end: int
) -> list[Ticket]:
    return await crud.get_range(session, to_category(category).value, start, end)


async def ensure_codes(
    session: AsyncSession, ticket: Ticket, codec: IdentifierCodec | None = None
) -> Ticket:
    """Make sure the ticket carries its canonical barcode and verification ref.

    Idempotent: a ticket that already has both is returned unchanged. A
    stored barcode that is not this ticket's canonical one (legacy 8-digit
    or anything else) is migrated. Raises PersistenceConflict when the
    canonical barcode is already held by a different ticket.
    """
    codec = codec or get_codec()
    expected = codec.encode(ticket.category, ticket.sequence)
    changed = False

    if ticket.barcode is None:
        owner = await crud.barcode_owner(session, expected)
        if owner is not None and owner != ticket.id:
            raise PersistenceConflict(
                f"Barcode {expected} for {ticket.ticket_number} is held by ticket id {owner}"
            )
        if not await crud.assign_barcode(session, ticket.id, expected):
            logger.debug("{} got a barcode concurrently; re-reading", ticket.ticket_number)
        changed = True
    elif ticket.barcode != expected:
        await migration_service.convert_ticket(session, ticket, codec)
        changed = True

    if ticket.verification_ref is None:
        await crud.assign_verification_ref(
            session, ticket.id, build_verification_ref(ticket.ticket_number)
        )
        changed = True

    if not changed:
        return ticket
    return await crud.get_by_id(session, ticket.id)
