"""CRUD operations for raffle tickets.

Status and barcode writes are conditional updates guarded by the current
value, so two writers racing on the same ticket cannot both win. Readers use
``populate_existing`` so rows changed by those updates are never served stale
from the identity map.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_tickets.db.models.ticket import Ticket, TicketStatus

# Keep IN (...) lists below driver parameter limits
ID_CHUNK = 500


def _fresh(query):
    return query.execution_options(populate_existing=True)


def _chunks(ids: Sequence[int]) -> Iterable[list[int]]:
    for i in range(0, len(ids), ID_CHUNK):
        yield list(ids[i:i + ID_CHUNK])


async def get_by_id(session: AsyncSession, ticket_id: int) -> Ticket | None:
    result = await session.execute(_fresh(select(Ticket).where(Ticket.id == ticket_id)))
    return result.scalar_one_or_none()


async def get_by_identifier(
    session: AsyncSession, category: str, sequence: int
) -> Ticket | None:
    result = await session.execute(
        _fresh(select(Ticket).where(
            Ticket.category == category,
            Ticket.sequence == sequence,
        ))
    )
    return result.scalar_one_or_none()


async def get_by_barcode(session: AsyncSession, barcode: str) -> Ticket | None:
    result = await session.execute(_fresh(select(Ticket).where(Ticket.barcode == barcode)))
    return result.scalar_one_or_none()


async def get_range(
    session: AsyncSession, category: str, start: int, end: int
) -> list[Ticket]:
    result = await session.execute(
        _fresh(
            select(Ticket)
            .where(
                Ticket.category == category,
                Ticket.sequence >= start,
                Ticket.sequence <= end,
            )
            .order_by(Ticket.sequence)
        )
    )
    return list(result.scalars().all())


async def count_range(session: AsyncSession, category: str, start: int, end: int) -> int:
    result = await session.execute(
        select(func.count(Ticket.id)).where(
            Ticket.category == category,
            Ticket.sequence >= start,
            Ticket.sequence <= end,
        )
    )
    return result.scalar() or 0


async def get_all(session: AsyncSession, category: str | None = None) -> list[Ticket]:
    query = select(Ticket).order_by(Ticket.category, Ticket.sequence)
    if category:
        query = query.where(Ticket.category == category)
    result = await session.execute(_fresh(query))
    return list(result.scalars().all())


async def existing_sequences(
    session: AsyncSession, category: str, start: int, end: int
) -> set[int]:
    result = await session.execute(
        select(Ticket.sequence).where(
            Ticket.category == category,
            Ticket.sequence >= start,
            Ticket.sequence <= end,
        )
    )
    return set(result.scalars().all())


async def bulk_create(
    session: AsyncSession, category: str, sequences: Sequence[int]
) -> int:
    if not sequences:
        return 0
    rows = [
        {
            "category": category,
            "sequence": seq,
            "status": TicketStatus.AVAILABLE.value,
            "printed": False,
            "print_count": 0,
        }
        for seq in sequences
    ]
    await session.execute(insert(Ticket), rows)
    return len(rows)


async def barcode_owner(session: AsyncSession, barcode: str) -> int | None:
    """Id of the ticket currently holding ``barcode``."""
    result = await session.execute(select(Ticket.id).where(Ticket.barcode == barcode))
    return result.scalar_one_or_none()


async def assign_barcode(session: AsyncSession, ticket_id: int, barcode: str) -> bool:
    """Set the barcode only if the ticket has none yet."""
    result = await session.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id, Ticket.barcode.is_(None))
        .values(barcode=barcode)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def assign_verification_ref(
    session: AsyncSession, ticket_id: int, verification_ref: str
) -> bool:
    result = await session.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id, Ticket.verification_ref.is_(None))
        .values(verification_ref=verification_ref)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def replace_barcode(
    session: AsyncSession, ticket_id: int, old_barcode: str, new_barcode: str
) -> bool:
    """Swap a non-canonical barcode for a canonical one, keeping the old value."""
    result = await session.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id, Ticket.barcode == old_barcode)
        .values(barcode=new_barcode, legacy_barcode=old_barcode)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def flag_invalid(
    session: AsyncSession, ticket_ids: Sequence[int], note: str
) -> int:
    """AVAILABLE -> INVALID. Sold and won tickets are left alone."""
    flagged = 0
    for chunk in _chunks(ticket_ids):
        result = await session.execute(
            update(Ticket)
            .where(
                Ticket.id.in_(chunk),
                Ticket.status == TicketStatus.AVAILABLE.value,
            )
            .values(status=TicketStatus.INVALID.value, notes=note)
            .execution_options(synchronize_session=False)
        )
        flagged += result.rowcount
    return flagged


async def reissue(session: AsyncSession, ticket_ids: Sequence[int]) -> int:
    """INVALID -> AVAILABLE once a canonical barcode has been printed."""
    reissued = 0
    for chunk in _chunks(ticket_ids):
        result = await session.execute(
            update(Ticket)
            .where(
                Ticket.id.in_(chunk),
                Ticket.status == TicketStatus.INVALID.value,
                Ticket.barcode.is_not(None),
            )
            .values(status=TicketStatus.AVAILABLE.value, notes="Reissued with canonical barcode")
            .execution_options(synchronize_session=False)
        )
        reissued += result.rowcount
    return reissued


async def mark_printed(session: AsyncSession, ticket_ids: Sequence[int]) -> int:
    now = datetime.now()
    marked = 0
    for chunk in _chunks(ticket_ids):
        result = await session.execute(
            update(Ticket)
            .where(Ticket.id.in_(chunk))
            .values(
                printed=True,
                print_count=Ticket.print_count + 1,
                printed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        marked += result.rowcount
    return marked


async def mark_sold(session: AsyncSession, ticket_id: int) -> bool:
    """AVAILABLE -> SOLD; False when another sale got there first."""
    result = await session.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id, Ticket.status == TicketStatus.AVAILABLE.value)
        .values(status=TicketStatus.SOLD.value, sold_at=datetime.now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0

