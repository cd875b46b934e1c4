"""CRUD operations for the scan audit log."""

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_tickets.db.models.ticket_scan import TicketScan


async def add_scan(session: AsyncSession, scan: dict) -> TicketScan:
    obj = TicketScan(**scan)
    session.add(obj)
    await session.flush()
    return obj


async def get_scans_for_ticket(
    session: AsyncSession, ticket_id: int, limit: int = 50
) -> list[TicketScan]:
    result = await session.execute(
        select(TicketScan)
        .where(TicketScan.ticket_id == ticket_id)
        .order_by(desc(TicketScan.id))
        .limit(limit)
    )
    return list(result.scalars().all())
