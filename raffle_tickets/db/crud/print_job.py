"""CRUD operations for print jobs and their per-ticket items."""

from collections import Counter
from collections.abc import Sequence

from sqlalchemy import desc, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_tickets.db.models.print_job import (
    ItemStatus,
    JobStatus,
    PrintJob,
    PrintJobItem,
)


async def create_job(session: AsyncSession, job: dict) -> PrintJob:
    obj = PrintJob(**job)
    session.add(obj)
    await session.flush()
    await session.refresh(obj)
    return obj


async def get_job(session: AsyncSession, job_id: int) -> PrintJob | None:
    result = await session.execute(
        select(PrintJob)
        .where(PrintJob.id == job_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_jobs(
    session: AsyncSession,
    *,
    status: str | None = None,
    category: str | None = None,
    limit: int = 50,
) -> list[PrintJob]:
    query = select(PrintJob).order_by(desc(PrintJob.started_at), desc(PrintJob.id))
    if status:
        query = query.where(PrintJob.status == status)
    if category:
        query = query.where(PrintJob.category == category)
    result = await session.execute(query.limit(limit))
    return list(result.scalars().all())


async def get_scheduled_job_ids(session: AsyncSession) -> list[int]:
    result = await session.execute(
        select(PrintJob.id)
        .where(PrintJob.status == JobStatus.SCHEDULED.value)
        .order_by(PrintJob.id)
    )
    return list(result.scalars().all())


async def is_cancel_requested(session: AsyncSession, job_id: int) -> bool:
    result = await session.execute(
        select(PrintJob.cancel_requested).where(PrintJob.id == job_id)
    )
    return bool(result.scalar())


async def request_cancel(session: AsyncSession, job_id: int) -> bool:
    """Flag a non-terminal job for cancellation."""
    result = await session.execute(
        update(PrintJob)
        .where(
            PrintJob.id == job_id,
            PrintJob.status.in_([
                JobStatus.SCHEDULED.value,
                JobStatus.GENERATING.value,
                JobStatus.PRINTING.value,
            ]),
        )
        .values(cancel_requested=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def cancel_scheduled(session: AsyncSession, job_id: int) -> bool:
    """scheduled -> failed ("Cancelled"); False once the job has been claimed."""
    result = await session.execute(
        update(PrintJob)
        .where(PrintJob.id == job_id, PrintJob.status == JobStatus.SCHEDULED.value)
        .values(
            status=JobStatus.FAILED.value,
            error_message="Cancelled",
            cancel_requested=True,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


# --- Items ---

async def get_items(session: AsyncSession, job_id: int) -> dict[int, PrintJobItem]:
    """ticket_id -> item for one job."""
    result = await session.execute(
        select(PrintJobItem)
        .where(PrintJobItem.job_id == job_id)
        .execution_options(populate_existing=True)
    )
    return {item.ticket_id: item for item in result.scalars().all()}


async def add_items(
    session: AsyncSession, job_id: int, ticket_ids: Sequence[int]
) -> int:
    if not ticket_ids:
        return 0
    await session.execute(
        insert(PrintJobItem),
        [
            {"job_id": job_id, "ticket_id": tid, "status": ItemStatus.PENDING.value}
            for tid in ticket_ids
        ],
    )
    return len(ticket_ids)


async def item_status_counts(session: AsyncSession, job_id: int) -> dict[str, int]:
    result = await session.execute(
        select(PrintJobItem.status).where(PrintJobItem.job_id == job_id)
    )
    counts = Counter(result.scalars().all())
    return {status.value: counts.get(status.value, 0) for status in ItemStatus}


async def reset_items(
    session: AsyncSession, job_id: int, statuses: Sequence[str]
) -> int:
    """Move items in ``statuses`` back to pending, clearing their error."""
    result = await session.execute(
        update(PrintJobItem)
        .where(PrintJobItem.job_id == job_id, PrintJobItem.status.in_(list(statuses)))
        .values(status=ItemStatus.PENDING.value, error=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def get_running_job_ids(session: AsyncSession) -> list[int]:
    result = await session.execute(
        select(PrintJob.id).where(
            PrintJob.status.in_([JobStatus.GENERATING.value, JobStatus.PRINTING.value])
        )
    )
    return list(result.scalars().all())


async def claim_job(
    session: AsyncSession, job_id: int, include_failed: bool = False
) -> bool:
    """scheduled (or failed) -> generating; False when the job is not claimable.

    A stale cancel flag from an earlier run is cleared in the same statement,
    so only cancellations requested after the claim stop the new run.
    """
    claimable = [JobStatus.SCHEDULED.value]
    if include_failed:
        claimable.append(JobStatus.FAILED.value)
    result = await session.execute(
        update(PrintJob)
        .where(
            PrintJob.id == job_id,
            PrintJob.status.in_(claimable),
        )
        .values(status=JobStatus.GENERATING.value, cancel_requested=False)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0
