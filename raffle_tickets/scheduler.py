"""APScheduler sweep that picks up scheduled print jobs."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from raffle_tickets.config import settings
from raffle_tickets.db.crud import print_job as job_crud
from raffle_tickets.db.engine import async_session_factory
from raffle_tickets.exceptions import JobStateError

_scheduler: AsyncIOScheduler | None = None


async def _run_scheduled_jobs():
    """Run every job still waiting in ``scheduled``, oldest first."""
    from raffle_tickets.api.deps import get_orchestrator

    async with async_session_factory() as session:
        job_ids = await job_crud.get_scheduled_job_ids(session)

    if not job_ids:
        return

    logger.info("Scheduler picked up {} print jobs", len(job_ids))
    orchestrator = get_orchestrator()
    for job_id in job_ids:
        try:
            await orchestrator.run(job_id)
        except JobStateError as e:
            # Claimed by a request-triggered run in the meantime
            logger.debug("Skipping print job {}: {}", job_id, e)
        except Exception as e:
            logger.error("Scheduled print job {} crashed: {}", job_id, e)


def start_scheduler():
    """Start the APScheduler with the print job sweep."""
    global _scheduler
    if _scheduler is not None:
        return

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        _run_scheduled_jobs, "interval",
        seconds=settings.SCHEDULER_INTERVAL_SECONDS,
        id="print_job_sweep",
        max_instances=1,
        coalesce=True,
    )

    _scheduler.start()
    logger.info("Scheduler started with {} jobs", len(_scheduler.get_jobs()))


def stop_scheduler():
    """Shutdown the scheduler."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler stopped")


def get_scheduler_status() -> list[dict]:
    """Get status of all scheduled jobs."""
    if not _scheduler:
        return []

    jobs = []
    for job in _scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None,
            "trigger": str(job.trigger),
        })
    return jobs
