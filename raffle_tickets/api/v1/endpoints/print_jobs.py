"""Print job API endpoints."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_tickets.api.deps import get_db, get_orchestrator
from raffle_tickets.db.models.print_job import JobStatus
from raffle_tickets.exceptions import JobNotFound, JobStateError
from raffle_tickets.schemas.print_job import PrintJobDetail, PrintJobRequest, PrintJobSchema
from raffle_tickets.services import print_service
from raffle_tickets.services.print_service import PrintJobOrchestrator

router = APIRouter()


async def _run_job(orchestrator: PrintJobOrchestrator, job_id: int, retry: bool = False):
    try:
        await orchestrator.run(job_id, retry=retry)
    except (JobNotFound, JobStateError) as e:
        logger.warning("Background run of print job {} skipped: {}", job_id, e)


@router.post("", response_model=PrintJobSchema, status_code=201)
async def create_print_job(
    request: PrintJobRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    orchestrator: PrintJobOrchestrator = Depends(get_orchestrator),
):
    """Create a print job for a ticket range and start it in the background."""
    try:
        job = await print_service.create_job(
            db, request.category, request.start, request.end, request.template,
            catalog=orchestrator.catalog,
            front_background=request.front_background,
            back_background=request.back_background,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    await db.commit()

    background_tasks.add_task(_run_job, orchestrator, job.id)
    return job


@router.get("", response_model=list[PrintJobSchema])
async def list_print_jobs(
    status: JobStatus | None = Query(None),
    category: str | None = Query(None, pattern="^[A-Da-d]$"),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List print jobs, newest first."""
    return await print_service.list_jobs(
        db, status=status.value if status else None, category=category, limit=limit,
    )


@router.get("/{job_id}", response_model=PrintJobDetail)
async def get_print_job(job_id: int, db: AsyncSession = Depends(get_db)):
    """Job status, progress and per-item counts."""
    try:
        return await print_service.get_job_status(db, job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{job_id}/cancel", response_model=PrintJobSchema)
async def cancel_print_job(job_id: int, db: AsyncSession = Depends(get_db)):
    """Ask a job to stop; a running job stops at its next chunk."""
    try:
        return await print_service.request_cancel(db, job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobStateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{job_id}/retry", response_model=PrintJobSchema, status_code=202)
async def retry_print_job(
    job_id: int,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    orchestrator: PrintJobOrchestrator = Depends(get_orchestrator),
):
    """Re-run a failed job; tickets already printed are skipped."""
    try:
        job = await print_service.get_job_status(db, job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    if job.status != JobStatus.FAILED.value:
        raise HTTPException(
            status_code=409, detail=f"Only failed jobs can be retried (job is {job.status})"
        )

    background_tasks.add_task(_run_job, orchestrator, job_id, True)
    return job
