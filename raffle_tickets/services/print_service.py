"""Print job orchestration, from code assignment through print marking.

A job walks ``scheduled -> generating -> printing -> completed``. Any error
moves it to ``failed``; a failed job can be run again and picks up where the
per-ticket items left off. Tickets are only marked printed in the final
transaction, so a failed or cancelled run never leaves half-marked tickets.
"""

import asyncio
import math
from collections.abc import Sequence
from datetime import datetime
from functools import partial
from pathlib import Path

from loguru import logger
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from raffle_tickets.barcode.categories import Category, format_ticket_number, to_category
from raffle_tickets.barcode.codec import IdentifierCodec, get_codec
from raffle_tickets.config import settings
from raffle_tickets.db.crud import print_job as job_crud
from raffle_tickets.db.crud import ticket as ticket_crud
from raffle_tickets.db.models.print_job import (
    TERMINAL_STATUSES,
    ItemStatus,
    JobStatus,
    PrintJob,
    PrintJobItem,
)
from raffle_tickets.db.models.ticket import Ticket
from raffle_tickets.exceptions import (
    EmptyRange,
    JobCancelled,
    JobNotFound,
    JobStateError,
    PersistenceConflict,
)
from raffle_tickets.printing.layout import Face, PageLayoutEngine, Placement, Symbology
from raffle_tickets.printing.renderer import ImageRenderer
from raffle_tickets.printing.retry import call_with_retry
from raffle_tickets.printing.sheet import SheetWriter, resolve_background
from raffle_tickets.printing.templates import PaperTemplateCatalog, get_catalog
from raffle_tickets.schemas.print_job import PrintJobDetail, PrintJobSchema
from raffle_tickets.services.ticket_service import ensure_codes

GENERATING_START = 10
GENERATING_SPAN = 30
PRINTING_START = 50
PRINTING_SPAN = 40

# Items in these states are worked on again when a failed job is re-run
RETRYABLE_ITEMS = [
    ItemStatus.RENDERED.value,
    ItemStatus.RENDER_FAILED.value,
    ItemStatus.FAILED.value,
]

# Code assignment errors that roll back and retry instead of failing the job
DB_RETRYABLE = (IntegrityError, OperationalError, InterfaceError, asyncio.TimeoutError)


def _chunked(seq: Sequence, size: int):
    for i in range(0, len(seq), size):
        yield seq[i:i + size]


# --- Job creation and queries ---

async def create_job(
    session: AsyncSession,
    category: Category | str,
    start: int,
    end: int,
    template_name: str,
    catalog: PaperTemplateCatalog | None = None,
    *,
    front_background: str | None = None,
    back_background: str | None = None,
    upload_dir: Path | None = None,
) -> PrintJob:
    """Persist a scheduled job.

    Raises UnknownTemplate, EmptyRange, or InvalidBackground when a custom
    front/back image is not a file in the upload directory.
    """
    template = (catalog or get_catalog()).get(template_name)
    category = to_category(category)
    if end < start:
        raise EmptyRange(f"Range {start}-{end} is empty")
    for name in (front_background, back_background):
        if name is not None:
            resolve_background(name, upload_dir or settings.TEMPLATE_UPLOAD_DIR)

    total = await ticket_crud.count_range(session, category.value, start, end)
    if total == 0:
        raise EmptyRange(
            f"No tickets in {format_ticket_number(category, start)}"
            f"..{format_ticket_number(category, end)}"
        )

    job = await job_crud.create_job(session, {
        "category": category.value,
        "range_start": start,
        "range_end": end,
        "template_name": template.name,
        "total_tickets": total,
        "total_pages": math.ceil(total / template.tickets_per_page),
        "status": JobStatus.SCHEDULED.value,
        "progress_percent": 0,
        "errors": [],
        "front_background": front_background,
        "back_background": back_background,
    })
    logger.info(
        "Created print job {}: {} tickets {} {}-{} on {} ({} pages)",
        job.id, total, category.value, start, end, template.name, job.total_pages,
    )
    return job


async def request_print_job(
    session: AsyncSession,
    category: Category | str,
    start: int,
    end: int,
    template_name: str,
    catalog: PaperTemplateCatalog | None = None,
    **backgrounds,
) -> int:
    job = await create_job(session, category, start, end, template_name, catalog, **backgrounds)
    await session.commit()
    return job.id


async def get_job_status(session: AsyncSession, job_id: int) -> PrintJobDetail:
    job = await job_crud.get_job(session, job_id)
    if job is None:
        raise JobNotFound(f"Print job {job_id} not found")
    items = await job_crud.item_status_counts(session, job_id)
    return PrintJobDetail(**PrintJobSchema.model_validate(job).model_dump(), items=items)


async def list_jobs(
    session: AsyncSession,
    status: str | None = None,
    category: str | None = None,
    limit: int = 50,
) -> list[PrintJob]:
    return await job_crud.list_jobs(
        session,
        status=status,
        category=to_category(category).value if category else None,
        limit=limit,
    )


async def request_cancel(session: AsyncSession, job_id: int) -> PrintJob:
    """Cancel a job. A job that has not started yet fails immediately;
    a running one stops at its next chunk boundary."""
    job = await job_crud.get_job(session, job_id)
    if job is None:
        raise JobNotFound(f"Print job {job_id} not found")
    if job.status in TERMINAL_STATUSES:
        raise JobStateError(f"Print job {job_id} is already {job.status}")

    # Both writes are guarded on status; a job claimed after the read above
    # falls through to the flag, which the running orchestrator honours.
    if job.status == JobStatus.SCHEDULED.value and await job_crud.cancel_scheduled(session, job_id):
        logger.info("Print job {} cancelled before it started", job_id)
        return await job_crud.get_job(session, job_id)

    if not await job_crud.request_cancel(session, job_id):
        job = await job_crud.get_job(session, job_id)
        raise JobStateError(f"Print job {job_id} is already {job.status}")
    logger.info("Cancellation requested for print job {}", job_id)
    return await job_crud.get_job(session, job_id)


async def recover_interrupted_jobs(session: AsyncSession) -> int:
    """Fail jobs left in generating/printing by a process that died."""
    job_ids = await job_crud.get_running_job_ids(session)
    for job_id in job_ids:
        job = await job_crud.get_job(session, job_id)
        job.status = JobStatus.FAILED.value
        job.error_message = "Interrupted"
        await job_crud.reset_items(session, job_id, [ItemStatus.RENDERED.value])
    if job_ids:
        await session.commit()
        logger.warning("Marked {} interrupted print jobs as failed", len(job_ids))
    return len(job_ids)


# --- Orchestrator ---

class PrintJobOrchestrator:
    """Runs print jobs against a session factory and an image renderer."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        renderer: ImageRenderer,
        *,
        catalog: PaperTemplateCatalog | None = None,
        codec: IdentifierCodec | None = None,
        engine: PageLayoutEngine | None = None,
        sheet_writer: SheetWriter | None = None,
        concurrency: int | None = None,
        batch_size: int | None = None,
        timeout: float | None = None,
        progress_step: int | None = None,
    ):
        self.session_factory = session_factory
        self.renderer = renderer
        self.catalog = catalog or get_catalog()
        self.codec = codec or get_codec()
        self.engine = engine or PageLayoutEngine()
        self.sheet_writer = sheet_writer
        self.concurrency = concurrency or settings.PRINT_CONCURRENCY
        self.batch_size = batch_size or settings.PRINT_BATCH_SIZE
        self.timeout = timeout or settings.RENDERER_TIMEOUT_SECONDS
        self.progress_step = progress_step or settings.PROGRESS_STEP

    async def run(self, job_id: int, retry: bool = False) -> PrintJob:
        """Run one job to completion or failure and return its final state.

        Only scheduled jobs are picked up unless ``retry`` is set, which also
        accepts failed ones. Completed jobs are returned untouched.
        """
        async with self.session_factory() as session:
            job = await job_crud.get_job(session, job_id)
            if job is None:
                raise JobNotFound(f"Print job {job_id} not found")
            if job.status == JobStatus.COMPLETED.value:
                logger.info("Print job {} already completed; nothing to do", job_id)
                return job
            if not await job_crud.claim_job(session, job_id, include_failed=retry):
                raise JobStateError(f"Print job {job_id} is already {job.status}")
            await session.commit()
            job = await job_crud.get_job(session, job_id)

            try:
                await self._execute(session, job)
            except JobCancelled:
                await session.rollback()
                return await self._fail(session, job_id, "Cancelled")
            except Exception as e:
                logger.exception("Print job {} failed", job_id)
                await session.rollback()
                return await self._fail(session, job_id, str(e) or type(e).__name__)

            return job

    async def _execute(self, session: AsyncSession, job: PrintJob) -> None:
        job_id = job.id
        template = self.catalog.get(job.template_name)
        logger.info("Running print job {} ({})", job_id, template.name)

        job.error_message = None
        job.errors = []
        job.completed_at = None
        await self._advance(session, job, JobStatus.GENERATING, GENERATING_START)

        tickets = await self._fetch_tickets(session, job)
        items = await self._prepare_items(session, job_id, tickets)

        await self._generate(session, job, tickets, items)

        # Rollbacks during generation expire every loaded row, so read again.
        # Tickets added to the range after the run started belong to no item.
        items = await job_crud.get_items(session, job_id)
        tickets = [t for t in await self._fetch_tickets(session, job) if t.id in items]

        await self._advance(session, job, JobStatus.PRINTING, PRINTING_START)
        placements = self.engine.layout(tickets, template)
        images = await self._render(session, job, tickets, placements, items)

        await self._check_cancel(session, job_id)
        if self.sheet_writer is not None and images:
            backgrounds = {
                face: name for face, name in (
                    (Face.FRONT, job.front_background),
                    (Face.BACK, job.back_background),
                ) if name
            }
            path = await asyncio.to_thread(
                self.sheet_writer.write,
                job_id, template, placements, images,
                [t.ticket_number for t in tickets], len(tickets),
                backgrounds=backgrounds,
            )
            job.output_path = str(path)

        await self._mark_printed(session, job, items)

    async def _fetch_tickets(self, session: AsyncSession, job: PrintJob) -> list[Ticket]:
        tickets = await call_with_retry(
            partial(
                ticket_crud.get_range,
                session, job.category, job.range_start, job.range_end,
            ),
            timeout=self.timeout,
            label=f"fetch tickets for job {job.id}",
        )
        if not tickets:
            raise EmptyRange(
                f"No tickets left in {job.category} {job.range_start}-{job.range_end}"
            )
        return tickets

    async def _prepare_items(
        self, session: AsyncSession, job_id: int, tickets: Sequence[Ticket]
    ) -> dict[int, PrintJobItem]:
        """One item per ticket; leftovers from a failed run go back to pending."""
        await job_crud.reset_items(session, job_id, RETRYABLE_ITEMS)
        items = await job_crud.get_items(session, job_id)
        new_ids = [t.id for t in tickets if t.id not in items]
        if new_ids:
            await job_crud.add_items(session, job_id, new_ids)
            items = await job_crud.get_items(session, job_id)
        await session.commit()
        return items

    # --- generating ---

    async def _generate(
        self,
        session: AsyncSession,
        job: PrintJob,
        tickets: list[Ticket],
        items: dict[int, PrintJobItem],
    ) -> None:
        job_id = job.id
        total = len(tickets)
        done = 0
        for chunk in _chunked(tickets, self.batch_size):
            await self._check_cancel(session, job_id)
            await self._generate_chunk(session, job, chunk, items)
            done += len(chunk)
            await self._advance(
                session, job, JobStatus.GENERATING,
                GENERATING_START + GENERATING_SPAN * done // total,
            )

    async def _generate_chunk(
        self,
        session: AsyncSession,
        job: PrintJob,
        chunk: list[Ticket],
        items: dict[int, PrintJobItem],
    ) -> None:
        """Assign codes for one chunk in a single transaction.

        A uniqueness violation or a transient database error rolls the chunk
        back. It is then redone one ticket per transaction, each with a
        timeout and one retry, so a ticket that keeps failing ends up as a
        failed item instead of failing the job.
        """
        job_id = job.id
        try:
            for ticket in chunk:
                item = items[ticket.id]
                if item.status == ItemStatus.PENDING.value:
                    await asyncio.wait_for(
                        self._assign(session, job, ticket, item), timeout=self.timeout
                    )
            await session.commit()
            return
        except DB_RETRYABLE as e:
            logger.info("Job {}: {!r} while assigning codes; redoing chunk per ticket", job_id, e)
            await self._reload(session, job)

        for ticket in chunk:
            item = items[ticket.id]
            if item.status != ItemStatus.PENDING.value:
                continue
            try:
                await call_with_retry(
                    partial(self._assign_and_commit, session, job, ticket, item),
                    timeout=self.timeout,
                    label=f"assign codes for {ticket.ticket_number}",
                    retry_on=DB_RETRYABLE,
                    before_retry=partial(self._reload, session, job),
                )
            except DB_RETRYABLE as e:
                await self._reload(session, job)
                self._item_failed(job, ticket, item, f"{type(e).__name__}: {e}")
                await session.commit()

    async def _assign(
        self, session: AsyncSession, job: PrintJob, ticket: Ticket, item: PrintJobItem
    ) -> None:
        try:
            await ensure_codes(session, ticket, self.codec)
        except PersistenceConflict as e:
            logger.warning("Job {}: {}", job.id, e)
            self._item_failed(job, ticket, item, str(e))

    async def _assign_and_commit(
        self, session: AsyncSession, job: PrintJob, ticket: Ticket, item: PrintJobItem
    ) -> None:
        await self._assign(session, job, ticket, item)
        await session.commit()

    @staticmethod
    def _item_failed(job: PrintJob, ticket: Ticket, item: PrintJobItem, error: str) -> None:
        item.status = ItemStatus.FAILED.value
        item.error = error
        job.errors = [*job.errors, f"{ticket.ticket_number}: {error}"]

    async def _reload(self, session: AsyncSession, job: PrintJob) -> None:
        """Roll back, then refresh the job, its items and its range in place."""
        job_id, category = job.id, job.category
        start, end = job.range_start, job.range_end
        await session.rollback()
        await job_crud.get_job(session, job_id)
        await job_crud.get_items(session, job_id)
        await ticket_crud.get_range(session, category, start, end)

    # --- printing ---

    async def _render(
        self,
        session: AsyncSession,
        job: PrintJob,
        tickets: list[Ticket],
        placements: list[Placement],
        items: dict[int, PrintJobItem],
    ) -> dict[tuple[int, Face], bytes]:
        job_id = job.id
        faces: dict[int, list[Placement]] = {}
        for placement in placements:
            faces.setdefault(placement.ticket_index, []).append(placement)

        todo = [
            index for index, ticket in enumerate(tickets)
            if items[ticket.id].status == ItemStatus.PENDING.value
        ]
        if not todo:
            return {}

        semaphore = asyncio.Semaphore(self.concurrency)
        images: dict[tuple[int, Face], bytes] = {}
        errors = list(job.errors)
        failed = done = 0

        for chunk in _chunked(todo, self.batch_size):
            await self._check_cancel(session, job_id)
            results = await asyncio.gather(*(
                self._render_ticket(semaphore, tickets[index], faces.get(index, []))
                for index in chunk
            ))
            for index, (rendered, error) in zip(chunk, results):
                ticket = tickets[index]
                item = items[ticket.id]
                if error is not None:
                    item.status = ItemStatus.RENDER_FAILED.value
                    item.error = error
                    errors.append(f"{ticket.ticket_number}: {error}")
                    failed += 1
                else:
                    item.status = ItemStatus.RENDERED.value
                    item.error = None
                    images.update(rendered)

            job.errors = list(errors)
            done += len(chunk)
            await session.commit()
            await self._advance(
                session, job, JobStatus.PRINTING,
                PRINTING_START + PRINTING_SPAN * done // len(todo),
            )

        if failed:
            logger.warning("Job {}: {} tickets failed to render", job_id, failed)
        return images

    async def _render_ticket(
        self,
        semaphore: asyncio.Semaphore,
        ticket: Ticket,
        placements: list[Placement],
    ) -> tuple[dict[tuple[int, Face], bytes], str | None]:
        rendered: dict[tuple[int, Face], bytes] = {}
        for placement in placements:
            box = self.engine.code_box(placement)
            if box.symbology is Symbology.EAN13:
                payload = ticket.barcode
            else:
                payload = ticket.verification_ref
            if not payload:
                return {}, f"no {box.symbology.value} payload for {placement.face.value}"

            try:
                async with semaphore:
                    rendered[(placement.ticket_index, placement.face)] = await call_with_retry(
                        partial(
                            self.renderer.render,
                            payload, box.symbology, box.width, box.height,
                        ),
                        timeout=self.timeout,
                        label=f"render {ticket.ticket_number} {placement.face.value}",
                    )
            except Exception as e:
                return {}, f"{type(e).__name__}: {e}"
        return rendered, None

    async def _mark_printed(
        self,
        session: AsyncSession,
        job: PrintJob,
        items: dict[int, PrintJobItem],
    ) -> None:
        """Single transaction: tickets printed, superseded tickets reissued, job done."""
        rendered = [
            ticket_id for ticket_id, item in items.items()
            if item.status == ItemStatus.RENDERED.value
        ]
        await ticket_crud.mark_printed(session, rendered)
        reissued = await ticket_crud.reissue(session, rendered)
        for ticket_id in rendered:
            items[ticket_id].status = ItemStatus.PRINTED.value

        job.status = JobStatus.COMPLETED.value
        job.progress_percent = 100
        job.completed_at = datetime.now()
        await session.commit()

        logger.info(
            "Print job {} completed: {} printed, {} reissued, {} errors",
            job.id, len(rendered), reissued, len(job.errors),
        )

    # --- bookkeeping ---

    async def _advance(
        self,
        session: AsyncSession,
        job: PrintJob,
        status: JobStatus,
        progress: int,
    ) -> None:
        """Persist status/progress; small progress moves are coalesced."""
        progress = min(progress, 100)
        if job.status == status.value and progress < job.progress_percent + self.progress_step:
            return
        job.status = status.value
        job.progress_percent = max(job.progress_percent, progress)
        await session.commit()
        logger.debug("Print job {}: {} {}%", job.id, job.status, job.progress_percent)

    async def _check_cancel(self, session: AsyncSession, job_id: int) -> None:
        if await job_crud.is_cancel_requested(session, job_id):
            raise JobCancelled(f"Print job {job_id} cancelled")

    async def _fail(self, session: AsyncSession, job_id: int, message: str) -> PrintJob:
        job = await job_crud.get_job(session, job_id)
        job.status = JobStatus.FAILED.value
        job.error_message = message[:1000]
        # Rendered but never marked; those tickets were not printed
        await job_crud.reset_items(session, job_id, [ItemStatus.RENDERED.value])
        await session.commit()
        logger.warning("Print job {} failed: {}", job_id, message)
        return await job_crud.get_job(session, job_id)

