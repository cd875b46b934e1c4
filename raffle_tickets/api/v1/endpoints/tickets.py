"""Ticket pool and barcode migration API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_tickets.api.deps import get_db
from raffle_tickets.db.crud import ticket_scan as scan_crud
from raffle_tickets.schemas.sale import TicketScanSchema
from raffle_tickets.schemas.ticket import (
    BarcodeStatistics,
    LegacyTicketSchema,
    MigrationReport,
    MigrationRequest,
    TicketPoolRequest,
    TicketPoolResponse,
    TicketSchema,
)
from raffle_tickets.services import migration_service, ticket_service

router = APIRouter()


@router.post("/pool", response_model=TicketPoolResponse, status_code=201)
async def create_pool(request: TicketPoolRequest, db: AsyncSession = Depends(get_db)):
    """Create AVAILABLE tickets for a category range."""
    try:
        return await ticket_service.create_ticket_pool(
            db, request.category, request.start, request.end
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/barcode-stats", response_model=BarcodeStatistics)
async def barcode_stats(db: AsyncSession = Depends(get_db)):
    """Canonical / legacy / missing barcode counts per category."""
    return await migration_service.barcode_statistics(db)


@router.get("/legacy", response_model=list[LegacyTicketSchema])
async def legacy_tickets(
    category: str | None = Query(None, pattern="^[A-Da-d]$"),
    db: AsyncSession = Depends(get_db),
):
    """Tickets whose stored barcode is not their canonical one."""
    return await migration_service.detect_legacy_tickets(db, category)


@router.post("/migrate-legacy", response_model=MigrationReport)
async def migrate_legacy(request: MigrationRequest, db: AsyncSession = Depends(get_db)):
    """Replace legacy barcodes and flag unsold tickets for reprint."""
    try:
        return await migration_service.migrate_legacy_barcodes(db, request.category)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{ticket_number}", response_model=TicketSchema)
async def get_ticket(ticket_number: str, db: AsyncSession = Depends(get_db)):
    """Look a ticket up by its number, e.g. ``A-000123``."""
    ticket = await ticket_service.get_ticket_by_number(db, ticket_number)
    if ticket is None:
        raise HTTPException(status_code=404, detail=f"Ticket {ticket_number} not found")
    return ticket


@router.get("/{ticket_number}/scans", response_model=list[TicketScanSchema])
async def get_ticket_scans(
    ticket_number: str,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Sale checks recorded for a ticket, newest first."""
    ticket = await ticket_service.get_ticket_by_number(db, ticket_number)
    if ticket is None:
        raise HTTPException(status_code=404, detail=f"Ticket {ticket_number} not found")
    return await scan_crud.get_scans_for_ticket(db, ticket.id, limit=limit)
