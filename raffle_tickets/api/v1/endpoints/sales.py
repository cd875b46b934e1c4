"""Point-of-sale API endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_tickets.api.deps import get_db
from raffle_tickets.exceptions import PersistenceConflict
from raffle_tickets.schemas.sale import SaleDecision, SaleRequest
from raffle_tickets.services import sale_service

router = APIRouter()


@router.post("/validate", response_model=SaleDecision)
async def validate_sale(request: SaleRequest, db: AsyncSession = Depends(get_db)):
    """Check a scanned barcode without selling the ticket."""
    return await sale_service.validate_for_sale(
        db, request.barcode,
        scanned_by=request.scanned_by,
        scan_method=request.scan_method,
        notes=request.notes,
    )


@router.post("", response_model=SaleDecision)
async def sell(request: SaleRequest, db: AsyncSession = Depends(get_db)):
    """Sell the ticket behind a scanned barcode.

    Rejections come back as ``accepted: false`` with a reason rather than an
    HTTP error, so the till can show the message as-is. A barcode clash in
    the ticket data is a 409 for an operator to resolve.
    """
    try:
        return await sale_service.sell_ticket(
            db, request.barcode,
            scanned_by=request.scanned_by,
            scan_method=request.scan_method,
            notes=request.notes,
        )
    except PersistenceConflict as e:
        logger.error("Sale of {!r} blocked: {}", request.barcode, e)
        raise HTTPException(status_code=409, detail=str(e))
