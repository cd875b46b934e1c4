"""Pydantic schemas for point-of-sale barcode checks."""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field

from raffle_tickets.schemas.ticket import TicketSchema


class SaleRejection(str, Enum):
    INVALID_FORMAT = "INVALID_FORMAT"
    NOT_FOUND = "NOT_FOUND"
    SUPERSEDED_TICKET = "SUPERSEDED_TICKET"
    ALREADY_SOLD = "ALREADY_SOLD"


REJECTION_MESSAGES = {
    SaleRejection.INVALID_FORMAT: (
        "This barcode format is not valid. Please use a ticket with the new "
        "13-digit barcode."
    ),
    SaleRejection.NOT_FOUND: "Ticket not found. Please verify the barcode is correct.",
    SaleRejection.SUPERSEDED_TICKET: (
        "This ticket has been replaced with a new barcode. Please obtain the "
        "updated ticket."
    ),
    SaleRejection.ALREADY_SOLD: "This ticket has already been sold.",
}


class SaleRequest(BaseModel):
    barcode: str
    # Recorded in the scan audit log
    scanned_by: str | None = Field(None, max_length=100)
    scan_method: str = Field("barcode", max_length=20)  # barcode / manual
    notes: str | None = None


class SaleDecision(BaseModel):
    accepted: bool
    reason: SaleRejection | None = None
    message: str
    ticket: TicketSchema | None = None


class TicketScanSchema(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    ticket_id: int | None
    barcode: str
    scan_type: str  # validate / sale
    scan_method: str
    accepted: bool
    reason: str | None
    scanned_by: str | None
    notes: str | None
    scanned_at: datetime
