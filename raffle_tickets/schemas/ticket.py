"""Pydantic schemas for tickets, pool creation and barcode migration."""

from datetime import datetime
from pydantic import BaseModel, Field


class TicketSchema(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    ticket_number: str
    category: str
    sequence: int
    barcode: str | None
    legacy_barcode: str | None = None
    verification_ref: str | None
    status: str
    printed: bool
    print_count: int
    printed_at: datetime | None = None
    sold_at: datetime | None = None
    notes: str | None = None


class TicketPoolRequest(BaseModel):
    category: str  # A / B / C / D
    start: int = Field(ge=1)
    end: int = Field(ge=1)


class TicketPoolResponse(BaseModel):
    category: str
    start: int
    end: int
    created: int
    skipped: int


class LegacyTicketSchema(BaseModel):
    ticket_id: int
    ticket_number: str
    barcode: str | None
    issue: str  # MISSING_BARCODE / LEGACY_FORMAT / INVALID_FORMAT / MISMATCHED


class MigrationRequest(BaseModel):
    category: str | None = None


class MigrationReport(BaseModel):
    total: int
    converted: int
    flagged: int
    missing: int
    errors: list[str]


class CategoryBarcodeStats(BaseModel):
    category: str
    total: int
    canonical: int
    legacy: int
    missing: int
    flagged_invalid: int


class BarcodeStatistics(BaseModel):
    total_tickets: int
    canonical: int
    legacy: int
    missing: int
    flagged_invalid: int
    by_category: list[CategoryBarcodeStats]
