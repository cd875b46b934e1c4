"""Pydantic schemas for print jobs and paper templates."""

from datetime import datetime
from pydantic import BaseModel, Field


class PrintJobRequest(BaseModel):
    category: str  # A / B / C / D
    start: int = Field(ge=1)
    end: int = Field(ge=1)
    template: str = "AVERY_16145"
    # File names of uploaded background images, drawn under the codes
    front_background: str | None = None
    back_background: str | None = None


class PrintJobSchema(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    category: str
    range_start: int
    range_end: int
    template_name: str
    total_tickets: int
    total_pages: int
    status: str
    progress_percent: int
    error_message: str | None
    errors: list[str]
    cancel_requested: bool
    output_path: str | None
    front_background: str | None = None
    back_background: str | None = None
    started_at: datetime
    completed_at: datetime | None


class PrintJobDetail(PrintJobSchema):
    # pending / rendered / render_failed / printed -> count
    items: dict[str, int]


class PaperTemplateSummary(BaseModel):
    name: str
    label: str
    page_width: float
    page_height: float
    cell_width: float
    cell_height: float
    columns: int
    rows: int
    tickets_per_page: int
    has_stub: bool
    has_perforation: bool
    has_duplex: bool
