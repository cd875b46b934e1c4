"""Print job and per-ticket job item ORM models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from raffle_tickets.db.base import Base


class JobStatus(str, Enum):
    SCHEDULED = "scheduled"
    GENERATING = "generating"
    PRINTING = "printing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {JobStatus.COMPLETED.value, JobStatus.FAILED.value}


class ItemStatus(str, Enum):
    PENDING = "pending"
    RENDERED = "rendered"
    RENDER_FAILED = "render_failed"
    FAILED = "failed"          # codes could not be assigned
    PRINTED = "printed"


class PrintJob(Base):
    """One request to print a ticket range on one template."""

    __tablename__ = "print_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(String(1), nullable=False, index=True)
    range_start: Mapped[int] = mapped_column(Integer, nullable=False)
    range_end: Mapped[int] = mapped_column(Integer, nullable=False)
    template_name: Mapped[str] = mapped_column(String(50), nullable=False)
    total_tickets: Mapped[int] = mapped_column(Integer, nullable=False)
    total_pages: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.SCHEDULED.value, index=True
    )
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    errors: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    output_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Uploaded background images (file names in TEMPLATE_UPLOAD_DIR)
    front_background: Mapped[str | None] = mapped_column(String(255), nullable=True)
    back_background: Mapped[str | None] = mapped_column(String(255), nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PrintJob id={self.id} {self.category} {self.range_start}-{self.range_end} "
            f"status={self.status} {self.progress_percent}%>"
        )


class PrintJobItem(Base):
    """Outcome of one ticket within one job."""

    __tablename__ = "print_job_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        ForeignKey("print_jobs.id"), nullable=False, index=True
    )
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id"), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ItemStatus.PENDING.value
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("job_id", "ticket_id", name="uq_job_ticket"),
    )

    def __repr__(self) -> str:
        return f"<PrintJobItem job={self.job_id} ticket={self.ticket_id} status={self.status}>"
