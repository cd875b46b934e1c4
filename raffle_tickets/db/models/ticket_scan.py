"""Audit log of point-of-sale barcode scans."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from raffle_tickets.db.base import Base


class ScanType(str, Enum):
    VALIDATE = "validate"
    SALE = "sale"


class TicketScan(Base):
    """One sale check, accepted or not. Append-only."""

    __tablename__ = "ticket_scans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Unset when the scan matched no ticket (bad format or unknown identifier)
    ticket_id: Mapped[int | None] = mapped_column(
        ForeignKey("tickets.id"), nullable=True, index=True
    )
    barcode: Mapped[str] = mapped_column(String(64), nullable=False)
    scan_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scan_method: Mapped[str] = mapped_column(String(20), nullable=False, default="barcode")
    accepted: Mapped[bool] = mapped_column(Boolean, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    scanned_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    scanned_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    def __repr__(self) -> str:
        return (
            f"<TicketScan {self.scan_type} ticket={self.ticket_id} "
            f"accepted={self.accepted} reason={self.reason}>"
        )
