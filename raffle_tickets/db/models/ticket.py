"""Raffle ticket ORM model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from raffle_tickets.barcode.categories import format_ticket_number
from raffle_tickets.db.base import Base


class TicketStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    SOLD = "SOLD"
    WON = "WON"
    INVALID = "INVALID"   # superseded by a barcode-scheme migration


class Ticket(Base):
    """One numbered raffle ticket. Never deleted, only status-transitioned."""

    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(String(1), nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # Canonical 13-digit barcode, assigned lazily on first print or sale
    barcode: Mapped[str | None] = mapped_column(String(13), unique=True, nullable=True)
    # Retired 8-digit (or unrecognised) barcode kept for audit after migration
    legacy_barcode: Mapped[str | None] = mapped_column(String(32), nullable=True)
    verification_ref: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TicketStatus.AVAILABLE.value, index=True
    )
    printed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    print_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    printed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    sold_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("category", "sequence", name="uq_ticket_identifier"),
    )

    @property
    def ticket_number(self) -> str:
        return format_ticket_number(self.category, self.sequence)

    def __repr__(self) -> str:
        return f"<Ticket {self.ticket_number} status={self.status} barcode={self.barcode}>"
