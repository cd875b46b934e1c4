"""ORM models package."""

from raffle_tickets.db.models.ticket import Ticket, TicketStatus
from raffle_tickets.db.models.print_job import (
    ItemStatus,
    JobStatus,
    PrintJob,
    PrintJobItem,
)
from raffle_tickets.db.models.ticket_scan import ScanType, TicketScan

__all__ = [
    "Ticket",
    "TicketStatus",
    "PrintJob",
    "PrintJobItem",
    "JobStatus",
    "ItemStatus",
    "TicketScan",
    "ScanType",
]
