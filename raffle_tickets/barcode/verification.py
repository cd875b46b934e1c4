"""Verification references encoded into the 2-D code on each ticket."""

from raffle_tickets.barcode.categories import TicketIdentifier, parse_ticket_number
from raffle_tickets.config import settings


def build_verification_ref(ticket_number: str, base_url: str | None = None) -> str:
    if not ticket_number:
        raise ValueError("Invalid ticket number")
    base = (base_url or settings.VERIFICATION_BASE_URL).rstrip("/")
    return f"{base}/{ticket_number}"


def parse_verification_ref(url: str, base_url: str | None = None) -> TicketIdentifier | None:
    """Extract the ticket identifier from a verification URL."""
    base = (base_url or settings.VERIFICATION_BASE_URL).rstrip("/")
    if not url or not url.startswith(base + "/"):
        return None
    return parse_ticket_number(url[len(base) + 1:])
