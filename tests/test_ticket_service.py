"""Ticket pool creation, lookups and lazy code assignment."""

import pytest

from raffle_tickets.db.crud import ticket as crud
from raffle_tickets.db.models.ticket import TicketStatus
from raffle_tickets.exceptions import InvalidCategory, PersistenceConflict, SequenceOutOfRange
from raffle_tickets.services import ticket_service


class TestTicketPool:

    async def test_creates_available_tickets(self, session, make_pool):
        result = await make_pool("B", 1, 5)
        assert (result.created, result.skipped) == (5, 0)

        tickets = await ticket_service.get_tickets_in_range(session, "B", 1, 5)
        assert [t.ticket_number for t in tickets] == [f"B-00000{i}" for i in range(1, 6)]
        assert all(t.status == TicketStatus.AVAILABLE.value for t in tickets)
        assert all(t.barcode is None and not t.printed for t in tickets)

    async def test_existing_tickets_are_skipped(self, make_pool):
        await make_pool("A", 1, 5)
        result = await make_pool("A", 3, 8)
        assert (result.created, result.skipped) == (3, 3)

    async def test_range_beyond_capacity(self, session, codec):
        with pytest.raises(SequenceOutOfRange):
            await ticket_service.create_ticket_pool(session, "A", 374999, 375001, codec)

    async def test_invalid_category(self, session, codec):
        with pytest.raises(InvalidCategory):
            await ticket_service.create_ticket_pool(session, "Z", 1, 2, codec)

    async def test_lookup_by_number(self, session, make_pool):
        await make_pool("C", 40, 42)
        ticket = await ticket_service.get_ticket_by_number(session, "c-41")
        assert ticket.ticket_number == "C-000041"
        assert await ticket_service.get_ticket_by_number(session, "C-999") is None
        assert await ticket_service.get_ticket_by_number(session, "nope") is None


class TestEnsureCodes:

    async def test_assigns_barcode_and_verification_ref(self, session, make_pool, codec):
        await make_pool("A", 1, 1)
        ticket = await crud.get_by_identifier(session, "A", 1)

        ticket = await ticket_service.ensure_codes(session, ticket, codec)
        assert ticket.barcode == codec.encode("A", 1)
        assert ticket.verification_ref.endswith("/A-000001")

    async def test_idempotent(self, session, make_pool, codec):
        await make_pool("A", 1, 1)
        ticket = await crud.get_by_identifier(session, "A", 1)
        first = await ticket_service.ensure_codes(session, ticket, codec)
        second = await ticket_service.ensure_codes(session, first, codec)
        assert (second.barcode, second.verification_ref) == (first.barcode, first.verification_ref)

    async def test_legacy_barcode_is_migrated(self, session, make_pool, set_ticket, codec):
        await make_pool("A", 7, 7)
        await set_ticket("A", 7, barcode="10000007")
        ticket = await crud.get_by_identifier(session, "A", 7)

        ticket = await ticket_service.ensure_codes(session, ticket, codec)
        assert ticket.barcode == codec.encode("A", 7)
        assert ticket.legacy_barcode == "10000007"
        assert ticket.status == TicketStatus.INVALID.value

    async def test_barcode_held_by_another_ticket(self, session, make_pool, set_ticket, codec):
        await make_pool("A", 1, 2)
        await set_ticket("A", 1, barcode=codec.encode("A", 2))
        await make_pool("B", 1, 1)
        await set_ticket("B", 1, barcode=codec.encode("A", 1))
        ticket = await crud.get_by_identifier(session, "A", 1)

        with pytest.raises(PersistenceConflict):
            await ticket_service.ensure_codes(session, ticket, codec)
