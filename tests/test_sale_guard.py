"""Point-of-sale checks: format, existence, supersession, double sale."""

import pytest
from sqlalchemy import select

from raffle_tickets.db.crud import ticket as crud
from raffle_tickets.db.crud import ticket_scan as scan_crud
from raffle_tickets.db.models.ticket import TicketStatus
from raffle_tickets.db.models.ticket_scan import ScanType, TicketScan
from raffle_tickets.exceptions import PersistenceConflict
from raffle_tickets.schemas.sale import SaleRejection
from raffle_tickets.services import migration_service
from raffle_tickets.services.sale_service import sell_ticket, validate_for_sale


class TestValidateForSale:

    async def test_available_ticket_is_accepted(self, session, make_pool, codec):
        await make_pool("A", 123456, 123456)
        decision = await validate_for_sale(session, "9780011234564", codec)
        assert decision.accepted
        assert decision.reason is None
        assert decision.ticket.ticket_number == "A-123456"

    async def test_surrounding_whitespace_is_ignored(self, session, make_pool, codec):
        await make_pool("A", 123456, 123456)
        decision = await validate_for_sale(session, " 9780011234564\n", codec)
        assert decision.accepted

    async def test_bad_check_digit(self, session, make_pool, codec):
        await make_pool("A", 123456, 123456)
        decision = await validate_for_sale(session, "9780011234567", codec)
        assert not decision.accepted
        assert decision.reason is SaleRejection.INVALID_FORMAT
        assert decision.ticket is None

    async def test_legacy_scan_is_rejected_as_format(self, session, make_pool, codec):
        await make_pool("A", 1, 1)
        decision = await validate_for_sale(session, "10000001", codec)
        assert decision.reason is SaleRejection.INVALID_FORMAT

    async def test_unknown_ticket(self, session, codec):
        decision = await validate_for_sale(session, codec.encode("D", 99), codec)
        assert decision.reason is SaleRejection.NOT_FOUND

    async def test_superseded_ticket(self, session, make_pool, set_ticket, codec):
        await make_pool("A", 1, 1)
        await set_ticket("A", 1, barcode="10000001")
        await migration_service.migrate_legacy_barcodes(session, codec=codec)
        await session.commit()

        decision = await validate_for_sale(session, codec.encode("A", 1), codec)
        assert not decision.accepted
        assert decision.reason is SaleRejection.SUPERSEDED_TICKET
        assert "replaced" in decision.message

    async def test_sold_and_won_tickets(self, session, make_pool, set_ticket, codec):
        await make_pool("A", 1, 2)
        await set_ticket("A", 1, status=TicketStatus.SOLD.value)
        await set_ticket("A", 2, status=TicketStatus.WON.value)

        for sequence in (1, 2):
            decision = await validate_for_sale(session, codec.encode("A", sequence), codec)
            assert decision.reason is SaleRejection.ALREADY_SOLD


class TestSellTicket:

    async def test_sell_once(self, session, make_pool, codec):
        await make_pool("B", 5, 5)
        barcode = codec.encode("B", 5)

        decision = await sell_ticket(session, barcode, codec)
        await session.commit()
        assert decision.accepted
        assert decision.ticket.status == TicketStatus.SOLD.value
        assert decision.ticket.barcode == barcode
        assert decision.ticket.sold_at is not None

        again = await sell_ticket(session, barcode, codec)
        assert again.reason is SaleRejection.ALREADY_SOLD

    async def test_ticket_with_legacy_barcode_is_superseded_on_sale(
        self, session, make_pool, set_ticket, codec
    ):
        await make_pool("C", 3, 3)
        await set_ticket("C", 3, barcode="30000003")

        decision = await sell_ticket(session, codec.encode("C", 3), codec)
        assert decision.reason is SaleRejection.SUPERSEDED_TICKET

        ticket = await crud.get_by_identifier(session, "C", 3)
        assert ticket.status == TicketStatus.INVALID.value
        assert ticket.legacy_barcode == "30000003"


class TestScanLog:

    async def test_every_check_is_logged(self, session, make_pool, codec):
        await make_pool("A", 7, 7)
        barcode = codec.encode("A", 7)

        await validate_for_sale(session, barcode, codec, scanned_by="till-2")
        await validate_for_sale(session, "12345", codec)
        await sell_ticket(session, barcode, codec, scanned_by="till-2", scan_method="manual")
        await sell_ticket(session, barcode, codec, notes="second attempt")
        await session.commit()

        result = await session.execute(select(TicketScan).order_by(TicketScan.id))
        scans = result.scalars().all()
        assert [(s.scan_type, s.accepted, s.reason) for s in scans] == [
            (ScanType.VALIDATE.value, True, None),
            (ScanType.VALIDATE.value, False, SaleRejection.INVALID_FORMAT.value),
            (ScanType.SALE.value, True, None),
            (ScanType.SALE.value, False, SaleRejection.ALREADY_SOLD.value),
        ]
        ticket = await crud.get_by_identifier(session, "A", 7)
        assert [s.ticket_id for s in scans] == [ticket.id, None, ticket.id, ticket.id]
        assert scans[0].scanned_by == "till-2"
        assert scans[2].scan_method == "manual"
        assert scans[3].notes == "second attempt"
        assert scans[1].barcode == "12345"

    async def test_scans_listed_per_ticket_newest_first(self, session, make_pool, codec):
        await make_pool("B", 1, 2)
        for sequence in (1, 2, 1):
            await validate_for_sale(session, codec.encode("B", sequence), codec)
        await session.commit()

        ticket = await crud.get_by_identifier(session, "B", 1)
        scans = await scan_crud.get_scans_for_ticket(session, ticket.id)
        assert len(scans) == 2
        assert scans[0].id > scans[1].id

    async def test_conflicting_barcode_blocks_the_sale(
        self, session, make_pool, set_ticket, codec
    ):
        await make_pool("A", 1, 1)
        await make_pool("B", 1, 1)
        await set_ticket("B", 1, barcode=codec.encode("A", 1))

        with pytest.raises(PersistenceConflict):
            await sell_ticket(session, codec.encode("A", 1), codec)
