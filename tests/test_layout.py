"""Page layout: placements, duplex mirroring, code boxes and guides."""

import pytest
from hypothesis import given, settings, strategies as st

from raffle_tickets.printing.layout import Face, GuideKind, PageLayoutEngine, Symbology
from raffle_tickets.printing.templates import PaperTemplateCatalog


@pytest.fixture
def engine() -> PageLayoutEngine:
    return PageLayoutEngine()


def _tickets(n: int) -> list[str]:
    return [f"A-{i:06d}" for i in range(1, n + 1)]


class TestPageCount:

    def test_empty(self, engine, catalog):
        template = catalog.get("AVERY_16145")
        assert engine.page_count(0, template) == 0
        assert engine.layout([], template) == []

    def test_ceil_division(self, engine, catalog):
        template = catalog.get("AVERY_16145")
        assert engine.page_count(10, template) == 1
        assert engine.page_count(11, template) == 2
        assert engine.page_count(23, template) == 3

    def test_duplex_doubles_physical_pages(self, engine, catalog):
        template = catalog.get("LETTER_8_TICKETS")
        assert engine.physical_page_count(9, template) == 4


class TestLayout:

    def test_partial_last_page(self, engine, catalog):
        template = catalog.get("AVERY_16145")
        placements = engine.layout(_tickets(23), template)
        fronts = [p for p in placements if p.face is Face.FRONT]

        assert len(fronts) == 23
        assert [p.page_index for p in fronts].count(2) == 3
        # first ticket of the second sheet restarts the grid
        assert (fronts[10].page_index, fronts[10].row, fronts[10].col) == (1, 0, 0)
        assert (fronts[9].page_index, fronts[9].row, fronts[9].col) == (0, 4, 1)
        last = fronts[-1]
        assert (last.page_index, last.row, last.col) == (2, 1, 0)

    def test_every_ticket_gets_a_front(self, engine, catalog):
        for template in catalog:
            placements = engine.layout(_tickets(17), template)
            indexes = sorted(p.ticket_index for p in placements if p.face is Face.FRONT)
            assert indexes == list(range(17))

    def test_placements_stay_inside_page(self, engine, catalog):
        for template in catalog:
            for p in engine.layout(_tickets(20), template):
                assert 0 <= p.x and p.x + p.width <= template.page_width + 1e-6
                assert 0 <= p.y and p.y + p.height <= template.page_height + 1e-6

    def test_grid_positions(self, engine, catalog):
        template = catalog.get("AVERY_16145")
        fronts = [p for p in engine.layout(_tickets(3), template) if p.face is Face.FRONT]
        assert (fronts[0].x, fronts[0].y) == (13.5, 36.0)
        assert (fronts[1].x, fronts[1].y) == (13.5 + 292.5, 36.0)
        assert (fronts[2].x, fronts[2].y) == (13.5, 36.0 + 144.0)

    def test_stub_sits_below_main_section(self, engine, catalog):
        template = catalog.get("AVERY_16145")
        placements = engine.layout(_tickets(1), template)
        front, stub = placements
        assert front.face is Face.FRONT and stub.face is Face.STUB
        assert front.height == 108.0
        assert stub.y == front.y + 108.0
        assert stub.height == 36.0

    def test_duplex_backs_are_mirrored(self, engine, catalog):
        template = catalog.get("LETTER_8_TICKETS")
        placements = engine.layout(_tickets(2), template)
        fronts = {p.ticket_index: p for p in placements if p.face is Face.FRONT}
        backs = {p.ticket_index: p for p in placements if p.face is Face.BACK}

        assert fronts[0].physical_page == 0
        assert backs[0].physical_page == 1
        # Column 0 on the front is column 3 on the back
        assert backs[0].x == 612.0 - 0.0 - 153.0
        assert backs[1].x == 612.0 - 153.0 - 153.0
        assert backs[0].y == fronts[0].y

    def test_second_sheet_of_duplex_job(self, engine, catalog):
        template = catalog.get("PRINTWORKS")
        placements = engine.layout(_tickets(9), template)
        ninth = [p for p in placements if p.ticket_index == 8]
        assert {p.physical_page for p in ninth} == {2, 3}

    def test_sheets_group_by_physical_page(self, engine, catalog):
        template = catalog.get("PRINTWORKS")
        sheets = engine.sheets(engine.layout(_tickets(9), template))
        assert [s.physical_page for s in sheets] == [0, 1, 2, 3]
        assert [s.is_back for s in sheets] == [False, True, False, True]

    def test_negative_index(self, engine, catalog):
        with pytest.raises(ValueError):
            engine.cell_position(-1, catalog.get("AVERY_16145"))


class TestCodeBox:

    def test_front_gets_barcode_inside_face(self, engine, catalog):
        front = engine.layout(_tickets(1), catalog.get("AVERY_16145"))[0]
        box = engine.code_box(front)
        assert box.symbology is Symbology.EAN13
        assert front.x <= box.x and box.x + box.width <= front.x + front.width
        assert front.y <= box.y and box.y + box.height <= front.y + front.height

    def test_stub_gets_qr_square(self, engine, catalog):
        stub = engine.layout(_tickets(1), catalog.get("AVERY_16145"))[1]
        box = engine.code_box(stub)
        assert box.symbology is Symbology.QRCODE
        assert box.width == box.height


class TestGuides:

    def test_perforated_stub_gets_one_line_per_ticket(self, engine, catalog):
        template = catalog.get("AVERY_16145")
        guides = engine.guides(engine.layout(_tickets(3), template), template)
        assert len(guides) == 3
        assert all(g.kind is GuideKind.PERFORATION for g in guides)
        assert all(g.y1 == g.y2 for g in guides)

    def test_cut_outline_with_stub_split(self, engine, catalog):
        template = catalog.get("PRINTWORKS")
        guides = engine.guides(engine.layout(_tickets(1), template), template)
        assert len(guides) == 5
        assert {g.kind for g in guides} == {GuideKind.CUT}
        assert all(g.physical_page == 0 for g in guides)


# =============================================================================
# PROPERTIES
# =============================================================================

CATALOG = PaperTemplateCatalog.load()
TEMPLATE_NAMES = [template.name for template in CATALOG]


class TestLayoutProperties:

    @given(count=st.integers(min_value=0, max_value=60), name=st.sampled_from(TEMPLATE_NAMES))
    @settings(max_examples=100)
    def test_layout_is_deterministic(self, count, name):
        template = CATALOG.get(name)
        first = PageLayoutEngine().layout(_tickets(count), template)
        second = PageLayoutEngine().layout(_tickets(count), template)
        assert first == second

    @given(count=st.integers(min_value=1, max_value=60), name=st.sampled_from(TEMPLATE_NAMES))
    @settings(max_examples=100)
    def test_fronts_fill_pages_row_by_row(self, count, name):
        template = CATALOG.get(name)
        fronts = [
            p for p in PageLayoutEngine().layout(_tickets(count), template)
            if p.face is Face.FRONT
        ]
        for index, placement in enumerate(fronts):
            position = index % template.tickets_per_page
            assert placement.ticket_index == index
            assert placement.page_index == index // template.tickets_per_page
            assert placement.row == position // template.columns
            assert placement.col == position % template.columns
