"""Page layout engine: where every ticket face lands on paper.

Tickets fill each page row-major (column varies fastest) from the template's
top-left origin. Stub templates split every cell at the perforation into a
front (buyer) face and a stub (seller) face on the same page. Duplex
templates additionally get a back face on the following physical page,
mirrored across the flip edge so it prints directly behind its front.

The engine is pure: identical inputs always give identical placements, which
is what lets a failed job be reprinted onto the same positions.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from raffle_tickets.printing.templates import DuplexFlip, PaperTemplate


class Face(str, Enum):
    FRONT = "front"
    STUB = "stub"
    BACK = "back"


class Symbology(str, Enum):
    EAN13 = "ean13"      # linear barcode
    QRCODE = "qrcode"    # 2-D matrix code


class GuideKind(str, Enum):
    PERFORATION = "perforation"   # dashed, tear-off
    CUT = "cut"                   # solid, trim with a cutter


@dataclass(frozen=True)
class Placement:
    ticket_index: int
    page_index: int        # sheet of paper
    physical_page: int     # page in the output document
    face: Face
    row: int
    col: int
    x: float
    y: float
    width: float
    height: float

    @property
    def is_stub(self) -> bool:
        return self.face is Face.STUB

    @property
    def rect(self) -> tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class CodeBox:
    x: float
    y: float
    width: float
    height: float
    symbology: Symbology


@dataclass(frozen=True)
class GuideLine:
    physical_page: int
    x1: float
    y1: float
    x2: float
    y2: float
    kind: GuideKind


@dataclass(frozen=True)
class Sheet:
    """All placements that share one physical page."""

    physical_page: int
    page_index: int
    is_back: bool
    placements: tuple[Placement, ...]


class PageLayoutEngine:
    # Code image proportions relative to the face they sit on
    BARCODE_WIDTH_RATIO = 0.5
    BARCODE_HEIGHT_RATIO = 0.3
    BARCODE_MAX_WIDTH = 170.0
    BARCODE_MAX_HEIGHT = 45.0
    QR_RATIO = 0.6
    QR_MAX_SIZE = 96.0
    CODE_PADDING = 6.0

    def page_count(self, ticket_count: int, template: PaperTemplate) -> int:
        """Sheets of paper needed (ceil division)."""
        if ticket_count <= 0:
            return 0
        return -(-ticket_count // template.tickets_per_page)

    def physical_page_count(self, ticket_count: int, template: PaperTemplate) -> int:
        sheets = self.page_count(ticket_count, template)
        return sheets * 2 if template.has_duplex else sheets

    def cell_position(
        self, index: int, template: PaperTemplate
    ) -> tuple[int, int, int, float, float]:
        """(page, row, col, x, y) of the top-left corner of ticket ``index``."""
        if index < 0:
            raise ValueError(f"Ticket index must be >= 0, got {index}")
        page, pos = divmod(index, template.tickets_per_page)
        row, col = divmod(pos, template.columns)
        x = template.left_margin + col * (template.cell_width + template.spacing)
        y = template.top_margin + row * (template.cell_height + template.spacing)
        return page, row, col, x, y

    def layout(
        self, tickets: Sequence[Any], template: PaperTemplate
    ) -> list[Placement]:
        """Placements for every face of every ticket, page by page."""
        placements: list[Placement] = []
        total = len(tickets)
        per_page = template.tickets_per_page

        for page_start in range(0, total, per_page):
            page_end = min(page_start + per_page, total)
            fronts: list[Placement] = []
            backs: list[Placement] = []

            for index in range(page_start, page_end):
                page, row, col, x, y = self.cell_position(index, template)
                front_page = page * 2 if template.has_duplex else page

                if template.has_stub:
                    fronts.append(Placement(
                        index, page, front_page, Face.FRONT, row, col,
                        x, y, template.cell_width, template.main_section_height,
                    ))
                    fronts.append(Placement(
                        index, page, front_page, Face.STUB, row, col,
                        x, y + template.perforation_offset,
                        template.cell_width, template.stub_section_height,
                    ))
                else:
                    fronts.append(Placement(
                        index, page, front_page, Face.FRONT, row, col,
                        x, y, template.cell_width, template.cell_height,
                    ))

                if template.has_duplex:
                    back_x, back_y = self._mirror(x, y, template)
                    backs.append(Placement(
                        index, page, front_page + 1, Face.BACK, row, col,
                        back_x, back_y, template.cell_width, template.cell_height,
                    ))

            placements.extend(fronts)
            placements.extend(backs)

        return placements

    def _mirror(self, x: float, y: float, template: PaperTemplate) -> tuple[float, float]:
        # Paper turns over the flip edge, so the back lands mirrored on that axis
        if template.duplex_flip is DuplexFlip.SHORT_EDGE:
            return x, template.page_height - y - template.cell_height
        return template.page_width - x - template.cell_width, y

    def sheets(self, placements: Sequence[Placement]) -> list[Sheet]:
        """Group placements by physical page, in page order."""
        grouped: dict[int, list[Placement]] = {}
        for placement in placements:
            grouped.setdefault(placement.physical_page, []).append(placement)

        return [
            Sheet(
                physical_page=page,
                page_index=items[0].page_index,
                is_back=items[0].face is Face.BACK,
                placements=tuple(items),
            )
            for page, items in sorted(grouped.items())
        ]

    def code_box(self, placement: Placement) -> CodeBox:
        """Where the scannable code sits inside a face.

        Fronts carry the linear barcode centred near the bottom edge; stubs
        and backs carry the verification QR code at the right edge.
        """
        pad = min(self.CODE_PADDING, placement.height * 0.05)

        if placement.face is Face.FRONT:
            width = min(placement.width * self.BARCODE_WIDTH_RATIO, self.BARCODE_MAX_WIDTH)
            height = min(placement.height * self.BARCODE_HEIGHT_RATIO, self.BARCODE_MAX_HEIGHT)
            return CodeBox(
                x=placement.x + (placement.width - width) / 2,
                y=placement.y + placement.height - height - pad,
                width=width,
                height=height,
                symbology=Symbology.EAN13,
            )

        side = min(
            min(placement.width, placement.height) * self.QR_RATIO, self.QR_MAX_SIZE
        )
        return CodeBox(
            x=placement.x + placement.width - side - pad,
            y=placement.y + (placement.height - side) / 2,
            width=side,
            height=side,
            symbology=Symbology.QRCODE,
        )

    def guides(
        self, placements: Sequence[Placement], template: PaperTemplate
    ) -> list[GuideLine]:
        """Perforation / cut guides for occupied cells only."""
        lines: dict[GuideLine, None] = {}

        for placement in placements:
            if placement.face is not Face.FRONT:
                continue
            page = placement.physical_page
            x, y = placement.x, placement.y
            w, h = template.cell_width, template.cell_height

            if template.has_perforation and template.has_stub:
                split = y + template.perforation_offset
                lines[GuideLine(page, x, split, x + w, split, GuideKind.PERFORATION)] = None
                continue

            kind = GuideKind.PERFORATION if template.has_perforation else GuideKind.CUT
            for segment in _outline(x, y, w, h):
                lines[GuideLine(page, *segment, kind)] = None
            if template.has_stub:
                split = y + template.perforation_offset
                lines[GuideLine(page, x, split, x + w, split, GuideKind.CUT)] = None

        return list(lines)


def _outline(
    x: float, y: float, w: float, h: float
) -> list[tuple[float, float, float, float]]:
    return [
        (x, y, x + w, y),
        (x + w, y, x + w, y + h),
        (x, y + h, x + w, y + h),
        (x, y, x, y + h),
    ]
