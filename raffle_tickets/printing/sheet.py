"""Compose rendered code images onto print-ready PDF sheets."""

import io
from collections.abc import Mapping, Sequence
from pathlib import Path

from fpdf import FPDF
from loguru import logger

from raffle_tickets.config import settings
from raffle_tickets.exceptions import InvalidBackground
from raffle_tickets.printing.layout import (
    Face,
    GuideKind,
    PageLayoutEngine,
    Placement,
)
from raffle_tickets.printing.templates import PaperTemplate

FACE_TITLES = {
    Face.FRONT: "RAFFLE TICKET",
    Face.STUB: "SELLER STUB",
    Face.BACK: "VERIFY THIS TICKET",
}

GUIDE_GRAY = 153
TEXT_PADDING = 4.0
BACKGROUND_SUFFIXES = {".png", ".jpg", ".jpeg"}


def resolve_background(name: str, upload_dir: Path) -> Path:
    """Map an uploaded image name to its file inside ``upload_dir``.

    Only a bare file name is accepted. Directory parts, ``..`` and absolute
    paths are rejected, as is a name that resolves (through a symlink) to a
    file outside the upload directory.
    """
    if not name or name != Path(name).name or "\\" in name or name in {".", ".."}:
        raise InvalidBackground(f"Background image name {name!r} is not a plain file name")
    if Path(name).suffix.lower() not in BACKGROUND_SUFFIXES:
        raise InvalidBackground(f"Background image {name!r} must be PNG or JPEG")
    root = Path(upload_dir).resolve()
    path = (root / name).resolve()
    if path.parent != root:
        raise InvalidBackground(f"Background image {name!r} is outside the upload directory")
    if not path.is_file():
        raise InvalidBackground(f"Background image {name!r} not found")
    return path


class SheetWriter:
    """Writes one PDF per print job.

    ``images`` maps ``(ticket_index, face)`` to PNG bytes. Faces without an
    image (already printed, or failed to render) are left blank, but the
    page sequence is kept so every sheet stays aligned with its duplex back.

    ``backgrounds`` optionally maps FRONT and/or BACK to a custom design
    image that fills each such face underneath its text and code.
    """

    def __init__(
        self,
        output_dir: Path,
        engine: PageLayoutEngine | None = None,
        upload_dir: Path | None = None,
    ):
        self.output_dir = Path(output_dir)
        self.engine = engine or PageLayoutEngine()
        self.upload_dir = Path(upload_dir or settings.TEMPLATE_UPLOAD_DIR)

    def build(
        self,
        template: PaperTemplate,
        placements: Sequence[Placement],
        images: Mapping[tuple[int, Face], bytes],
        labels: Sequence[str],
        ticket_count: int,
        backgrounds: Mapping[Face, bytes] | None = None,
    ) -> bytes:
        backgrounds = backgrounds or {}
        pdf = FPDF(unit="pt", format=(template.page_width, template.page_height))
        pdf.set_auto_page_break(False)
        pdf.set_margins(0, 0, 0)

        drawn = [p for p in placements if (p.ticket_index, p.face) in images]
        by_page: dict[int, list[Placement]] = {}
        for placement in drawn:
            by_page.setdefault(placement.physical_page, []).append(placement)
        guides = self.engine.guides(drawn, template)

        for page in range(self.engine.physical_page_count(ticket_count, template)):
            pdf.add_page()
            for placement in by_page.get(page, []):
                self._draw_face(
                    pdf, placement,
                    images[(placement.ticket_index, placement.face)],
                    labels[placement.ticket_index],
                    backgrounds.get(placement.face),
                )
            for guide in guides:
                if guide.physical_page != page:
                    continue
                pdf.set_draw_color(GUIDE_GRAY)
                pdf.set_line_width(1)
                if guide.kind is GuideKind.PERFORATION:
                    pdf.set_dash_pattern(dash=5, gap=5)
                pdf.line(guide.x1, guide.y1, guide.x2, guide.y2)
                pdf.set_dash_pattern()

        return bytes(pdf.output())

    def _draw_face(
        self,
        pdf: FPDF,
        placement: Placement,
        image: bytes,
        label: str,
        background: bytes | None = None,
    ) -> None:
        box = self.engine.code_box(placement)
        small = placement.width < 200 or placement.height < 60

        if background is not None:
            pdf.image(
                io.BytesIO(background),
                x=placement.x, y=placement.y, w=placement.width, h=placement.height,
            )

        pdf.set_text_color(0)
        pdf.set_font("Helvetica", style="B", size=7 if small else 10)
        pdf.text(
            placement.x + TEXT_PADDING,
            placement.y + TEXT_PADDING + (7 if small else 10),
            FACE_TITLES[placement.face],
        )
        if placement.face is not Face.STUB or placement.height >= 30:
            pdf.set_font("Helvetica", size=7 if small else 9)
            pdf.text(
                placement.x + TEXT_PADDING,
                placement.y + TEXT_PADDING + (16 if small else 22),
                label,
            )

        pdf.image(io.BytesIO(image), x=box.x, y=box.y, w=box.width, h=box.height)

    def write(
        self,
        job_id: int,
        template: PaperTemplate,
        placements: Sequence[Placement],
        images: Mapping[tuple[int, Face], bytes],
        labels: Sequence[str],
        ticket_count: int,
        backgrounds: Mapping[Face, str] | None = None,
    ) -> Path:
        # Each design image is read once and reused on every page
        loaded = {
            face: resolve_background(name, self.upload_dir).read_bytes()
            for face, name in (backgrounds or {}).items()
        }
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"print_job_{job_id}.pdf"
        path.write_bytes(
            self.build(template, placements, images, labels, ticket_count, loaded)
        )
        logger.info("Wrote {} ({} faces)", path, len(images))
        return path
