"""Paper template catalog.

Templates are plain configuration (``paper_templates.json``) loaded once at
startup. All dimensions are PDF points (72 per inch). Every entry is checked
when the catalog loads; a template that does not fit its page never reaches
the layout engine.
"""

import math
from collections.abc import Iterable, Iterator
from enum import Enum
from pathlib import Path
from types import MappingProxyType

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from raffle_tickets.config import settings
from raffle_tickets.exceptions import TemplateGeometryError, UnknownTemplate

BUNDLED_TEMPLATES_FILE = Path(__file__).with_name("paper_templates.json")

_TOLERANCE = 1e-6


class DuplexFlip(str, Enum):
    LONG_EDGE = "long_edge"
    SHORT_EDGE = "short_edge"


class PaperTemplate(BaseModel):
    model_config = {"frozen": True}

    name: str
    label: str = ""

    page_width: float = Field(gt=0)
    page_height: float = Field(gt=0)
    cell_width: float = Field(gt=0)
    cell_height: float = Field(gt=0)
    columns: int = Field(ge=1)
    rows: int = Field(ge=1)

    left_margin: float = Field(default=0.0, ge=0)
    right_margin: float = Field(default=0.0, ge=0)
    top_margin: float = Field(default=0.0, ge=0)
    bottom_margin: float = Field(default=0.0, ge=0)
    spacing: float = Field(default=0.0, ge=0)

    # Main (buyer) + stub (seller) split; zero stub = single front design
    main_section_height: float = Field(default=0.0, ge=0)
    stub_section_height: float = Field(default=0.0, ge=0)
    perforation_offset: float = Field(default=0.0, ge=0)

    has_perforation: bool = False
    has_duplex: bool = False
    duplex_flip: DuplexFlip = DuplexFlip.LONG_EDGE

    @property
    def tickets_per_page(self) -> int:
        return self.columns * self.rows

    @property
    def has_stub(self) -> bool:
        return self.stub_section_height > 0

    def check_geometry(self) -> None:
        """Raise TemplateGeometryError unless the grid tiles the page."""
        if self.has_stub:
            if self.main_section_height <= 0:
                raise TemplateGeometryError(
                    f"{self.name}: stub templates need a main section"
                )
            if not math.isclose(
                self.main_section_height + self.stub_section_height,
                self.cell_height,
                abs_tol=_TOLERANCE,
            ):
                raise TemplateGeometryError(
                    f"{self.name}: main ({self.main_section_height}) + stub "
                    f"({self.stub_section_height}) must equal cell height ({self.cell_height})"
                )
            if not math.isclose(
                self.perforation_offset, self.main_section_height, abs_tol=_TOLERANCE
            ):
                raise TemplateGeometryError(
                    f"{self.name}: perforation offset must sit at the end of the main section"
                )
        elif self.perforation_offset:
            raise TemplateGeometryError(
                f"{self.name}: perforation offset set without a stub section"
            )

        grid_width = self.columns * self.cell_width + (self.columns - 1) * self.spacing
        grid_height = self.rows * self.cell_height + (self.rows - 1) * self.spacing
        usable_width = self.page_width - self.left_margin - self.right_margin
        usable_height = self.page_height - self.top_margin - self.bottom_margin

        if grid_width > usable_width + _TOLERANCE:
            raise TemplateGeometryError(
                f"{self.name}: {self.columns} columns need {grid_width:.2f}pt, "
                f"only {usable_width:.2f}pt between margins"
            )
        if grid_height > usable_height + _TOLERANCE:
            raise TemplateGeometryError(
                f"{self.name}: {self.rows} rows need {grid_height:.2f}pt, "
                f"only {usable_height:.2f}pt between margins"
            )


class _TemplateFile(BaseModel):
    templates: list[PaperTemplate]


class PaperTemplateCatalog:
    """Read-only name -> PaperTemplate registry."""

    def __init__(self, templates: Iterable[PaperTemplate]):
        entries: dict[str, PaperTemplate] = {}
        for template in templates:
            if template.name in entries:
                raise TemplateGeometryError(f"Duplicate template name: {template.name}")
            template.check_geometry()
            entries[template.name] = template
        self._templates = MappingProxyType(entries)

    @classmethod
    def load(cls, path: Path | None = None) -> "PaperTemplateCatalog":
        path = Path(path) if path is not None else BUNDLED_TEMPLATES_FILE
        try:
            parsed = _TemplateFile.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise TemplateGeometryError(f"Invalid template file {path}: {e}") from e

        catalog = cls(parsed.templates)
        logger.info("Loaded {} paper templates from {}", len(catalog), path)
        return catalog

    def get(self, name: str) -> PaperTemplate:
        template = self._templates.get(name)
        if template is None:
            raise UnknownTemplate(
                f"Unknown paper template: {name}. Valid: {sorted(self._templates)}"
            )
        return template

    def names(self) -> list[str]:
        return list(self._templates)

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def __iter__(self) -> Iterator[PaperTemplate]:
        return iter(self._templates.values())

    def __len__(self) -> int:
        return len(self._templates)


_catalog: PaperTemplateCatalog | None = None


def get_catalog() -> PaperTemplateCatalog:
    """Process-wide catalog, loaded on first use."""
    global _catalog
    if _catalog is None:
        _catalog = PaperTemplateCatalog.load(settings.PAPER_TEMPLATES_FILE)
    return _catalog
