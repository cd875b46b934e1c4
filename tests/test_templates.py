"""Paper template catalog and geometry checks."""

import json

import pytest

from raffle_tickets.exceptions import TemplateGeometryError, UnknownTemplate
from raffle_tickets.printing.templates import PaperTemplate, PaperTemplateCatalog


def _template(**overrides) -> PaperTemplate:
    fields = dict(
        name="TEST",
        page_width=612.0,
        page_height=792.0,
        cell_width=300.0,
        cell_height=150.0,
        columns=2,
        rows=5,
        left_margin=6.0,
        right_margin=6.0,
        top_margin=21.0,
        bottom_margin=21.0,
    )
    fields.update(overrides)
    return PaperTemplate(**fields)


class TestBundledCatalog:

    def test_loads_all_templates(self, catalog):
        assert set(catalog.names()) == {"AVERY_16145", "PRINTWORKS", "LETTER_8_TICKETS"}
        assert len(catalog) == 3

    def test_avery_has_ten_tickets_with_stubs(self, catalog):
        avery = catalog.get("AVERY_16145")
        assert avery.tickets_per_page == 10
        assert avery.has_stub
        assert avery.has_perforation
        assert not avery.has_duplex

    def test_unknown_template(self, catalog):
        with pytest.raises(UnknownTemplate):
            catalog.get("A4_MISSING")
        assert "A4_MISSING" not in catalog


class TestGeometry:

    def test_valid_grid(self):
        _template().check_geometry()

    def test_too_many_columns(self):
        with pytest.raises(TemplateGeometryError):
            _template(columns=3).check_geometry()

    def test_spacing_pushes_grid_off_page(self):
        with pytest.raises(TemplateGeometryError):
            _template(spacing=10.0).check_geometry()

    def test_stub_sections_must_add_up(self):
        with pytest.raises(TemplateGeometryError):
            _template(
                main_section_height=100.0,
                stub_section_height=40.0,
                perforation_offset=100.0,
            ).check_geometry()

    def test_catalog_rejects_bad_template(self):
        with pytest.raises(TemplateGeometryError):
            PaperTemplateCatalog([_template(rows=6)])

    def test_catalog_rejects_duplicate_names(self):
        with pytest.raises(TemplateGeometryError):
            PaperTemplateCatalog([_template(), _template()])

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "templates.json"
        path.write_text(json.dumps({"templates": [{"name": "X", "page_width": -1}]}))
        with pytest.raises(TemplateGeometryError):
            PaperTemplateCatalog.load(path)
