"""Paper template API endpoints."""

from fastapi import APIRouter, HTTPException

from raffle_tickets.exceptions import UnknownTemplate
from raffle_tickets.printing.templates import PaperTemplate, get_catalog
from raffle_tickets.schemas.print_job import PaperTemplateSummary

router = APIRouter()


SUMMARY_FIELDS = set(PaperTemplateSummary.model_fields) - {"tickets_per_page", "has_stub"}


def _summary(template: PaperTemplate) -> PaperTemplateSummary:
    return PaperTemplateSummary(
        **template.model_dump(include=SUMMARY_FIELDS),
        tickets_per_page=template.tickets_per_page,
        has_stub=template.has_stub,
    )


@router.get("", response_model=list[PaperTemplateSummary])
async def list_templates():
    """All paper templates in the catalog."""
    return [_summary(t) for t in get_catalog()]


@router.get("/{name}", response_model=PaperTemplate)
async def get_template(name: str):
    try:
        return get_catalog().get(name)
    except UnknownTemplate as e:
        raise HTTPException(status_code=404, detail=str(e))
