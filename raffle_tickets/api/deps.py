"""Dependency injection for FastAPI."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from raffle_tickets.config import settings
from raffle_tickets.db.engine import async_session_factory
from raffle_tickets.printing.renderer import HttpImageRenderer
from raffle_tickets.printing.sheet import SheetWriter
from raffle_tickets.services.print_service import PrintJobOrchestrator

_renderer: HttpImageRenderer | None = None
_orchestrator: PrintJobOrchestrator | None = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for request scope."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_orchestrator() -> PrintJobOrchestrator:
    """Process-wide orchestrator sharing one renderer client."""
    global _renderer, _orchestrator
    if _orchestrator is None:
        _renderer = HttpImageRenderer()
        _orchestrator = PrintJobOrchestrator(
            async_session_factory,
            _renderer,
            sheet_writer=SheetWriter(
                settings.PRINT_OUTPUT_DIR, upload_dir=settings.TEMPLATE_UPLOAD_DIR
            ),
        )
    return _orchestrator


async def close_orchestrator() -> None:
    global _renderer, _orchestrator
    if _renderer is not None:
        await _renderer.close()
    _renderer = None
    _orchestrator = None
