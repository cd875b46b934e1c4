"""Shared fixtures: throwaway SQLite database, fake renderer, sample PNG."""

import io
import os

os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./raffle_test.db")

import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import raffle_tickets.db.models  # noqa: F401
from raffle_tickets.barcode.codec import IdentifierCodec
from raffle_tickets.db.base import Base
from raffle_tickets.exceptions import RenderingFailure
from raffle_tickets.printing.templates import PaperTemplateCatalog


def _png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (20, 10), "white").save(buf, format="PNG")
    return buf.getvalue()


PNG = _png()


class FakeRenderer:
    """Records calls; fails for payloads listed in ``fail``."""

    def __init__(self, fail=(), on_call=None):
        self.fail = set(fail)
        self.on_call = on_call
        self.calls: list[tuple[str, str]] = []

    async def render(self, payload, symbology, width, height):
        self.calls.append((payload, symbology.value))
        if self.on_call is not None:
            await self.on_call(payload)
        if payload in self.fail:
            raise RenderingFailure(f"cannot render {payload}")
        return PNG


@pytest.fixture
def png() -> bytes:
    return PNG


@pytest.fixture
def codec() -> IdentifierCodec:
    return IdentifierCodec(prefix="978", capacities={"A": 375000, "B": 375000, "C": 375000, "D": 375000})


@pytest.fixture
def catalog() -> PaperTemplateCatalog:
    return PaperTemplateCatalog.load()


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'raffle.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def make_pool(session, codec):
    """Create and commit AVAILABLE tickets for a range."""
    from raffle_tickets.services.ticket_service import create_ticket_pool

    async def _make(category: str = "A", start: int = 1, end: int = 10):
        result = await create_ticket_pool(session, category, start, end, codec)
        await session.commit()
        return result

    return _make


@pytest.fixture
def set_ticket(session):
    """Overwrite stored columns of one ticket, e.g. to plant a legacy barcode."""
    from sqlalchemy import update

    from raffle_tickets.db.models.ticket import Ticket

    async def _set(category: str, sequence: int, **values):
        await session.execute(
            update(Ticket)
            .where(Ticket.category == category, Ticket.sequence == sequence)
            .values(**values)
        )
        await session.commit()

    return _set


@pytest.fixture
def make_renderer():
    return FakeRenderer
