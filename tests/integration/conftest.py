"""Repository fixtures: every backend runs the same contract tests."""

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from invoicing.infrastructure import InMemoryInvoiceRepository, SqlAlchemyInvoiceRepository
from invoicing.infrastructure.database import init_db


@pytest_asyncio.fixture(params=["memory", "sqlalchemy"])
async def repository(request, tmp_path):
    """An empty repository; the SQLAlchemy one runs on a SQLite file."""
    if request.param == "memory":
        yield InMemoryInvoiceRepository()
        return

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'invoices.db'}")
    await init_db(engine)
    yield SqlAlchemyInvoiceRepository(
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    )
    await engine.dispose()
