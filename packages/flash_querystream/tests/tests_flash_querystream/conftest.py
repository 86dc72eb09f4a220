from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from flash_querystream import QueryBuilder
from flash_querystream import db as db_module
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from .models import Base, Category, Product, Review

DATABASE_URL = "sqlite+aiosqlite:///:memory:"  # in-memory DB for tests


@pytest.fixture
def session():
    """A stand-in session for tests that only build queries."""
    return MagicMock(spec=AsyncSession)


@pytest.fixture
def qb(session):
    """QueryBuilder for tests that never execute SQL."""
    return QueryBuilder(session)


@pytest_asyncio.fixture()
async def init_test_db():
    """Initialize a fresh in-memory database for each test."""
    # StaticPool keeps the single in-memory connection alive across sessions.
    db_module.init_db(DATABASE_URL, echo=False, poolclass=StaticPool)

    async with db_module.get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    await db_module.close_db()


@pytest_asyncio.fixture()
async def db_qb(init_test_db):
    """Provide a QueryBuilder over a live database session."""
    async for query_builder in db_module.get_query_builder():
        yield query_builder


@pytest_asyncio.fixture()
async def catalog(db_qb):
    """
    Seed a small catalog.

    Products (name, price, stock, active, category):
        Widget       10  5  active    Tools   reviews 5, 1
        Gadget       30  0  active    Tools   review 2
        Doohickey    20  3  inactive  Toys
        Gizmo        40  7  active    Toys    review 4
        Thingamajig  50  1  active    Toys
    """
    tools = Category(name="Tools")
    toys = Category(name="Toys")
    products = {
        "Widget": Product(name="Widget", price=10, stock=5, category=tools),
        "Gadget": Product(name="Gadget", price=30, stock=0, category=tools),
        "Doohickey": Product(
            name="Doohickey", price=20, stock=3, active=False, category=toys
        ),
        "Gizmo": Product(name="Gizmo", price=40, stock=7, category=toys),
        "Thingamajig": Product(name="Thingamajig", price=50, stock=1, category=toys),
    }
    products["Widget"].reviews = [Review(rating=5), Review(rating=1)]
    products["Gadget"].reviews = [Review(rating=2)]
    products["Gizmo"].reviews = [Review(rating=4)]

    db_qb.session.add_all([tools, toys, *products.values()])
    await db_qb.session.commit()
    return {"tools": tools, "toys": toys, **products}
