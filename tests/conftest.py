"""Pytest fixtures for the workflow gating tests.

Everything runs against one in-memory SQLite database per test; the
PostgreSQL-only column types fall back to their portable variants.
"""

import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import src.models  # noqa: F401  registers every table on the metadata
from src.app import app
from src.config import settings
from src.database.base import Base
from src.database.session import get_db
from src.middleware.rate_limit import limiter
from src.models.conversation import Conversation
from src.models.enums import ItemKind
from src.models.listing import ListingItem, ListingOption

TEST_DATABASE_URL = "sqlite+aiosqlite://"

limiter.enabled = False


@dataclass
class Listing:
    """An item, its options and one conversation about it."""

    item: ListingItem
    conversation: Conversation
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    options: list[ListingOption] = field(default_factory=list)

    @property
    def scope_keys(self) -> list[str]:
        return [str(o.id) for o in self.options]

    def option_ids(self) -> dict:
        """Request fields that select the first option of the item."""
        if not self.options:
            return {}
        key = "variant_id" if self.item.kind is ItemKind.PRODUCT else "package_id"
        return {key: str(self.options[0].id)}


@pytest_asyncio.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient wired to the app; each request gets its own committed session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _token_for(user_id: uuid.UUID) -> str:
    return jwt.encode(
        {"sub": str(user_id), "email": f"{user_id.hex[:8]}@example.com"},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


@pytest.fixture
def auth_headers():
    """Build Authorization headers carrying a signed token for a user id."""

    def _headers(user_id: uuid.UUID) -> dict[str, str]:
        return {"Authorization": f"Bearer {_token_for(user_id)}"}

    return _headers


@pytest.fixture
def make_listing():
    """Persist an item with options and a conversation, then commit."""

    async def _make(
        session: AsyncSession,
        kind: ItemKind = ItemKind.PRODUCT,
        requires_design_approval: bool = False,
        requires_quote: bool = False,
        option_prices: tuple[str, ...] = ("120.00", "150.00"),
        base_price: str | None = "100.00",
    ) -> Listing:
        buyer_id, seller_id = uuid.uuid4(), uuid.uuid4()
        item = ListingItem(
            id=uuid.uuid4(),
            kind=kind,
            seller_id=seller_id,
            name="Custom print" if kind is ItemKind.PRODUCT else "Logo design",
            base_price=Decimal(base_price) if base_price is not None else None,
            requires_design_approval=requires_design_approval,
            requires_quote=requires_quote,
        )
        session.add(item)
        options = [
            ListingOption(
                id=uuid.uuid4(),
                item_id=item.id,
                name=f"Option {position + 1}",
                price=Decimal(price),
                position=position,
            )
            for position, price in enumerate(option_prices)
        ]
        session.add_all(options)
        conversation = Conversation(
            id=uuid.uuid4(),
            buyer_id=buyer_id,
            seller_id=seller_id,
            item_id=item.id,
            item_kind=kind,
        )
        session.add(conversation)
        await session.commit()
        return Listing(
            item=item,
            conversation=conversation,
            buyer_id=buyer_id,
            seller_id=seller_id,
            options=options,
        )

    return _make


@pytest.fixture
def design_files():
    def _files(name: str = "front.png", count: int = 1) -> list[dict]:
        return [
            {
                "url": f"https://files.example.com/{index}/{name}",
                "filename": name,
                "size": 2048 + index,
                "mime_type": "image/png",
            }
            for index in range(count)
        ]

    return _files
