"""FastAPI dependencies: store sessions and list paging."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Query
from sqlalchemy.ext.asyncio import AsyncSession

from secmaster.db.engine import get_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a read session on the resolution store for one request."""
    async with get_session_factory()() as session:
        yield session


@dataclass(frozen=True)
class Page:
    number: int
    size: int

    @property
    def offset(self) -> int:
        return (self.number - 1) * self.size

    def count(self, total: int) -> int:
        return -(-total // self.size) if total > 0 else 1


def get_page(
    page: int = Query(default=1, ge=1),
    size: int = Query(default=50, ge=1, le=1000),
) -> Page:
    return Page(number=page, size=size)
