"""Async repository pattern for database access.

Provides a generic base repository with CRUD operations that return
plain dicts. Domain repositories subclass it to add their own queries and
reach routes through FastAPI dependency factories.

Example: ProductRepository extending BaseRepository.
"""

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.models.base import Base

# ---------------------------------------------------------------------------
# Type variable for model classes
# ---------------------------------------------------------------------------

ModelT = TypeVar("ModelT", bound=Base)

_PROTECTED = ("id", "created_at")


def as_uuid(value: str | UUID) -> UUID | None:
    """Coerce a path/body identifier to UUID; None if it is not one."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Base repository
# ---------------------------------------------------------------------------

class BaseRepository(Generic[ModelT]):
    """Generic async repository with CRUD helpers.

    Subclass and set `model` to your SQLAlchemy model::

        class ProductRepository(BaseRepository[Product]):
            model = Product

            async def get_by_slug(self, slug: str):
                stmt = select(self.model).where(self.model.slug == slug)
                result = await self.session.execute(stmt)
                row = result.scalar_one_or_none()
                return row.to_dict() if row else None
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession):
        self.session = session

    # -- Get by ID --

    async def get_model(self, item_id: str | UUID) -> ModelT | None:
        """Load the ORM instance, or None for unknown/malformed ids."""
        key = as_uuid(item_id)
        if key is None:
            return None
        return await self.session.get(self.model, key)

    async def get(self, item_id: str | UUID) -> dict | None:
        """Get a single item by ID."""
        row = await self.get_model(item_id)
        return row.to_dict() if row else None

    # -- Create --

    async def create(self, data: dict[str, Any]) -> dict:
        """Create a new item."""
        item = self.model(**data)
        self.session.add(item)
        await self.session.flush()
        return item.to_dict()

    # -- Update --

    async def update(self, item_id: str | UUID, data: dict[str, Any]) -> dict | None:
        """Update an existing item. Returns None if not found."""
        item = await self.get_model(item_id)
        if not item:
            return None

        for key, value in data.items():
            if hasattr(item, key) and key not in _PROTECTED:
                setattr(item, key, value)

        await self.session.flush()
        return item.to_dict()

    # -- Delete --

    async def delete(self, item_id: str | UUID) -> bool:
        """Delete an item. Returns True if deleted, False if not found."""
        item = await self.get_model(item_id)
        if not item:
            return False

        await self.session.delete(item)
        await self.session.flush()
        return True
