# shopcatalog/database/store.py
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional
from ..models.category import (
    Category, CategoryQuery, CategoryRecord, CategorySort, DepthCount
)

class CategoryStore:
    """قرارداد ذخیره‌سازی دسته‌بندی‌ها

    Implementations keep ``created_at``/``updated_at`` up to date and
    return ``None`` from id-based calls when the record does not exist.
    """

    async def find_one(self, query: CategoryQuery) -> Optional[Category]:
        raise NotImplementedError

    async def find_by_id(self, category_id: int) -> Optional[Category]:
        raise NotImplementedError

    async def find(self, query: CategoryQuery, sort: CategorySort = CategorySort.NAME_ASC,
                   skip: int = 0, limit: Optional[int] = None) -> List[Category]:
        raise NotImplementedError

    async def count(self, query: CategoryQuery) -> int:
        raise NotImplementedError

    async def insert(self, data: CategoryRecord) -> Category:
        raise NotImplementedError

    async def update_by_id(self, category_id: int, fields: CategoryRecord) -> Optional[Category]:
        raise NotImplementedError

    async def delete_by_id(self, category_id: int) -> Optional[Category]:
        raise NotImplementedError

    async def add_subcategory(self, parent_id: int, child_id: int) -> bool:
        """Add ``child_id`` to the parent's set; False if the parent is gone"""
        raise NotImplementedError

    async def remove_subcategory(self, parent_id: int, child_id: int) -> bool:
        raise NotImplementedError

    async def aggregate_depth_counts(self) -> List[DepthCount]:
        """Depth 0 for roots (and dangling parents), 1 for everything else"""
        raise NotImplementedError

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        yield
