# shopcatalog/database/memory_store.py
import copy
import logging
from collections import Counter
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional
from ..exceptions import DuplicateNameError, DuplicateSlugError
from ..models.category import (
    Category, CategoryQuery, CategoryRecord, CategorySort, DepthCount
)
from .store import CategoryStore


def matches(category: Category, query: CategoryQuery) -> bool:
    """بررسی تطابق دسته‌بندی با شرط جستجو"""
    if query.category_id is not None and category.category_id != query.category_id:
        return False
    if query.exclude_id is not None and category.category_id == query.exclude_id:
        return False
    if query.name is not None and category.name.lower() != query.name.lower():
        return False
    if query.slug is not None and category.seo.slug != query.slug:
        return False
    if query.root_only and category.parent_id is not None:
        return False
    if query.parent_id is not None and category.parent_id != query.parent_id:
        return False
    if query.is_active is not None and category.is_active != query.is_active:
        return False
    if query.search:
        term = query.search.lower()
        haystack = [category.name, category.description or ""] + category.seo.keywords
        if not any(term in value.lower() for value in haystack):
            return False
    return True


def _sort_key(sort: CategorySort):
    if sort in (CategorySort.CREATED_ASC, CategorySort.CREATED_DESC):
        return lambda c: (c.created_at, c.category_id)
    if sort == CategorySort.UPDATED_DESC:
        return lambda c: (c.updated_at or c.created_at, c.category_id)
    return lambda c: (c.name.lower(), c.category_id)


class MemoryCategoryStore(CategoryStore):
    """In-process store used by tests and the ``memory`` backend.

    Mirrors the unique indexes of the PostgreSQL table so that concurrent
    check-then-act races surface the same errors.
    """

    def __init__(self):
        self._records: Dict[int, Category] = {}
        self._next_id = 1
        self._tx_depth = 0
        self.logger = logging.getLogger(__name__)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _check_unique(self, category: Category):
        for other in self._records.values():
            if other.category_id == category.category_id:
                continue
            if other.seo.slug == category.seo.slug:
                raise DuplicateSlugError(category.seo.slug)
            if (other.parent_id == category.parent_id
                    and other.name.lower() == category.name.lower()):
                raise DuplicateNameError(category.name)

    async def find_one(self, query: CategoryQuery) -> Optional[Category]:
        found = await self.find(query, limit=1)
        return found[0] if found else None

    async def find_by_id(self, category_id: int) -> Optional[Category]:
        category = self._records.get(category_id)
        return category.model_copy(deep=True) if category else None

    async def find(self, query: CategoryQuery, sort: CategorySort = CategorySort.NAME_ASC,
                   skip: int = 0, limit: Optional[int] = None) -> List[Category]:
        reverse = sort in (CategorySort.NAME_DESC, CategorySort.CREATED_DESC,
                           CategorySort.UPDATED_DESC)
        result = sorted(
            (c for c in self._records.values() if matches(c, query)),
            key=_sort_key(sort),
            reverse=reverse
        )
        end = None if limit is None else skip + limit
        return [c.model_copy(deep=True) for c in result[skip:end]]

    async def count(self, query: CategoryQuery) -> int:
        return sum(1 for c in self._records.values() if matches(c, query))

    async def insert(self, data: CategoryRecord) -> Category:
        now = self._now()
        category = Category(
            category_id=self._next_id,
            created_at=now,
            updated_at=now,
            **data
        )
        self._check_unique(category)
        self._records[category.category_id] = category
        self._next_id += 1
        return category.model_copy(deep=True)

    async def update_by_id(self, category_id: int, fields: CategoryRecord) -> Optional[Category]:
        current = self._records.get(category_id)
        if current is None:
            return None
        merged = current.model_dump()
        merged.update(fields)
        merged["updated_at"] = self._now()
        category = Category.model_validate(merged)
        self._check_unique(category)
        self._records[category_id] = category
        return category.model_copy(deep=True)

    async def delete_by_id(self, category_id: int) -> Optional[Category]:
        return self._records.pop(category_id, None)

    async def add_subcategory(self, parent_id: int, child_id: int) -> bool:
        parent = self._records.get(parent_id)
        if parent is None:
            return False
        if child_id not in parent.subcategory_ids:
            parent.subcategory_ids.append(child_id)
            parent.updated_at = self._now()
        return True

    async def remove_subcategory(self, parent_id: int, child_id: int) -> bool:
        parent = self._records.get(parent_id)
        if parent is None:
            return False
        if child_id in parent.subcategory_ids:
            parent.subcategory_ids = [i for i in parent.subcategory_ids if i != child_id]
            parent.updated_at = self._now()
        return True

    async def aggregate_depth_counts(self) -> List[DepthCount]:
        depths = Counter(
            1 if c.parent_id is not None and c.parent_id in self._records else 0
            for c in self._records.values()
        )
        return [DepthCount(depth=depth, count=count) for depth, count in sorted(depths.items())]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield
            finally:
                self._tx_depth -= 1
            return

        snapshot = (copy.deepcopy(self._records), self._next_id)
        self._tx_depth = 1
        try:
            yield
        except BaseException:
            self._records, self._next_id = snapshot
            self.logger.debug("Memory store transaction rolled back")
            raise
        finally:
            self._tx_depth = 0
