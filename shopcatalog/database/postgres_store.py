# shopcatalog/database/postgres_store.py
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
import asyncpg
from ..exceptions import CategoryError, DuplicateNameError, DuplicateSlugError
from ..models.category import (
    Category, CategoryQuery, CategoryRecord, CategorySeo, CategorySort, DepthCount
)
from .store import CategoryStore

SLUG_CONSTRAINT = "categories_slug_key"
SIBLING_NAME_CONSTRAINT = "categories_sibling_name_key"

COLUMNS = (
    "category_id, name, description, parent_id, subcategory_ids, is_active, "
    "slug, meta_title, meta_description, keywords, created_at, updated_at"
)

# Columns callers may write; anything else in a record is rejected
WRITABLE_COLUMNS = (
    "name", "description", "parent_id", "subcategory_ids", "is_active",
    "slug", "meta_title", "meta_description", "keywords"
)

ORDER_BY = {
    CategorySort.NAME_ASC: "lower(name) ASC, category_id ASC",
    CategorySort.NAME_DESC: "lower(name) DESC, category_id DESC",
    CategorySort.CREATED_ASC: "created_at ASC, category_id ASC",
    CategorySort.CREATED_DESC: "created_at DESC, category_id DESC",
    CategorySort.UPDATED_DESC: "updated_at DESC, category_id DESC",
}


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_where(query: CategoryQuery) -> Tuple[str, List[Any]]:
    """ساخت بخش WHERE از روی شرط جستجو"""
    clauses: List[str] = []
    params: List[Any] = []

    def add(sql: str, value: Any):
        params.append(value)
        clauses.append(sql.format(n=len(params)))

    if query.category_id is not None:
        add("category_id = ${n}", query.category_id)
    if query.exclude_id is not None:
        add("category_id <> ${n}", query.exclude_id)
    if query.name is not None:
        add("lower(name) = lower(${n})", query.name)
    if query.slug is not None:
        add("slug = ${n}", query.slug)
    if query.root_only:
        clauses.append("parent_id IS NULL")
    if query.parent_id is not None:
        add("parent_id = ${n}", query.parent_id)
    if query.is_active is not None:
        add("is_active = ${n}", query.is_active)
    if query.search:
        add(
            "(name ILIKE ${n} OR description ILIKE ${n} OR EXISTS ("
            "SELECT 1 FROM unnest(keywords) AS k WHERE k ILIKE ${n}))",
            f"%{escape_like(query.search)}%"
        )

    if not clauses:
        return "", params
    return "WHERE " + " AND ".join(clauses), params


def record_to_columns(data: CategoryRecord) -> Dict[str, Any]:
    """Flatten a category record (nested ``seo``) into table columns"""
    columns = {key: value for key, value in data.items() if key != "seo"}
    seo = data.get("seo")
    if seo is not None:
        if isinstance(seo, CategorySeo):
            seo = seo.model_dump()
        columns.update({
            "slug": seo["slug"],
            "meta_title": seo.get("meta_title"),
            "meta_description": seo.get("meta_description"),
            "keywords": list(seo.get("keywords") or []),
        })

    unknown = set(columns) - set(WRITABLE_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown category columns: {', '.join(sorted(unknown))}")
    return columns


def row_to_category(row) -> Category:
    data = dict(row)
    return Category(
        category_id=data["category_id"],
        name=data["name"],
        description=data["description"],
        parent_id=data["parent_id"],
        subcategory_ids=list(data["subcategory_ids"] or []),
        is_active=data["is_active"],
        seo=CategorySeo(
            slug=data["slug"],
            meta_title=data["meta_title"],
            meta_description=data["meta_description"],
            keywords=list(data["keywords"] or []),
        ),
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


def translate_unique_violation(error: asyncpg.UniqueViolationError,
                               columns: Dict[str, Any]) -> CategoryError:
    if error.constraint_name == SLUG_CONSTRAINT:
        return DuplicateSlugError(columns.get("slug", ""))
    return DuplicateNameError(columns.get("name", ""))


class PostgresCategoryStore(CategoryStore):
    """Category store on the shop's asyncpg pool"""

    def __init__(self, db):
        self.db = db
        self.logger = logging.getLogger(__name__)
        self._tx_conn: ContextVar[Optional[asyncpg.Connection]] = ContextVar(
            "category_store_connection", default=None
        )

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        conn = self._tx_conn.get()
        if conn is not None:
            yield conn
            return
        async with self.db.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._tx_conn.get() is not None:
            yield
            return
        async with self.db.pool.acquire() as conn:
            async with conn.transaction():
                token = self._tx_conn.set(conn)
                try:
                    yield
                finally:
                    self._tx_conn.reset(token)

    async def find_one(self, query: CategoryQuery) -> Optional[Category]:
        found = await self.find(query, limit=1)
        return found[0] if found else None

    async def find_by_id(self, category_id: int) -> Optional[Category]:
        async with self._connection() as conn:
            row = await conn.fetchrow(f"""
                SELECT {COLUMNS}
                FROM categories
                WHERE category_id = $1
            """, category_id)
            return row_to_category(row) if row else None

    async def find(self, query: CategoryQuery, sort: CategorySort = CategorySort.NAME_ASC,
                   skip: int = 0, limit: Optional[int] = None) -> List[Category]:
        where, params = build_where(query)
        sql = f"SELECT {COLUMNS} FROM categories {where} ORDER BY {ORDER_BY[CategorySort.parse(sort)]}"
        if limit is not None:
            params.append(limit)
            sql += f" LIMIT ${len(params)}"
        if skip:
            params.append(skip)
            sql += f" OFFSET ${len(params)}"

        async with self._connection() as conn:
            rows = await conn.fetch(sql, *params)
            return [row_to_category(row) for row in rows]

    async def count(self, query: CategoryQuery) -> int:
        where, params = build_where(query)
        async with self._connection() as conn:
            count = await conn.fetchval(f"SELECT COUNT(*) FROM categories {where}", *params)
            return count or 0

    async def insert(self, data: CategoryRecord) -> Category:
        columns = record_to_columns(data)
        names = list(columns)
        placeholders = ", ".join(f"${i}" for i in range(1, len(names) + 1))

        async with self._connection() as conn:
            try:
                row = await conn.fetchrow(f"""
                    INSERT INTO categories ({', '.join(names)})
                    VALUES ({placeholders})
                    RETURNING {COLUMNS}
                """, *columns.values())
            except asyncpg.UniqueViolationError as e:
                raise translate_unique_violation(e, columns) from e
            return row_to_category(row)

    async def update_by_id(self, category_id: int, fields: CategoryRecord) -> Optional[Category]:
        columns = record_to_columns(fields)
        query_parts = []
        params = []
        param_count = 1

        for key, value in columns.items():
            query_parts.append(f"{key} = ${param_count}")
            params.append(value)
            param_count += 1

        query_parts.append("updated_at = NOW()")
        params.append(category_id)
        query = f"""
            UPDATE categories
            SET {', '.join(query_parts)}
            WHERE category_id = ${param_count}
            RETURNING {COLUMNS}
        """

        async with self._connection() as conn:
            try:
                row = await conn.fetchrow(query, *params)
            except asyncpg.UniqueViolationError as e:
                raise translate_unique_violation(e, columns) from e
            return row_to_category(row) if row else None

    async def delete_by_id(self, category_id: int) -> Optional[Category]:
        async with self._connection() as conn:
            row = await conn.fetchrow(f"""
                DELETE FROM categories
                WHERE category_id = $1
                RETURNING {COLUMNS}
            """, category_id)
            return row_to_category(row) if row else None

    async def add_subcategory(self, parent_id: int, child_id: int) -> bool:
        async with self._connection() as conn:
            result = await conn.execute("""
                UPDATE categories
                SET subcategory_ids = CASE
                        WHEN $2::integer = ANY(subcategory_ids) THEN subcategory_ids
                        ELSE array_append(subcategory_ids, $2::integer)
                    END,
                    updated_at = NOW()
                WHERE category_id = $1
            """, parent_id, child_id)
            return result == "UPDATE 1"

    async def remove_subcategory(self, parent_id: int, child_id: int) -> bool:
        async with self._connection() as conn:
            result = await conn.execute("""
                UPDATE categories
                SET subcategory_ids = array_remove(subcategory_ids, $2::integer),
                    updated_at = NOW()
                WHERE category_id = $1
            """, parent_id, child_id)
            return result == "UPDATE 1"

    async def aggregate_depth_counts(self) -> List[DepthCount]:
        async with self._connection() as conn:
            rows = await conn.fetch("""
                SELECT
                    CASE WHEN p.category_id IS NULL THEN 0 ELSE 1 END AS depth,
                    COUNT(*) AS count
                FROM categories c
                LEFT JOIN categories p ON p.category_id = c.parent_id
                GROUP BY 1
                ORDER BY 1
            """)
            return [DepthCount(depth=row["depth"], count=row["count"]) for row in rows]
