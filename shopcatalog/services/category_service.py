# shopcatalog/services/category_service.py
import logging
import math
from collections import Counter, defaultdict
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type, TypeVar, Union
from pydantic import BaseModel, ValidationError
from ..config import Config
from ..database.store import CategoryStore
from ..exceptions import (
    CategoryError, CategoryInUseError, CategoryIntegrityError, CategoryNotFoundError,
    CategoryValidationError, CyclicParentError, DuplicateNameError, DuplicateSlugError,
    HasSubcategoriesError, SelfParentError
)
from ..models.category import (
    ROOT_PARENT, BulkImportError, BulkImportResult, BulkImportSuccess, Category,
    CategoryCreate, CategoryDetail, CategoryFilters, CategoryPage, CategoryQuery,
    CategoryRef, CategorySearchResult, CategorySeoInput, CategorySort, CategoryStats,
    CategoryTreeNode, CategoryUpdate, CategoryWithProductCount, DepthCount,
    StatsOverview, SubcategoryRef
)
from ..utils.slug import slugify

# Async callable returning how many records (e.g. products) use a category
ReferenceCounter = Callable[[int], Awaitable[int]]

ModelT = TypeVar("ModelT", bound=BaseModel)


def format_validation_error(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'data'}: {err['msg']}"
        for err in error.errors()
    )


class CategoryService:
    """سرویس مدیریت دسته‌بندی‌ها

    Sole mutator of category records. Every write keeps the hierarchy
    invariants: global slug uniqueness, case-insensitive sibling names,
    an acyclic parent graph, ``subcategory_ids`` mirroring the children
    and no deletion of categories that still have children.
    """

    def __init__(self, store: CategoryStore, reference_counter: Optional[ReferenceCounter] = None):
        self.store = store
        self.reference_counter = reference_counter
        self.logger = logging.getLogger(__name__)

    # -- helpers ---------------------------------------------------------

    @staticmethod
    def _coerce(model_cls: Type[ModelT], data: Union[ModelT, Dict[str, Any]]) -> ModelT:
        if isinstance(data, model_cls):
            return data
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            raise CategoryValidationError(format_validation_error(e)) from e

    @staticmethod
    def _derive_slug(name: str) -> str:
        slug = slugify(name)
        if not slug:
            raise CategoryValidationError(
                f"Cannot derive a slug from '{name}'; provide seo.slug explicitly"
            )
        return slug

    async def _require(self, category_id: int) -> Category:
        category = await self.store.find_by_id(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        return category

    async def _ensure_unique_name(self, name: str, parent_id: Optional[int],
                                  exclude_id: Optional[int] = None):
        existing = await self.store.find_one(
            CategoryQuery.siblings(parent_id, name=name, exclude_id=exclude_id)
        )
        if existing:
            raise DuplicateNameError(name)

    async def _ensure_unique_slug(self, slug: str, exclude_id: Optional[int] = None):
        existing = await self.store.find_one(CategoryQuery(slug=slug, exclude_id=exclude_id))
        if existing:
            raise DuplicateSlugError(slug)

    async def _link_parent(self, parent_id: int, child_id: int):
        if not await self.store.add_subcategory(parent_id, child_id):
            self.logger.warning(
                f"Partial consistency: parent {parent_id} missing while linking subcategory {child_id}"
            )

    async def _unlink_parent(self, parent_id: int, child_id: int):
        if not await self.store.remove_subcategory(parent_id, child_id):
            self.logger.warning(
                f"Partial consistency: parent {parent_id} missing while unlinking subcategory {child_id}"
            )

    async def _detail(self, category: Category) -> CategoryDetail:
        parent = None
        if category.parent_id is not None:
            parent_category = await self.store.find_by_id(category.parent_id)
            if parent_category:
                parent = CategoryRef.of(parent_category)

        subcategories = []
        for child_id in category.subcategory_ids:
            child = await self.store.find_by_id(child_id)
            if child:
                subcategories.append(SubcategoryRef.of(child))

        return CategoryDetail(
            **category.model_dump(),
            parent=parent,
            subcategories=subcategories
        )

    # -- mutations -------------------------------------------------------

    async def create_category(self, data: Union[CategoryCreate, Dict[str, Any]]) -> Category:
        """افزودن دسته‌بندی جدید"""
        data = self._coerce(CategoryCreate, data)
        seo = data.seo or CategorySeoInput()

        if data.parent_id is not None:
            await self._require(data.parent_id)

        await self._ensure_unique_name(data.name, data.parent_id)

        slug = seo.slug or self._derive_slug(data.name)
        await self._ensure_unique_slug(slug)

        record = {
            "name": data.name,
            "description": data.description,
            "parent_id": data.parent_id,
            "subcategory_ids": [],
            "is_active": data.is_active is not False,
            "seo": {
                "slug": slug,
                "meta_title": seo.meta_title or data.name,
                "meta_description": (
                    seo.meta_description or data.description or f"Shop {data.name} products"
                ),
                "keywords": seo.keywords or [data.name.lower()],
            },
        }

        async with self.store.transaction():
            category = await self.store.insert(record)
            if data.parent_id is not None:
                await self._link_parent(data.parent_id, category.category_id)

        self.logger.info(f"Category {category.category_id} '{category.name}' created")
        return category

    async def update_category(self, category_id: int,
                              patch: Union[CategoryUpdate, Dict[str, Any]]) -> CategoryDetail:
        """بروزرسانی دسته‌بندی"""
        patch = self._coerce(CategoryUpdate, patch)
        category = await self._require(category_id)

        moving = patch.is_set("parent_id")
        target_parent = patch.parent_id if moving else category.parent_id
        seo_patch = patch.seo.model_dump(exclude_none=True) if patch.seo else {}

        if moving and target_parent == category_id:
            raise SelfParentError(category_id)

        # Sibling names are checked in the group the category ends up in
        renamed = patch.name is not None and patch.name != category.name
        if renamed or (moving and target_parent != category.parent_id):
            await self._ensure_unique_name(
                patch.name if patch.name is not None else category.name,
                target_parent,
                exclude_id=category_id
            )

        if patch.name is not None and not seo_patch.get("slug"):
            new_slug = self._derive_slug(patch.name)
            await self._ensure_unique_slug(new_slug, exclude_id=category_id)
            seo_patch["slug"] = new_slug
        elif seo_patch.get("slug") and seo_patch["slug"] != category.seo.slug:
            await self._ensure_unique_slug(seo_patch["slug"], exclude_id=category_id)

        if moving and target_parent is not None:
            await self._require(target_parent)
            # The new parent must not sit below the category being moved
            if await self.is_descendant(target_parent, category_id):
                raise CyclicParentError(category_id, target_parent)

        fields: Dict[str, Any] = {}
        if patch.name is not None:
            fields["name"] = patch.name
        if patch.is_set("description"):
            fields["description"] = patch.description
        if patch.is_active is not None:
            fields["is_active"] = patch.is_active
        if moving:
            fields["parent_id"] = target_parent
        if seo_patch:
            fields["seo"] = {**category.seo.model_dump(), **seo_patch}

        async with self.store.transaction():
            if moving:
                if category.parent_id is not None:
                    await self._unlink_parent(category.parent_id, category_id)
                if target_parent is not None:
                    await self._link_parent(target_parent, category_id)

            updated = await self.store.update_by_id(category_id, fields) if fields else category
            if updated is None:
                raise CategoryNotFoundError(category_id)

        self.logger.info(f"Category {category_id} updated: {', '.join(fields) or 'no changes'}")
        return await self._detail(updated)

    async def delete_category(self, category_id: int) -> Category:
        """حذف دسته‌بندی"""
        category = await self._require(category_id)

        if category.subcategory_ids:
            raise HasSubcategoriesError(category_id, len(category.subcategory_ids))

        if self.reference_counter is not None:
            references = await self.reference_counter(category_id)
            if references:
                raise CategoryInUseError(category_id, references)

        async with self.store.transaction():
            if category.parent_id is not None:
                await self._unlink_parent(category.parent_id, category_id)
            deleted = await self.store.delete_by_id(category_id)

        if deleted is None:
            raise CategoryNotFoundError(category_id)

        self.logger.info(f"Category {category_id} '{deleted.name}' deleted")
        return deleted

    async def bulk_import(self, records: Iterable[Dict[str, Any]]) -> BulkImportResult:
        """ورود گروهی دسته‌بندی‌ها

        Records are created one by one in input order; a failing record is
        reported with its index and never stops the rest of the batch.
        """
        result = BulkImportResult()

        for index, data in enumerate(records):
            try:
                category = await self.create_category(data)
            except CategoryError as e:
                self.logger.warning(f"Bulk import record {index} rejected: {e.message}")
                result.errors.append(BulkImportError(index=index, data=data, error=e.message))
                continue
            except Exception as e:
                self.logger.error(f"Bulk import record {index} failed: {e}", exc_info=True)
                result.errors.append(BulkImportError(index=index, data=data, error=str(e)))
                continue

            result.success.append(BulkImportSuccess(
                index=index,
                category_id=category.category_id,
                name=category.name
            ))

        self.logger.info(
            f"Bulk import finished: {len(result.success)} created, {len(result.errors)} failed"
        )
        return result

    # -- reads -----------------------------------------------------------

    async def get_category(self, category_id: int) -> CategoryDetail:
        """دریافت اطلاعات دسته‌بندی"""
        return await self._detail(await self._require(category_id))

    async def get_category_by_slug(self, slug: str) -> CategoryDetail:
        """دریافت دسته‌بندی با slug"""
        category = await self.store.find_one(CategoryQuery(slug=slug))
        if category is None:
            raise CategoryNotFoundError(slug=slug)
        return await self._detail(category)

    async def list_categories(self, filters: Union[CategoryFilters, Dict[str, Any], None] = None,
                              page: int = 1, page_size: Optional[int] = None) -> CategoryPage:
        """دریافت فهرست صفحه‌بندی شده دسته‌بندی‌ها"""
        filters = self._coerce(CategoryFilters, filters or {})
        page = max(page, 1)
        page_size = page_size or Config.CATEGORY_PAGE_SIZE

        query = CategoryQuery(is_active=filters.is_active, search=filters.search or None)
        if filters.parent_id == ROOT_PARENT:
            query.root_only = True
        elif filters.parent_id is not None:
            try:
                query.parent_id = int(filters.parent_id)
            except ValueError:
                raise CategoryValidationError(f"Invalid parent id: {filters.parent_id}")

        total = await self.store.count(query)
        items = await self.store.find(
            query,
            sort=filters.sort_by,
            skip=(page - 1) * page_size,
            limit=page_size
        )
        return CategoryPage(
            items=items,
            total=total,
            page=page,
            total_pages=math.ceil(total / page_size)
        )

    async def get_active_tree(self, max_depth: Optional[int] = 2) -> List[CategoryTreeNode]:
        """دریافت درخت دسته‌بندی‌های فعال

        ``max_depth`` counts levels below the roots; ``None`` means no limit.
        An inactive category hides its whole subtree, active descendants
        included.
        """
        active = await self.store.find(CategoryQuery(is_active=True), sort=CategorySort.NAME_ASC)

        children: Dict[int, List[Category]] = defaultdict(list)
        for category in active:
            if category.parent_id is not None:
                children[category.parent_id].append(category)

        def build(category: Category, depth: int) -> CategoryTreeNode:
            node = CategoryTreeNode(**category.model_dump())
            if max_depth is None or depth < max_depth:
                node.children = [
                    build(child, depth + 1) for child in children.get(category.category_id, [])
                ]
            return node

        return [build(category, 0) for category in active if category.parent_id is None]

    async def is_descendant(self, category_id: int, potential_ancestor_id: int) -> bool:
        """بررسی اینکه potential_ancestor_id از اجداد category_id است"""
        visited = {category_id}
        current = await self.store.find_by_id(category_id)

        while current is not None and current.parent_id is not None:
            if current.parent_id == potential_ancestor_id:
                return True
            if current.parent_id in visited:
                raise CategoryIntegrityError(
                    f"Parent cycle detected at category {current.parent_id}"
                )
            visited.add(current.parent_id)
            current = await self.store.find_by_id(current.parent_id)

        return False

    async def get_breadcrumb(self, category_id: int) -> List[CategoryRef]:
        """مسیر دسته‌بندی از ریشه تا خود دسته‌بندی"""
        breadcrumb: List[CategoryRef] = []
        visited = set()
        current = await self.store.find_by_id(category_id)

        while current is not None:
            if current.category_id in visited:
                raise CategoryIntegrityError(
                    f"Parent cycle detected at category {current.category_id}"
                )
            visited.add(current.category_id)
            breadcrumb.insert(0, CategoryRef.of(current))

            if current.parent_id is None:
                break
            current = await self.store.find_by_id(current.parent_id)

        return breadcrumb

    async def get_stats(self, exact_depth: bool = False) -> CategoryStats:
        """آمار دسته‌بندی‌ها

        By default depth is reported in two buckets, 0 (root) and 1 (has a
        parent). ``exact_depth`` walks every ancestor chain instead.
        """
        total = await self.store.count(CategoryQuery())
        roots = await self.store.count(CategoryQuery(root_only=True))
        overview = StatsOverview(
            total_categories=total,
            active_categories=await self.store.count(CategoryQuery(is_active=True)),
            inactive_categories=await self.store.count(CategoryQuery(is_active=False)),
            root_categories=roots,
            subcategories=total - roots
        )

        if exact_depth:
            depth_breakdown = await self._exact_depth_counts()
        else:
            depth_breakdown = await self.store.aggregate_depth_counts()

        return CategoryStats(overview=overview, depth_breakdown=depth_breakdown)

    async def _exact_depth_counts(self) -> List[DepthCount]:
        categories = {c.category_id: c for c in await self.store.find(CategoryQuery())}
        depths: Dict[int, int] = {}

        def depth_of(category_id: int) -> int:
            chain = []
            current = categories.get(category_id)
            while current is not None and current.category_id not in depths:
                if current.category_id in chain:
                    raise CategoryIntegrityError(
                        f"Parent cycle detected at category {current.category_id}"
                    )
                chain.append(current.category_id)
                current = categories.get(current.parent_id) if current.parent_id is not None else None

            # A dangling parent counts as a root, like the aggregate query
            depth = depths[current.category_id] + 1 if current is not None else 0
            for cid in reversed(chain):
                depths[cid] = depth
                depth += 1
            return depths[category_id]

        counts = Counter(depth_of(category_id) for category_id in categories)
        return [DepthCount(depth=depth, count=count) for depth, count in sorted(counts.items())]

    async def search_categories(self, term: str, limit: Optional[int] = None) -> List[CategorySearchResult]:
        """جستجوی دسته‌بندی‌های فعال"""
        term = (term or "").strip()
        if not term:
            return []

        found = await self.store.find(
            CategoryQuery(is_active=True, search=term),
            sort=CategorySort.NAME_ASC,
            limit=limit or Config.CATEGORY_SEARCH_LIMIT
        )

        parents: Dict[int, Optional[CategoryRef]] = {}
        results = []
        for category in found:
            parent_id = category.parent_id
            if parent_id is not None and parent_id not in parents:
                parent = await self.store.find_by_id(parent_id)
                parents[parent_id] = CategoryRef.of(parent) if parent else None

            results.append(CategorySearchResult(
                category_id=category.category_id,
                name=category.name,
                description=category.description,
                slug=category.slug,
                parent_id=parent_id,
                parent=parents.get(parent_id) if parent_id is not None else None
            ))
        return results

    async def get_active_categories(self) -> List[Category]:
        """دریافت تمام دسته‌بندی‌های فعال"""
        return await self.store.find(CategoryQuery(is_active=True), sort=CategorySort.NAME_ASC)

    async def get_all_categories(self, roots_only: bool = False) -> List[Category]:
        """دریافت تمام دسته‌بندی‌ها (فعال و غیرفعال) بدون صفحه‌بندی"""
        return await self.store.find(CategoryQuery(root_only=roots_only), sort=CategorySort.NAME_ASC)

    async def get_main_categories(self) -> List[Category]:
        """دریافت دسته‌بندی‌های اصلی فعال"""
        return await self.store.find(
            CategoryQuery(is_active=True, root_only=True),
            sort=CategorySort.NAME_ASC
        )

    async def get_subcategories(self, category_id: int) -> List[Category]:
        """دریافت زیردسته‌های فعال یک دسته‌بندی"""
        await self._require(category_id)
        return await self.store.find(
            CategoryQuery(is_active=True, parent_id=category_id),
            sort=CategorySort.NAME_ASC
        )

    async def get_categories_with_product_counts(self) -> List[CategoryWithProductCount]:
        """دریافت دسته‌بندی‌های فعال همراه با تعداد محصولات"""
        result = []
        for category in await self.get_active_categories():
            count = 0
            if self.reference_counter is not None:
                count = await self.reference_counter(category.category_id)
            result.append(CategoryWithProductCount(**category.model_dump(), product_count=count))
        return result
