# shopcatalog/models/category.py
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, field_validator
from .base import ReadModel, TimeStampedModel

# Value of ``CategoryFilters.parent_id`` that selects root categories only
ROOT_PARENT = "null"


class CategorySort(str, Enum):
    """ترتیب مرتب‌سازی فهرست دسته‌بندی‌ها"""
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"
    CREATED_ASC = "created_asc"
    CREATED_DESC = "created_desc"
    UPDATED_DESC = "updated_desc"

    @classmethod
    def parse(cls, value: Optional[str]) -> "CategorySort":
        """Unknown or empty values fall back to name ascending"""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.NAME_ASC


class CategorySeo(BaseModel):
    """SEO block stored with every category"""
    slug: str
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    keywords: List[str] = []


class Category(TimeStampedModel):
    """Category model for product categorization"""
    category_id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    # Cached ids of categories whose parent_id points here
    subcategory_ids: List[int] = []
    is_active: bool = True
    seo: CategorySeo

    @property
    def slug(self) -> str:
        return self.seo.slug

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class CategoryRef(ReadModel):
    category_id: int
    name: str
    slug: str

    @classmethod
    def of(cls, category: Category) -> "CategoryRef":
        return cls(category_id=category.category_id, name=category.name, slug=category.slug)


class SubcategoryRef(CategoryRef):
    is_active: bool = True

    @classmethod
    def of(cls, category: Category) -> "SubcategoryRef":
        return cls(
            category_id=category.category_id,
            name=category.name,
            slug=category.slug,
            is_active=category.is_active
        )


class CategoryDetail(Category):
    """Category with its parent and children resolved for display"""
    parent: Optional[CategoryRef] = None
    subcategories: List[SubcategoryRef] = []


class CategoryTreeNode(Category):
    children: List["CategoryTreeNode"] = []


class CategoryWithProductCount(Category):
    product_count: int = 0


class CategorySearchResult(ReadModel):
    category_id: int
    name: str
    description: Optional[str] = None
    slug: str
    parent_id: Optional[int] = None
    parent: Optional[CategoryRef] = None


class CategoryPage(BaseModel):
    items: List[Category]
    total: int
    page: int
    total_pages: int


class StatsOverview(BaseModel):
    total_categories: int = 0
    active_categories: int = 0
    inactive_categories: int = 0
    root_categories: int = 0
    subcategories: int = 0


class DepthCount(BaseModel):
    depth: int
    count: int


class CategoryStats(BaseModel):
    overview: StatsOverview
    depth_breakdown: List[DepthCount]


class BulkImportSuccess(BaseModel):
    index: int
    category_id: int
    name: str
    message: str = "Successfully created"


class BulkImportError(BaseModel):
    index: int
    data: Any
    error: str


class BulkImportResult(BaseModel):
    success: List[BulkImportSuccess] = []
    errors: List[BulkImportError] = []


# Input models

class CategorySeoInput(BaseModel):
    slug: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    keywords: Optional[List[str]] = None

    @field_validator("slug")
    @classmethod
    def blank_slug_is_absent(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return value.strip() or None


class CategoryCreate(BaseModel):
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    is_active: bool = True
    seo: Optional[CategorySeoInput] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class CategoryUpdate(BaseModel):
    """Partial update; ``parent_id=None`` set explicitly moves to the root"""
    name: Optional[str] = None
    description: Optional[str] = None
    parent_id: Optional[int] = None
    is_active: Optional[bool] = None
    seo: Optional[CategorySeoInput] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    def is_set(self, field: str) -> bool:
        return field in self.model_fields_set


class CategoryFilters(BaseModel):
    is_active: Optional[bool] = None
    # int id, or ROOT_PARENT for roots only
    parent_id: Optional[Union[int, str]] = None
    search: Optional[str] = None
    sort_by: CategorySort = CategorySort.NAME_ASC

    @field_validator("sort_by", mode="before")
    @classmethod
    def parse_sort(cls, value: Any) -> CategorySort:
        return CategorySort.parse(value)


class CategoryQuery(BaseModel):
    """Store-level predicate; unset fields do not filter"""
    category_id: Optional[int] = None
    exclude_id: Optional[int] = None
    # Case-insensitive exact match
    name: Optional[str] = None
    slug: Optional[str] = None
    parent_id: Optional[int] = None
    root_only: bool = False
    is_active: Optional[bool] = None
    # Case-insensitive substring over name, description and keywords
    search: Optional[str] = None

    @classmethod
    def siblings(cls, parent_id: Optional[int], **kwargs: Any) -> "CategoryQuery":
        if parent_id is None:
            return cls(root_only=True, **kwargs)
        return cls(parent_id=parent_id, **kwargs)


CategoryRecord = Dict[str, Any]

CategoryTreeNode.model_rebuild()
