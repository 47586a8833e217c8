# shopcatalog/exceptions.py
from typing import Optional


class CategoryError(Exception):
    """Base class for category hierarchy errors.

    ``status_code`` is the HTTP status an outer layer should answer with.
    """
    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CategoryNotFoundError(CategoryError):
    status_code = 404

    def __init__(self, category_id: Optional[int] = None, slug: Optional[str] = None,
                 message: Optional[str] = None):
        if message is None:
            if slug is not None:
                message = f"Category not found with slug of {slug}"
            else:
                message = f"Category not found with id of {category_id}"
        super().__init__(message)
        self.category_id = category_id
        self.slug = slug


class DuplicateNameError(CategoryError):
    status_code = 409

    def __init__(self, name: str):
        super().__init__(f"Category with name '{name}' already exists at this level")
        self.name = name


class DuplicateSlugError(CategoryError):
    status_code = 409

    def __init__(self, slug: str):
        super().__init__(f"Category slug '{slug}' already exists")
        self.slug = slug


class SelfParentError(CategoryError):
    def __init__(self, category_id: int):
        super().__init__("Category cannot be its own parent")
        self.category_id = category_id


class CyclicParentError(CategoryError):
    def __init__(self, category_id: int, parent_id: int):
        super().__init__("Cannot move category under its own descendant")
        self.category_id = category_id
        self.parent_id = parent_id


class HasSubcategoriesError(CategoryError):
    def __init__(self, category_id: int, count: int):
        super().__init__(
            "Cannot delete category with subcategories. "
            "Delete or move subcategories first."
        )
        self.category_id = category_id
        self.count = count


class CategoryInUseError(CategoryError):
    """Raised when products (or other records) still reference a category."""

    def __init__(self, category_id: int, count: int):
        super().__init__(
            f"Cannot delete category with {count} linked products. "
            "Move or delete products first."
        )
        self.category_id = category_id
        self.count = count


class CategoryValidationError(CategoryError):
    pass


class CategoryIntegrityError(CategoryError):
    """Stored data breaks a hierarchy invariant (e.g. a parent cycle)."""
    status_code = 500
