# shopcatalog/utils/slug.py
import re

_INVALID_CHARS = re.compile(r"[^a-z0-9 -]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")

def slugify(name: str) -> str:
    """ساخت slug از نام دسته‌بندی

    Only ASCII ``[a-z0-9 -]`` survives, so accented and non-Latin letters
    are dropped: ``"Café & Spice!!"`` becomes ``"caf-spice"``.
    """
    slug = _INVALID_CHARS.sub("", name.lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHENS.sub("-", slug)
    return slug.strip("-")
