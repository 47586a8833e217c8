# shopcatalog/utils/messages.py
from typing import List
from ..models.category import (
    CategoryDetail, CategoryRef, CategorySearchResult, CategoryStats, CategoryTreeNode
)
from ..utils.formatters import format_datetime, format_status

class Messages:
    @staticmethod
    def format_category(category: CategoryDetail) -> str:
        """قالب‌بندی اطلاعات دسته‌بندی"""
        subcategories = "\n".join(
            f"- {sub.name}{'' if sub.is_active else ' (غیرفعال)'}"
            for sub in category.subcategories
        ) or "- بدون زیردسته"

        return (
            f"📁 {category.name}\n\n"
            f"🔗 slug: {category.slug}\n"
            f"📝 توضیحات: {category.description or 'ندارد'}\n"
            f"👥 والد: {category.parent.name if category.parent else 'دسته‌بندی اصلی'}\n"
            f"📊 وضعیت: {format_status(category.is_active)}\n"
            f"🕒 ایجاد: {format_datetime(category.created_at)}\n"
            f"📂 زیردسته‌ها ({len(category.subcategories)}):\n"
            f"{subcategories}\n"
        )

    @staticmethod
    def format_tree(nodes: List[CategoryTreeNode]) -> str:
        """قالب‌بندی درخت دسته‌بندی‌ها"""
        if not nodes:
            return "🗂 هیچ دسته‌بندی فعالی وجود ندارد."

        lines = ["🗂 درخت دسته‌بندی‌ها:"]

        def walk(node: CategoryTreeNode, depth: int):
            lines.append(f"{'    ' * depth}{'📁' if depth == 0 else '└'} {node.name}")
            for child in node.children:
                walk(child, depth + 1)

        for node in nodes:
            walk(node, 0)
        return "\n".join(lines)

    @staticmethod
    def format_breadcrumb(breadcrumb: List[CategoryRef]) -> str:
        return " › ".join(item.name for item in breadcrumb)

    @staticmethod
    def format_stats(stats: CategoryStats) -> str:
        """قالب‌بندی آمار دسته‌بندی‌ها"""
        overview = stats.overview
        depth_lines = "\n".join(
            f"- سطح {item.depth}: {item.count}" for item in stats.depth_breakdown
        ) or "- ندارد"
        return (
            "📈 آمار دسته‌بندی‌ها\n"
            "------------------\n"
            f"🔢 کل: {overview.total_categories}\n"
            f"🟢 فعال: {overview.active_categories}\n"
            f"🔴 غیرفعال: {overview.inactive_categories}\n"
            f"📁 اصلی: {overview.root_categories}\n"
            f"📂 زیردسته: {overview.subcategories}\n"
            "------------------\n"
            f"{depth_lines}"
        )

    @staticmethod
    def format_search_results(term: str, results: List[CategorySearchResult]) -> str:
        if not results:
            return f"🔍 نتیجه‌ای برای «{term}» یافت نشد."

        lines = [f"🔍 نتایج جستجو برای «{term}»:"]
        for result in results:
            parent = f" ({result.parent.name})" if result.parent else ""
            lines.append(f"- {result.name}{parent}: {result.slug}")
        return "\n".join(lines)
