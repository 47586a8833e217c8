# shopcatalog/utils/keyboards.py
from typing import List
from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from ..models.category import Category, CategoryDetail

class Keyboards:
    @staticmethod
    def categories_menu(categories: List[Category]) -> InlineKeyboardMarkup:
        """کیبورد مدیریت دسته‌بندی‌ها"""
        keyboard = [
            [InlineKeyboardButton("➕ افزودن دسته‌بندی جدید", callback_data="add_category")]
        ]
        for category in categories:
            keyboard.append([InlineKeyboardButton(
                f"📁 {category.name}",
                callback_data=f"view_category_{category.category_id}"
            )])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def category_actions(category: CategoryDetail) -> InlineKeyboardMarkup:
        """کیبورد عملیات روی یک دسته‌بندی"""
        keyboard = [
            [InlineKeyboardButton("❌ حذف", callback_data=f"delete_category_{category.category_id}")]
        ]
        for sub in category.subcategories:
            keyboard.append([InlineKeyboardButton(
                f"📂 {sub.name}",
                callback_data=f"view_category_{sub.category_id}"
            )])

        back = (
            f"view_category_{category.parent.category_id}" if category.parent
            else "manage_categories"
        )
        keyboard.append([InlineKeyboardButton("🔙 بازگشت", callback_data=back)])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def parent_selection(categories: List[Category]) -> InlineKeyboardMarkup:
        """کیبورد انتخاب دسته‌بندی والد"""
        keyboard = [[InlineKeyboardButton("🌐 دسته‌بندی اصلی", callback_data="parent_category_none")]]
        for category in categories:
            keyboard.append([InlineKeyboardButton(
                category.name,
                callback_data=f"parent_category_{category.category_id}"
            )])
        keyboard.append([InlineKeyboardButton("🔙 انصراف", callback_data="cancel")])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def confirm_delete(category_id: int) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup([[
            InlineKeyboardButton("✅ تایید حذف", callback_data=f"confirm_delete_category_{category_id}"),
            InlineKeyboardButton("❌ انصراف", callback_data=f"view_category_{category_id}")
        ]])

    @staticmethod
    def cancel_keyboard() -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup([[InlineKeyboardButton("❌ انصراف", callback_data="cancel")]])
