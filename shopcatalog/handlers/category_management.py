# shopcatalog/handlers/category_management.py
from typing import List
from telegram import Update
from telegram.ext import (
    BaseHandler as TelegramHandler, CallbackQueryHandler, CommandHandler,
    ContextTypes, ConversationHandler, MessageHandler, filters
)
from .base_handler import BaseHandler
from ..config import Config
from ..constants import (
    WAITING_CATEGORY_DESCRIPTION, WAITING_CATEGORY_NAME, WAITING_PARENT_CATEGORY
)
from ..exceptions import CategoryError


class CategoryManagementHandler(BaseHandler):
    """هندلر مدیریت دسته‌بندی‌ها"""

    @staticmethod
    def _error_text(error: CategoryError) -> str:
        return f"❌ خطا: {error.message}"

    @staticmethod
    def _callback_id(data: str) -> int:
        return int(data.rsplit('_', 1)[1])

    async def show_categories_menu(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """نمایش منوی مدیریت دسته‌بندی‌ها"""
        if not await self.ensure_admin(update):
            return

        tree = await self.category_service.get_active_tree(Config.CATEGORY_TREE_DEPTH)
        # ادمین دسته‌بندی‌های غیرفعال را هم می‌بیند
        roots = await self.category_service.get_all_categories(roots_only=True)

        await self.reply(
            update,
            self.messages.format_tree(tree),
            reply_markup=self.keyboards.categories_menu(roots)
        )

    async def view_category(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """نمایش جزئیات دسته‌بندی"""
        if not await self.ensure_admin(update):
            return

        category_id = self._callback_id(update.callback_query.data)
        try:
            category = await self.category_service.get_category(category_id)
        except CategoryError as e:
            await self.reply(update, self._error_text(e))
            return

        breadcrumb = await self.category_service.get_breadcrumb(category_id)
        await self.reply(
            update,
            f"🧭 {self.messages.format_breadcrumb(breadcrumb)}\n\n"
            f"{self.messages.format_category(category)}",
            reply_markup=self.keyboards.category_actions(category)
        )

    async def start_add_category(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """شروع فرآیند افزودن دسته‌بندی"""
        if not await self.ensure_admin(update):
            return ConversationHandler.END

        await self.reply(
            update,
            "📝 نام دسته‌بندی را وارد کنید:",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return WAITING_CATEGORY_NAME

    async def handle_category_name(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """دریافت نام دسته‌بندی"""
        context.user_data['new_category_name'] = update.message.text.strip()

        await update.message.reply_text(
            "📝 لطفاً توضیحات دسته‌بندی را وارد کنید:\n"
            "(برای رد کردن این مرحله روی /skip کلیک کنید)",
            reply_markup=self.keyboards.cancel_keyboard()
        )
        return WAITING_CATEGORY_DESCRIPTION

    async def handle_category_description(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """دریافت توضیحات دسته‌بندی"""
        if update.message.text == "/skip":
            context.user_data['new_category_description'] = None
        else:
            context.user_data['new_category_description'] = update.message.text

        # دریافت دسته‌بندی‌های موجود برای انتخاب والد
        categories = await self.category_service.get_all_categories()

        await update.message.reply_text(
            "🔍 آیا این دسته‌بندی زیرمجموعه دسته‌بندی دیگری است؟\n"
            "لطفاً دسته‌بندی والد را انتخاب کنید:",
            reply_markup=self.keyboards.parent_selection(categories)
        )
        return WAITING_PARENT_CATEGORY

    async def handle_parent_selection(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """پردازش انتخاب دسته‌بندی والد و ذخیره دسته‌بندی جدید"""
        query = update.callback_query
        await query.answer()

        parent_data = query.data.split('_')[2]
        parent_id = None if parent_data == 'none' else int(parent_data)

        try:
            category = await self.category_service.create_category({
                'name': context.user_data.get('new_category_name', ''),
                'description': context.user_data.get('new_category_description'),
                'parent_id': parent_id
            })
            await query.edit_message_text(
                f"✅ دسته‌بندی «{category.name}» با موفقیت ایجاد شد.\n"
                f"🔗 slug: {category.slug}"
            )
        except CategoryError as e:
            await query.edit_message_text(f"{self._error_text(e)}\nلطفاً مجدداً تلاش کنید.")

        # پاک کردن داده‌های موقت
        context.user_data.clear()
        return ConversationHandler.END

    async def handle_delete_category(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """درخواست حذف دسته‌بندی"""
        if not await self.ensure_admin(update):
            return

        category_id = self._callback_id(update.callback_query.data)
        try:
            category = await self.category_service.get_category(category_id)
        except CategoryError as e:
            await self.reply(update, self._error_text(e))
            return

        if category.subcategories:
            await self.reply(
                update,
                f"⚠️ این دسته‌بندی دارای {len(category.subcategories)} زیردسته است.\n"
                "ابتدا زیردسته‌ها را حذف یا جابجا کنید.",
                reply_markup=self.keyboards.category_actions(category)
            )
            return

        await self.reply(
            update,
            f"⚠️ آیا از حذف دسته‌بندی «{category.name}» مطمئن هستید؟",
            reply_markup=self.keyboards.confirm_delete(category_id)
        )

    async def handle_delete_confirmation(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """پردازش تایید حذف دسته‌بندی"""
        if not await self.ensure_admin(update):
            return

        category_id = self._callback_id(update.callback_query.data)
        try:
            deleted = await self.category_service.delete_category(category_id)
        except CategoryError as e:
            await self.reply(update, self._error_text(e))
            return

        await self.reply(update, f"✅ دسته‌بندی «{deleted.name}» حذف شد.")

    async def move_category(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """جابجایی دسته‌بندی: /move_category <slug> <parent-slug|->"""
        if not await self.ensure_admin(update):
            return

        if len(context.args) != 2:
            await update.message.reply_text("ℹ️ استفاده: /move_category <slug> <slug-والد یا ->")
            return

        slug, parent_slug = context.args
        try:
            category = await self.category_service.get_category_by_slug(slug)
            parent_id = None
            if parent_slug != '-':
                parent_id = (await self.category_service.get_category_by_slug(parent_slug)).category_id
            updated = await self.category_service.update_category(
                category.category_id, {'parent_id': parent_id}
            )
        except CategoryError as e:
            await update.message.reply_text(self._error_text(e))
            return

        breadcrumb = await self.category_service.get_breadcrumb(updated.category_id)
        await update.message.reply_text(
            f"✅ دسته‌بندی جابجا شد:\n🧭 {self.messages.format_breadcrumb(breadcrumb)}"
        )

    async def rename_category(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """تغییر نام دسته‌بندی: /rename_category <slug> <نام جدید>"""
        if not await self.ensure_admin(update):
            return

        if len(context.args) < 2:
            await update.message.reply_text("ℹ️ استفاده: /rename_category <slug> <نام جدید>")
            return

        slug, new_name = context.args[0], " ".join(context.args[1:])
        try:
            category = await self.category_service.get_category_by_slug(slug)
            updated = await self.category_service.update_category(
                category.category_id, {'name': new_name}
            )
        except CategoryError as e:
            await update.message.reply_text(self._error_text(e))
            return

        await update.message.reply_text(
            f"✅ نام دسته‌بندی به «{updated.name}» تغییر کرد.\n🔗 slug: {updated.slug}"
        )

    async def toggle_category(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """فعال/غیرفعال کردن دسته‌بندی: /toggle_category <slug>"""
        if not await self.ensure_admin(update):
            return

        if len(context.args) != 1:
            await update.message.reply_text("ℹ️ استفاده: /toggle_category <slug>")
            return

        try:
            category = await self.category_service.get_category_by_slug(context.args[0])
            updated = await self.category_service.update_category(
                category.category_id, {'is_active': not category.is_active}
            )
        except CategoryError as e:
            await update.message.reply_text(self._error_text(e))
            return

        await update.message.reply_text(
            f"✅ وضعیت «{updated.name}»: {'فعال' if updated.is_active else 'غیرفعال'}"
        )

    async def find_category(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """جستجوی دسته‌بندی‌ها: /find_category <عبارت>"""
        if not await self.ensure_admin(update):
            return

        term = " ".join(context.args)
        if not term:
            await update.message.reply_text("ℹ️ استفاده: /find_category <عبارت>")
            return

        results = await self.category_service.search_categories(term)
        await update.message.reply_text(self.messages.format_search_results(term, results))

    async def show_stats(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """نمایش آمار دسته‌بندی‌ها"""
        if not await self.ensure_admin(update):
            return

        stats = await self.category_service.get_stats()
        await update.message.reply_text(self.messages.format_stats(stats))

    def conversation_handler(self) -> ConversationHandler:
        """هندلر مکالمه افزودن دسته‌بندی"""
        return ConversationHandler(
            entry_points=[
                CommandHandler('add_category', self.start_add_category),
                CallbackQueryHandler(self.start_add_category, pattern='^add_category$')
            ],
            states={
                WAITING_CATEGORY_NAME: [
                    MessageHandler(filters.TEXT & ~filters.COMMAND, self.handle_category_name)
                ],
                WAITING_CATEGORY_DESCRIPTION: [
                    MessageHandler(filters.TEXT & ~filters.COMMAND, self.handle_category_description),
                    CommandHandler('skip', self.handle_category_description)
                ],
                WAITING_PARENT_CATEGORY: [
                    CallbackQueryHandler(self.handle_parent_selection, pattern='^parent_category_')
                ]
            },
            fallbacks=[
                CommandHandler('cancel', self.cancel_conversation),
                CallbackQueryHandler(self.cancel_conversation, pattern='^cancel$')
            ]
        )

    def get_handlers(self) -> List[TelegramHandler]:
        return [
            self.conversation_handler(),
            CommandHandler('categories', self.show_categories_menu),
            CommandHandler('move_category', self.move_category),
            CommandHandler('rename_category', self.rename_category),
            CommandHandler('toggle_category', self.toggle_category),
            CommandHandler('find_category', self.find_category),
            CommandHandler('category_stats', self.show_stats),
            CallbackQueryHandler(self.show_categories_menu, pattern='^manage_categories$'),
            CallbackQueryHandler(self.view_category, pattern=r'^view_category_\d+$'),
            CallbackQueryHandler(self.handle_delete_category, pattern=r'^delete_category_\d+$'),
            CallbackQueryHandler(self.handle_delete_confirmation, pattern=r'^confirm_delete_category_\d+$'),
        ]
