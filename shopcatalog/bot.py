# shopcatalog/bot.py
import logging
from typing import Optional
from telegram import Update
from telegram.ext import Application, ContextTypes
from .config import Config
from .database.database import Database
from .database.memory_store import MemoryCategoryStore
from .database.postgres_store import PostgresCategoryStore
from .database.store import CategoryStore
from .handlers import CategoryManagementHandler
from .services.category_service import CategoryService

class CatalogBot:
    def __init__(self, db: Optional[Database] = None):
        """راه‌اندازی ربات مدیریت دسته‌بندی‌ها"""
        self.logger = logging.getLogger(__name__)
        self.db = db
        self.store = self._create_store()
        self.category_service = CategoryService(self.store)

        self.application = (
            Application.builder()
            .token(Config.TELEGRAM_TOKEN)
            .post_init(self._on_startup)
            .post_shutdown(self._on_shutdown)
            .build()
        )
        self.setup_handlers()

    def _create_store(self) -> CategoryStore:
        if Config.STORAGE_BACKEND == "memory":
            self.logger.warning("Using in-memory category store; data is lost on restart")
            return MemoryCategoryStore()
        if self.db is None:
            self.db = Database()
        return PostgresCategoryStore(self.db)

    def setup_handlers(self):
        """تنظیم هندلرهای ربات"""
        category_handler = CategoryManagementHandler(self.category_service)
        for handler in category_handler.get_handlers():
            self.application.add_handler(handler)

        self.application.add_error_handler(self._on_error)

    async def _on_startup(self, application: Application):
        if self.db is not None:
            await self.db.connect()

    async def _on_shutdown(self, application: Application):
        if self.db is not None:
            await self.db.close()

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        self.logger.error(f"Error while handling update: {context.error}", exc_info=context.error)
        if isinstance(update, Update) and update.effective_message:
            await update.effective_message.reply_text("❌ خطای داخلی رخ داد. لطفاً مجدداً تلاش کنید.")

    def run(self):
        self.application.run_polling(allowed_updates=Update.ALL_TYPES)
