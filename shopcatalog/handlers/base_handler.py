# shopcatalog/handlers/base_handler.py
from typing import Optional
from telegram import InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes, ConversationHandler
from ..config import Config
from ..utils.keyboards import Keyboards
from ..utils.messages import Messages

class BaseHandler:
    """کلاس پایه برای هندلرها"""
    def __init__(self, category_service):
        self.category_service = category_service
        self.keyboards = Keyboards()
        self.messages = Messages()

    @staticmethod
    async def cancel_conversation(update: Update, context: ContextTypes.DEFAULT_TYPE):
        """لغو مکالمه"""
        context.user_data.clear()
        if update.callback_query:
            await update.callback_query.answer()
            await update.callback_query.edit_message_text("❌ عملیات لغو شد.")
        else:
            await update.message.reply_text("❌ عملیات لغو شد.")
        return ConversationHandler.END

    @staticmethod
    async def reply(update: Update, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None):
        """پاسخ به پیام یا ویرایش پیام دکمه‌دار"""
        if update.callback_query:
            await update.callback_query.answer()
            await update.callback_query.edit_message_text(text, reply_markup=reply_markup)
        else:
            await update.message.reply_text(text, reply_markup=reply_markup)

    async def is_admin(self, user_id: int) -> bool:
        """بررسی دسترسی ادمین"""
        return user_id in Config.ADMIN_IDS

    async def ensure_admin(self, update: Update) -> bool:
        if await self.is_admin(update.effective_user.id):
            return True
        await self.reply(update, "⛔️ شما به این بخش دسترسی ندارید.")
        return False
