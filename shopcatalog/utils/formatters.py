# shopcatalog/utils/formatters.py
from datetime import datetime
from typing import Optional
import pytz
from ..config import Config

def format_datetime(dt: Optional[datetime]) -> str:
    """قالب‌بندی تاریخ و زمان"""
    if dt is None:
        return "-"
    local_tz = pytz.timezone(Config.TIMEZONE)
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(local_tz).strftime("%Y-%m-%d %H:%M:%S")

def format_status(is_active: bool) -> str:
    """قالب‌بندی وضعیت فعال/غیرفعال"""
    return "🟢 فعال" if is_active else "🔴 غیرفعال"
