# shopcatalog/models/base.py
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict

class ReadModel(BaseModel):
    """Base for models built from store records and asyncpg rows"""
    model_config = ConfigDict(from_attributes=True)

class TimeStampedModel(ReadModel):
    """Base model with store-maintained timestamp fields"""
    created_at: datetime
    updated_at: Optional[datetime] = None
