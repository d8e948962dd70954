from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class AgentOut(BaseModel):
    id: str
    user_id: str
    name: str = Field(..., max_length=200)
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    profile_photo: Optional[str] = None
    credits_balance: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
