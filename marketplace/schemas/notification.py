from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationPayload(BaseModel):
    type: str = Field(default="info")  # info, success, warning, error, course, payment, system
    title: str = Field(..., max_length=200)
    message: str
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class NotificationResponse(BaseModel):
    id: int
    user_id: Optional[int]
    role: Optional[str]
    type: str
    title: str
    message: str
    action_url: Optional[str]
    action_label: Optional[str]
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
