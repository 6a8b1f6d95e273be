from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.dependencies import get_current_user
from marketplace.models.user import User
from marketplace.schemas.notification import NotificationResponse
from marketplace.services.notification import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/me", response_model=List[NotificationResponse])
def get_my_notifications(
    skip: int = 0,
    limit: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service = NotificationService(db)
    return service.get_user_notifications(current_user.id, current_user.role, skip, limit)
