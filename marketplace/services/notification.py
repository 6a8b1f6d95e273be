# marketplace/services/notification.py
import asyncio
import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.models.notification import Notification
from marketplace.schemas.notification import NotificationPayload
from marketplace.utils.tg_service import TelegramService

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def create_for_user(self, user_id: int, payload: NotificationPayload) -> Notification:
        return self._create(payload, user_id=user_id)

    def create_for_role(self, role: str, payload: NotificationPayload) -> Notification:
        return self._create(payload, role=role)

    def _create(
        self,
        payload: NotificationPayload,
        user_id: Optional[int] = None,
        role: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            role=role,
            type=payload.type,
            title=payload.title,
            message=payload.message,
            action_url=payload.action_url,
            action_label=payload.action_label,
            meta=payload.metadata,
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def get_user_notifications(
        self, user_id: int, role: Optional[str] = None, skip: int = 0, limit: int = 20
    ) -> List[Notification]:
        query = self.db.query(Notification)
        if role:
            query = query.filter(
                (Notification.user_id == user_id) | (Notification.role == role)
            )
        else:
            query = query.filter(Notification.user_id == user_id)
        return (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )


class NotificationDispatcher:
    """
    Fire-and-forget delivery used after settlement.

    Each call opens its own session, so it can run on a worker thread after
    the settlement session has committed. Returns False instead of raising.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        telegram: Optional[TelegramService] = None,
        admin_chat_id: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.telegram = telegram
        self.admin_chat_id = admin_chat_id or settings.telegram_admin_chat_id

    def notify_user(self, user_id: int, payload: NotificationPayload) -> bool:
        db = self.session_factory()
        try:
            NotificationService(db).create_for_user(user_id, payload)
            return True
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to notify user {user_id}: {e}")
            return False
        finally:
            db.close()

    def notify_role(self, role: str, payload: NotificationPayload) -> bool:
        db = self.session_factory()
        try:
            NotificationService(db).create_for_role(role, payload)
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to notify role {role}: {e}")
            return False
        finally:
            db.close()

        if self.telegram and self.admin_chat_id:
            message = asyncio.run(
                self.telegram.send_alert(
                    self.admin_chat_id, payload.title, payload.message, payload.action_url
                )
            )
            return message is not None
        return True


def build_dispatcher(session_factory: Callable[[], Session]) -> NotificationDispatcher:
    telegram = None
    if settings.telegram_notification_enabled and settings.telegram_bot_token:
        telegram = TelegramService(settings.telegram_bot_token)
    return NotificationDispatcher(session_factory, telegram=telegram)
