from unittest.mock import AsyncMock, MagicMock

from marketplace.core.database import SessionLocal
from marketplace.models import Notification
from marketplace.schemas.notification import NotificationPayload
from marketplace.services.notification import NotificationDispatcher, NotificationService
from marketplace.utils.tg_service import format_alert

SALE = NotificationPayload(
    type="payment",
    title="Course Purchase",
    message="Ada bought <Intro to Python>",
    action_url="/admin/transactions/ps_abc",
)


def test_format_alert_escapes_html():
    assert format_alert("Sale & refund", "a <b> c") == "<b>Sale &amp; refund</b>\na &lt;b&gt; c"
    assert format_alert("T", "m", "/x?a=1&b=2").endswith("\n/x?a=1&amp;b=2")


def test_role_notification_is_mirrored_to_telegram(db):
    telegram = MagicMock()
    telegram.send_alert = AsyncMock(return_value=object())
    dispatcher = NotificationDispatcher(SessionLocal, telegram=telegram, admin_chat_id="-100")

    assert dispatcher.notify_role("admin", SALE) is True

    telegram.send_alert.assert_awaited_once_with(
        "-100", "Course Purchase", SALE.message, "/admin/transactions/ps_abc"
    )
    assert db.query(Notification).filter_by(role="admin").count() == 1


def test_rejected_telegram_alert_reports_failure(db):
    telegram = MagicMock()
    telegram.send_alert = AsyncMock(return_value=None)
    dispatcher = NotificationDispatcher(SessionLocal, telegram=telegram, admin_chat_id="-100")

    assert dispatcher.notify_role("admin", SALE) is False
    assert db.query(Notification).count() == 1


def test_user_sees_own_and_role_notifications(db, buyer, make_user):
    other = make_user("user")
    service = NotificationService(db)
    service.create_for_user(buyer.id, SALE)
    service.create_for_user(other.id, SALE)
    service.create_for_role("user", NotificationPayload(title="Maintenance", message="Sunday"))

    mine = service.get_user_notifications(buyer.id)
    with_role = service.get_user_notifications(buyer.id, role="user")

    assert [n.title for n in mine] == ["Course Purchase"]
    assert sorted(n.title for n in with_role) == ["Course Purchase", "Maintenance"]
