import os
import tempfile
from datetime import datetime, timezone
from decimal import Decimal

# Point the app at a throw-away SQLite file before anything imports settings
_TEST_DIR = tempfile.mkdtemp(prefix="marketplace-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'marketplace.db')}"
os.environ["LOG_FILE"] = os.path.join(_TEST_DIR, "app.log")
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_secret"
os.environ["RATE_LIMIT"] = "1000/minute"
os.environ["RECONCILE_ENABLED"] = "false"
os.environ["TELEGRAM_NOTIFICATION_ENABLED"] = "false"
os.environ["REDIS_URL"] = ""

import pytest

from marketplace.core.database import Base, SessionLocal, engine
from marketplace.core.exceptions import PaymentGatewayError
from marketplace.models import Course, User
from marketplace.schemas.payment import PaymentInitialization, PaymentVerification


# -----------------------
# Collaborator fakes
# -----------------------
class FakeGateway:
    """Stands in for PaystackClient: scripted verify results, recorded initialize calls."""

    def __init__(self, status="success", amount=None, metadata=None, error=None):
        self.status = status
        self.amount = amount
        self.metadata = metadata or {}
        self.error = error
        self.verify_calls = []
        self.initialize_calls = []
        self.initialize_error = None

    def verify(self, reference):
        self.verify_calls.append(reference)
        if self.error is not None:
            raise self.error
        return PaymentVerification(
            status=self.status,
            reference=reference,
            amount=self.amount if self.amount is not None else 0,
            currency="NGN",
            paid_at=datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc),
            channel="card",
            metadata=self.metadata,
            raw={"status": self.status, "reference": reference},
        )

    def initialize(self, email, amount_kobo, reference, callback_url=None, metadata=None):
        if self.initialize_error is not None:
            raise self.initialize_error
        self.initialize_calls.append(
            {
                "email": email,
                "amount_kobo": amount_kobo,
                "reference": reference,
                "metadata": metadata,
            }
        )
        return PaymentInitialization(
            authorization_url=f"https://checkout.paystack.com/{reference}",
            access_code="ac_test",
            reference=reference,
        )


class FakeNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.user_notifications = []
        self.role_notifications = []

    def notify_user(self, user_id, payload):
        if self.fail:
            raise RuntimeError("notification store unavailable")
        self.user_notifications.append((user_id, payload))
        return True

    def notify_role(self, role, payload):
        if self.fail:
            raise RuntimeError("notification store unavailable")
        self.role_notifications.append((role, payload))
        return True


class FakeRealtime:
    def __init__(self):
        self.refreshes = []

    def refresh_membership(self, user_id, leave=(), join=()):
        self.refreshes.append({"user_id": user_id, "leave": list(leave), "join": list(join)})
        return 0


# -----------------------
# Database
# -----------------------
@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def realtime():
    return FakeRealtime()


@pytest.fixture
def gateway_error():
    return PaymentGatewayError("Paystack request failed: timed out")


# -----------------------
# Factories
# -----------------------
@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def factory(role="user", full_name=None):
        counter["n"] += 1
        user = User(
            email=f"{role}{counter['n']}@example.com",
            full_name=full_name or f"{role.title()} {counter['n']}",
            role=role,
            wallet_balance=Decimal("0"),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def make_course(db):
    def factory(tutor, price, base_price=None, title=None, group_buying_enabled=False):
        course = Course(
            title=title or f"Course by {tutor.full_name}",
            tutor_id=tutor.id,
            base_price=base_price,
            current_price=Decimal(str(price)) if price is not None else None,
            price=Decimal(str(price)) if price is not None else None,
            group_buying_enabled=group_buying_enabled,
        )
        db.add(course)
        db.commit()
        db.refresh(course)
        return course

    return factory


@pytest.fixture
def buyer(make_user):
    return make_user("user", full_name="Ada Buyer")


@pytest.fixture
def tutor_a(make_user):
    return make_user("tutor", full_name="Tunde Tutor")


@pytest.fixture
def tutor_b(make_user):
    return make_user("tutor", full_name="Bisi Tutor")
