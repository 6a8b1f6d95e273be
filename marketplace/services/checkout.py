# marketplace/services/checkout.py
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.decorator import db_exception
from marketplace.core.exceptions import CheckoutError, PaymentGatewayError
from marketplace.models.course import Course
from marketplace.models.course_enrollment import CourseEnrollment
from marketplace.models.group_purchase import (
    GROUP_ACTIVE,
    GROUP_CANCELLED,
    GROUP_PENDING_PAYMENT,
    GroupPurchase,
)
from marketplace.models.transaction import TX_FAILED, TX_PENDING, Transaction
from marketplace.models.user import User
from marketplace.schemas.checkout import (
    CheckoutResponse,
    DirectCourses,
    GroupPurchaseIntent,
)
from marketplace.schemas.pricing import CheckoutTotals, CourseOffering, PromoDescriptor
from marketplace.services.catalog import CatalogService
from marketplace.services.line_items import persist_line_items
from marketplace.services.pricing import compute_checkout_totals
from marketplace.services.promo import PromoService
from marketplace.utils.money import to_decimal, to_minor_units

logger = logging.getLogger(__name__)

INVITE_CODE_ATTEMPTS = 5


def new_reference() -> str:
    return f"ps_{uuid.uuid4()}"


def build_invite_code() -> str:
    return f"GRP-{uuid.uuid4().hex[:8].upper()}"


class CheckoutService:
    """
    Starts payments.

    Creates the PENDING transaction with its priced line items and explicit
    intent, then asks the gateway for a hosted checkout page.
    """

    def __init__(
        self,
        db: Session,
        gateway,
        vat_rate: Optional[Decimal] = None,
        quantum: Optional[Decimal] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.catalog = CatalogService(db)
        self.promos = PromoService(db)
        self.vat_rate = to_decimal(vat_rate if vat_rate is not None else settings.vat_rate)
        self.quantum = to_decimal(quantum if quantum is not None else settings.currency_quantum)

    # ==================== Pricing ====================

    def _load_offerings(self, course_ids: Sequence[int]) -> List[CourseOffering]:
        unique_ids = list(dict.fromkeys(course_ids))
        offerings = self.catalog.get_offerings(unique_ids)
        if len(offerings) != len(unique_ids):
            found = {o.id for o in offerings}
            missing = [cid for cid in unique_ids if cid not in found]
            raise CheckoutError("course_not_found", f"Courses not found: {missing}", 404)
        return offerings

    def quote(
        self, user_id: int, course_ids: Sequence[int], promo_code: Optional[str] = None
    ) -> Tuple[Optional[PromoDescriptor], CheckoutTotals]:
        """Price a cart without creating anything."""
        offerings = self._load_offerings(course_ids)
        promo = None
        if promo_code:
            promo = self.promos.validate(promo_code, user_id, [o.id for o in offerings])
        totals = compute_checkout_totals(offerings, promo, self.vat_rate, self.quantum)
        return promo, totals

    # ==================== Direct checkout ====================

    @db_exception
    def begin_checkout(
        self, user: User, course_ids: Sequence[int], promo_code: Optional[str] = None
    ) -> CheckoutResponse:
        promo, totals = self.quote(user.id, course_ids, promo_code)
        intent = DirectCourses(course_ids=[li.course_id for li in totals.line_items])

        enrolled = (
            self.db.query(CourseEnrollment.course_id)
            .filter(
                CourseEnrollment.user_id == user.id,
                CourseEnrollment.course_id.in_(intent.course_ids),
            )
            .all()
        )
        if enrolled:
            raise CheckoutError(
                "already_enrolled",
                f"Already enrolled in courses: {[row.course_id for row in enrolled]}",
                409,
            )

        if totals.total_amount <= 0:
            raise CheckoutError("invalid_price", "Cart total must be greater than zero")

        reference = new_reference()
        tx = Transaction(
            reference=reference,
            user_id=user.id,
            course_id=intent.course_ids[0],
            course_ids=intent.course_ids,
            amount=totals.total_amount,
            currency=settings.payment_currency,
            status=TX_PENDING,
            payment_method="PAYSTACK",
            description=f"Course purchase: {len(intent.course_ids)} course(s)",
            promo_code_id=promo.id if promo else None,
            meta={"courseIds": intent.course_ids},
        )
        self.db.add(tx)
        self.db.flush()
        persist_line_items(self.db, tx, totals)
        self.db.commit()
        logger.info(f"Checkout {reference} created for user {user.id}: total {totals.total_amount}")

        init = self._initialize_payment(
            tx,
            user,
            totals.total_amount,
            metadata={"courseIds": intent.course_ids, "userId": user.id},
        )
        return CheckoutResponse(
            reference=reference,
            authorization_url=init.authorization_url,
            access_code=init.access_code,
            totals=totals,
        )

    # ==================== Group checkout ====================

    def _ensure_invite_code(self) -> str:
        code = build_invite_code()
        for _ in range(INVITE_CODE_ATTEMPTS):
            exists = (
                self.db.query(GroupPurchase.id)
                .filter(GroupPurchase.invite_code == code)
                .first()
            )
            if not exists:
                return code
            code = build_invite_code()
        return code

    @db_exception
    def begin_group_checkout(
        self, user: User, course_id: int, member_limit: int, group_price: Decimal
    ) -> CheckoutResponse:
        course = self.db.query(Course).filter(Course.id == course_id).first()
        if not course or not course.group_buying_enabled:
            raise CheckoutError(
                "group_not_enabled", "Group purchase is not enabled for this course"
            )

        open_group = (
            self.db.query(GroupPurchase.id)
            .filter(
                GroupPurchase.course_id == course_id,
                GroupPurchase.creator_id == user.id,
                GroupPurchase.status.in_([GROUP_PENDING_PAYMENT, GROUP_ACTIVE]),
            )
            .first()
        )
        if open_group:
            raise CheckoutError(
                "group_exists", "You already have an active group for this course", 409
            )

        enrolled = (
            self.db.query(CourseEnrollment.id)
            .filter(
                CourseEnrollment.user_id == user.id,
                CourseEnrollment.course_id == course_id,
            )
            .first()
        )
        if enrolled:
            raise CheckoutError(
                "already_enrolled", "You are already enrolled in this course", 409
            )

        group = GroupPurchase(
            course_id=course_id,
            creator_id=user.id,
            invite_code=self._ensure_invite_code(),
            status=GROUP_PENDING_PAYMENT,
            member_count=1,
            member_limit=member_limit,
            group_price=group_price,
        )
        self.db.add(group)
        self.db.flush()

        intent = GroupPurchaseIntent(group_purchase_id=group.id)
        totals = compute_checkout_totals(
            [self.catalog.get_group_offering(group)], None, self.vat_rate, self.quantum
        )

        reference = new_reference()
        tx = Transaction(
            reference=reference,
            user_id=user.id,
            course_id=course_id,
            group_purchase_id=intent.group_purchase_id,
            amount=totals.total_amount,
            currency=settings.payment_currency,
            status=TX_PENDING,
            payment_method="PAYSTACK",
            description=f"Group purchase for {course.title}",
            meta={"groupPurchaseId": group.id, "type": "group_purchase"},
        )
        self.db.add(tx)
        self.db.flush()
        persist_line_items(self.db, tx, totals)
        self.db.commit()
        logger.info(f"Group checkout {reference} created: group {group.id} ({group.invite_code})")

        try:
            init = self._initialize_payment(
                tx,
                user,
                totals.total_amount,
                metadata={
                    "groupPurchaseId": group.id,
                    "courseId": course_id,
                    "userId": user.id,
                    "type": "group_purchase",
                },
            )
        except CheckoutError:
            group.status = GROUP_CANCELLED
            self.db.commit()
            raise

        return CheckoutResponse(
            reference=reference,
            authorization_url=init.authorization_url,
            access_code=init.access_code,
            totals=totals,
            group_purchase_id=group.id,
            invite_code=group.invite_code,
        )

    # ==================== Gateway ====================

    def _initialize_payment(self, tx: Transaction, user: User, total: Decimal, metadata: dict):
        try:
            return self.gateway.initialize(
                email=user.email,
                amount_kobo=to_minor_units(total, self.quantum),
                reference=tx.reference,
                metadata=metadata,
            )
        except PaymentGatewayError as e:
            tx.status = TX_FAILED
            tx.meta = {**(tx.meta or {}), "initialize_error": e.message}
            self.db.commit()
            logger.warning(f"Payment initialization failed for {tx.reference}: {e.message}")
            raise CheckoutError("gateway_error", "Could not start payment", 502) from e
