# marketplace/services/promo.py
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from marketplace.core.exceptions import CheckoutError
from marketplace.models.promo_code import PromoCode, PromoRedemption
from marketplace.schemas.pricing import PromoDescriptor
from marketplace.services.catalog import CatalogService
from marketplace.services.pricing import promo_applies_to_course

logger = logging.getLogger(__name__)


def normalize_promo_code(code: str) -> str:
    return (code or "").strip().upper()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PromoService:
    def __init__(self, db: Session):
        self.db = db

    def validate(
        self,
        code: str,
        user_id: int,
        course_ids: Sequence[int],
        now: Optional[datetime] = None,
    ) -> PromoDescriptor:
        """
        Check that ``code`` can be used by ``user_id`` for a cart of ``course_ids``.

        Raises:
            CheckoutError: with reason invalid_code, inactive, not_started,
                expired, not_applicable, not_allowed, maxed_out or user_limit
        """
        normalized = normalize_promo_code(code)
        if not normalized:
            raise CheckoutError("invalid_code", "Promo code is empty")

        promo = (
            self.db.query(PromoCode)
            .options(selectinload(PromoCode.allowed_users))
            .filter(PromoCode.code == normalized)
            .first()
        )
        if not promo or not promo.is_active:
            raise CheckoutError("inactive", "Promo code is not active")

        now = now or datetime.now(timezone.utc)
        if promo.starts_at and _as_utc(promo.starts_at) > now:
            raise CheckoutError("not_started", "Promo code is not active yet")
        if promo.ends_at and _as_utc(promo.ends_at) < now:
            raise CheckoutError("expired", "Promo code has expired")

        descriptor = PromoDescriptor.model_validate(promo)
        offerings = CatalogService(self.db).get_offerings(course_ids)
        if not any(promo_applies_to_course(descriptor, course) for course in offerings):
            raise CheckoutError("not_applicable", "Promo code does not apply to this cart")

        if promo.allowed_users:
            if not any(allowed.user_id == user_id for allowed in promo.allowed_users):
                raise CheckoutError("not_allowed", "Promo code is not available to you")

        if promo.max_redemptions:
            total = (
                self.db.query(func.count(PromoRedemption.id))
                .filter(PromoRedemption.promo_code_id == promo.id)
                .scalar()
            )
            if total >= promo.max_redemptions:
                raise CheckoutError("maxed_out", "Promo code has been fully redeemed")

        if promo.per_user_limit:
            used = (
                self.db.query(func.count(PromoRedemption.id))
                .filter(
                    PromoRedemption.promo_code_id == promo.id,
                    PromoRedemption.user_id == user_id,
                )
                .scalar()
            )
            if used >= promo.per_user_limit:
                raise CheckoutError("user_limit", "You have already used this promo code")

        logger.info(f"Promo {promo.code} validated for user {user_id}")
        return descriptor

    def get_descriptor(self, promo_code_id: Optional[int]) -> Optional[PromoDescriptor]:
        """Snapshot of a promo already attached to a transaction."""
        if not promo_code_id:
            return None
        promo = self.db.query(PromoCode).filter(PromoCode.id == promo_code_id).first()
        if promo is None:
            logger.warning(f"Promo code {promo_code_id} referenced but not found")
            return None
        return PromoDescriptor.model_validate(promo)
