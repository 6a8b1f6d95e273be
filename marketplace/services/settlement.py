# marketplace/services/settlement.py
"""
Payment settlement.

``SettlementService.finalize_by_reference`` turns a verified gateway charge
into enrollments, ledger rows and tutor credit. It is called from the
checkout redirect, the webhook and the reconcile sweep, possibly at the same
time for the same reference, and every call after the first is a no-op.

The flow is:

1. Load the transaction. Terminal states return immediately.
2. Verify with the gateway, outside any database transaction.
3. Apply every state change in one database transaction, starting with a
   per-transaction settlement marker so only one caller can ever apply.
4. After commit, run notifications and realtime refresh best-effort.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.database import SessionLocal, insert_if_absent
from marketplace.core.exceptions import (
    ApplyUnitFailure,
    PaymentGatewayError,
    SettlementError,
    TransactionNotFound,
    VerificationFailed,
    VerificationIndeterminate,
)
from marketplace.models.cart_item import CartItem
from marketplace.models.course import Course
from marketplace.models.course_enrollment import CourseEnrollment
from marketplace.models.group_purchase import (
    GROUP_ACTIVE,
    GROUP_PENDING_PAYMENT,
    GroupPurchase,
)
from marketplace.models.learner_profile import LearnerProfile
from marketplace.models.ledger import (
    EARNING_AVAILABLE,
    SettlementMarker,
    TutorEarning,
    VatLedger,
)
from marketplace.models.promo_code import PromoRedemption
from marketplace.models.transaction import (
    TX_COMPLETED,
    TX_FAILED,
    TX_PENDING,
    Transaction,
    TransactionLineItem,
)
from marketplace.models.user import ROLE_ADMIN, ROLE_LEARNER, ROLE_USER, User
from marketplace.schemas.checkout import GroupPurchaseIntent, resolve_checkout_intent
from marketplace.schemas.notification import NotificationPayload
from marketplace.schemas.payment import (
    REASON_ERROR,
    REASON_FAILED,
    PaymentVerification,
    SettlementResult,
)
from marketplace.services.catalog import CatalogService
from marketplace.services.line_items import persist_line_items
from marketplace.services.notification import NotificationDispatcher, build_dispatcher
from marketplace.services.pricing import compute_checkout_totals
from marketplace.services.promo import PromoService
from marketplace.services.side_effects import SideEffectRunner
from marketplace.utils.money import ZERO, sum_currency, to_decimal, to_minor_units
from marketplace.utils.paystack import PaystackClient

logger = logging.getLogger(__name__)


class AppliedSettlement:
    """Plain snapshot of a committed settlement, safe to use after the session moves on."""

    def __init__(
        self,
        reference: str,
        user_id: int,
        course_ids: List[int],
        course_titles: Dict[int, str],
        tutor_credits: List[Dict[str, Any]],
        total_amount: Decimal,
        promoted: bool = False,
        group_purchase_id: Optional[int] = None,
        invite_code: Optional[str] = None,
        primary_course_id: Optional[int] = None,
    ):
        self.reference = reference
        self.user_id = user_id
        self.course_ids = course_ids
        self.course_titles = course_titles
        self.tutor_credits = tutor_credits
        self.total_amount = total_amount
        self.promoted = promoted
        self.group_purchase_id = group_purchase_id
        self.invite_code = invite_code
        self.primary_course_id = primary_course_id

    @property
    def is_group(self) -> bool:
        return self.group_purchase_id is not None


class SettlementService:
    def __init__(
        self,
        db: Session,
        verifier,
        notifier: Optional[NotificationDispatcher] = None,
        realtime=None,
        catalog: Optional[CatalogService] = None,
        side_effects: Optional[SideEffectRunner] = None,
        vat_rate: Optional[Decimal] = None,
        quantum: Optional[Decimal] = None,
    ):
        self.db = db
        self.verifier = verifier
        self.notifier = notifier
        self.realtime = realtime
        self.catalog = catalog or CatalogService(db)
        self.side_effects = side_effects
        self.vat_rate = to_decimal(vat_rate if vat_rate is not None else settings.vat_rate)
        self.quantum = to_decimal(quantum if quantum is not None else settings.currency_quantum)

    # ==================== Entry point ====================

    def finalize_by_reference(self, reference: str) -> SettlementResult:
        """
        Settle the transaction recorded under ``reference``.

        Never raises. Safe to call any number of times, concurrently, from
        any trigger.
        """
        try:
            return self._finalize(reference)
        except SettlementError as e:
            logger.warning(f"Settlement of {reference} stopped ({e.reason}): {e.message}")
            return SettlementResult(ok=False, reason=e.reason)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Unexpected settlement error for {reference}: {e}", exc_info=True)
            return SettlementResult(ok=False, reason=REASON_ERROR)

    def _finalize(self, reference: str) -> SettlementResult:
        tx = self._load(reference)

        if tx.status == TX_COMPLETED:
            logger.info(f"Transaction {reference} already settled")
            return self._already_done(tx)
        if tx.status == TX_FAILED:
            return SettlementResult(ok=False, reason=REASON_FAILED)

        tx_id = tx.id
        expected_total = tx.total_amount if tx.total_amount is not None else tx.amount
        # No open transaction while the gateway is being called
        self.db.rollback()

        verification = self._verify(reference)
        if not verification.is_success:
            if verification.is_pending:
                raise VerificationIndeterminate(
                    f"Payment is still {verification.status}", reference
                )
            self._mark_failed(tx_id, verification)
            raise VerificationFailed(
                f"Gateway reported status '{verification.status}'",
                reference,
                payload=verification.raw,
            )

        self._check_amount(reference, expected_total, verification)

        applied = self._apply(tx_id, verification)
        if applied is None:
            tx = self._load(reference)
            return self._already_done(tx)

        logger.info(
            f"Transaction {reference} settled: {len(applied.tutor_credits)} tutor credit(s), "
            f"total {applied.total_amount}"
        )
        self._after_commit(applied)

        return SettlementResult(
            ok=True,
            course_id=applied.primary_course_id,
            group_purchase_id=applied.group_purchase_id,
        )

    # ==================== Lookup and verification ====================

    def _load(self, reference: str) -> Transaction:
        tx = self.db.query(Transaction).filter(Transaction.reference == reference).first()
        if not tx:
            raise TransactionNotFound(f"No transaction for reference {reference}", reference)
        return tx

    @staticmethod
    def _already_done(tx: Transaction) -> SettlementResult:
        course_id = tx.course_id
        if course_id is None and tx.course_ids:
            course_id = tx.course_ids[0]
        return SettlementResult(
            ok=True,
            already_done=True,
            course_id=course_id,
            group_purchase_id=tx.group_purchase_id,
        )

    def _verify(self, reference: str) -> PaymentVerification:
        try:
            return self.verifier.verify(reference)
        except PaymentGatewayError as e:
            raise VerificationIndeterminate(e.message, reference) from e
        except Exception as e:
            raise VerificationIndeterminate(f"Verification error: {e}", reference) from e

    def _mark_failed(self, tx_id: int, verification: PaymentVerification) -> None:
        try:
            tx = (
                self.db.query(Transaction)
                .filter(Transaction.id == tx_id)
                .with_for_update()
                .one()
            )
            # A concurrent caller may have settled it meanwhile
            if tx.status == TX_PENDING:
                tx.status = TX_FAILED
                tx.meta = {**(tx.meta or {}), "verify": verification.raw}
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _check_amount(
        self,
        reference: str,
        expected_total: Optional[Decimal],
        verification: PaymentVerification,
    ) -> None:
        if expected_total is None:
            return
        expected = to_minor_units(expected_total, self.quantum)
        if verification.amount != expected:
            logger.warning(
                f"Amount mismatch for {reference}: expected {expected}, "
                f"gateway reported {verification.amount}"
            )

    # ==================== Apply unit ====================

    def _apply(
        self, tx_id: int, verification: PaymentVerification
    ) -> Optional[AppliedSettlement]:
        """
        Every state change of a settlement, committed together or not at all.
        Returns None when another caller already applied it.
        """
        try:
            tx = (
                self.db.query(Transaction)
                .filter(Transaction.id == tx_id)
                .with_for_update()
                .one()
            )
            if tx.status == TX_COMPLETED:
                self.db.rollback()
                return None
            if tx.status == TX_FAILED:
                self.db.rollback()
                raise VerificationFailed("Transaction already failed", tx.reference)

            claimed = insert_if_absent(
                self.db,
                SettlementMarker,
                {"transaction_id": tx.id},
                ["transaction_id"],
            )
            if not claimed:
                self.db.rollback()
                return None

            paid_at = verification.paid_at or datetime.now(timezone.utc)
            tx.status = TX_COMPLETED
            tx.payment_id = verification.reference
            tx.payment_date = paid_at
            tx.meta = {**(tx.meta or {}), "verify": verification.raw}

            intent = resolve_checkout_intent(tx, verification.metadata)
            group = None
            if isinstance(intent, GroupPurchaseIntent):
                group = self._activate_group(intent.group_purchase_id, paid_at)
                tx.group_purchase_id = group.id

            line_items = self._ensure_line_items(tx, intent, group)

            promoted = False
            if group is None:
                course_ids = intent.course_ids or [li.course_id for li in line_items]
                self._grant_enrollments(tx, course_ids, line_items)
                promoted = self._promote_buyer(tx.user_id)
            else:
                course_ids = [group.course_id]
            # Later finalize calls report from the row, not from gateway metadata
            if not tx.course_ids and group is None:
                tx.course_ids = list(course_ids)
            if tx.course_id is None and course_ids:
                tx.course_id = course_ids[0]

            self._record_vat(tx)
            self._record_promo_redemption(tx, line_items)
            tutor_credits = self._credit_tutors(tx, line_items)

            applied = AppliedSettlement(
                reference=tx.reference,
                user_id=tx.user_id,
                course_ids=list(course_ids),
                course_titles=self._course_titles(course_ids),
                tutor_credits=tutor_credits,
                total_amount=to_decimal(tx.total_amount if tx.total_amount is not None else tx.amount),
                promoted=promoted,
                group_purchase_id=group.id if group else None,
                invite_code=group.invite_code if group else None,
                primary_course_id=tx.course_id or (course_ids[0] if course_ids else None),
            )

            self.db.commit()
            return applied

        except SettlementError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Settlement apply failed for transaction {tx_id}: {e}", exc_info=True)
            raise ApplyUnitFailure(f"Apply unit rolled back: {e}") from e

    def _activate_group(self, group_purchase_id: int, paid_at: datetime) -> GroupPurchase:
        group = (
            self.db.query(GroupPurchase)
            .filter(GroupPurchase.id == group_purchase_id)
            .with_for_update()
            .first()
        )
        if not group:
            raise ApplyUnitFailure(f"Group purchase {group_purchase_id} not found")
        if group.status == GROUP_PENDING_PAYMENT:
            group.status = GROUP_ACTIVE
        group.paid_at = paid_at
        return group

    def _ensure_line_items(
        self, tx: Transaction, intent, group: Optional[GroupPurchase]
    ) -> List[TransactionLineItem]:
        """Line items priced at checkout, or priced now for older transactions."""
        existing = (
            self.db.query(TransactionLineItem)
            .filter(TransactionLineItem.transaction_id == tx.id)
            .order_by(TransactionLineItem.id)
            .all()
        )
        if existing:
            return existing

        if group is not None:
            offerings = [self.catalog.get_group_offering(group)]
        else:
            offerings = self.catalog.get_offerings(intent.course_ids)

        promo = PromoService(self.db).get_descriptor(tx.promo_code_id)
        totals = compute_checkout_totals(offerings, promo, self.vat_rate, self.quantum)
        logger.info(f"Priced {len(totals.line_items)} line item(s) for {tx.reference} at settlement")
        return persist_line_items(self.db, tx, totals)

    def _grant_enrollments(
        self,
        tx: Transaction,
        course_ids: List[int],
        line_items: List[TransactionLineItem],
    ) -> None:
        paid_by_course = {li.course_id: li.total_amount for li in line_items}
        now = datetime.now(timezone.utc)

        for course_id in course_ids:
            created = insert_if_absent(
                self.db,
                CourseEnrollment,
                {
                    "user_id": tx.user_id,
                    "course_id": course_id,
                    "status": "ACTIVE",
                    "enrollment_type": "paid",
                    "price_paid": paid_by_course.get(course_id),
                    "payment_reference": tx.reference,
                    "enrolled_at": now,
                },
                ["user_id", "course_id"],
            )
            if not created:
                logger.info(f"User {tx.user_id} already enrolled in course {course_id}")

        if course_ids:
            self.db.query(CartItem).filter(
                CartItem.user_id == tx.user_id,
                CartItem.course_id.in_(course_ids),
            ).delete(synchronize_session=False)

    def _record_vat(self, tx: Transaction) -> None:
        vat_amount = to_decimal(tx.vat_amount)
        if vat_amount <= 0:
            return
        insert_if_absent(
            self.db,
            VatLedger,
            {"transaction_id": tx.id, "amount": vat_amount, "rate": self.vat_rate},
            ["transaction_id"],
        )

    def _record_promo_redemption(
        self, tx: Transaction, line_items: List[TransactionLineItem]
    ) -> None:
        if not tx.promo_code_id:
            return
        if not any(li.promo_code_id == tx.promo_code_id for li in line_items):
            logger.warning(
                f"Promo {tx.promo_code_id} on {tx.reference} discounted nothing; not redeemed"
            )
            return
        insert_if_absent(
            self.db,
            PromoRedemption,
            {
                "promo_code_id": tx.promo_code_id,
                "transaction_id": tx.id,
                "user_id": tx.user_id,
                "discount_amount": to_decimal(tx.discount_amount),
            },
            ["promo_code_id", "transaction_id"],
        )

    def _credit_tutors(
        self, tx: Transaction, line_items: List[TransactionLineItem]
    ) -> List[Dict[str, Any]]:
        """One earning per line item; the wallet moves only when the earning is new."""
        credits = []
        for li in line_items:
            amount = to_decimal(li.tutor_share_amount)
            created = insert_if_absent(
                self.db,
                TutorEarning,
                {
                    "transaction_id": tx.id,
                    "line_item_id": li.id,
                    "tutor_id": li.tutor_id,
                    "course_id": li.course_id,
                    "amount": amount,
                    "split_percent": li.split_percent,
                    "status": EARNING_AVAILABLE,
                },
                ["transaction_id", "line_item_id"],
            )
            if not created:
                continue

            if amount > ZERO:
                self.db.execute(
                    update(User)
                    .where(User.id == li.tutor_id)
                    .values(wallet_balance=User.wallet_balance + amount)
                    .execution_options(synchronize_session=False)
                )
            credits.append(
                {"tutor_id": li.tutor_id, "course_id": li.course_id, "amount": amount}
            )
        return credits

    def _promote_buyer(self, user_id: int) -> bool:
        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.role == ROLE_USER)
            .values(role=ROLE_LEARNER)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        insert_if_absent(
            self.db,
            LearnerProfile,
            {"user_id": user_id, "interests": [], "goals": []},
            ["user_id"],
        )
        logger.info(f"User {user_id} promoted to learner")
        return True

    def _course_titles(self, course_ids: List[int]) -> Dict[int, str]:
        if not course_ids:
            return {}
        rows = self.db.query(Course.id, Course.title).filter(Course.id.in_(course_ids)).all()
        return {row.id: row.title for row in rows}

    # ==================== After commit ====================

    def _after_commit(self, applied: AppliedSettlement) -> None:
        effects = []

        if applied.is_group:
            effects.append(("notify_group_invite", lambda: self._notify_group_invite(applied)))
        else:
            if self.realtime is not None:
                effects.append(("realtime_refresh", lambda: self._refresh_realtime(applied)))
            effects.append(("notify_buyer", lambda: self._notify_buyer(applied)))

        for tutor_id, credits in self._credits_by_tutor(applied).items():
            effects.append(
                (
                    f"notify_tutor_{tutor_id}",
                    lambda tutor_id=tutor_id, credits=credits: self._notify_tutor(
                        applied, tutor_id, credits
                    ),
                )
            )
        effects.append(("notify_admins", lambda: self._notify_admins(applied)))

        if self.notifier is None:
            effects = [e for e in effects if e[0] == "realtime_refresh"]
        if not effects:
            return

        if self.side_effects is None:
            for name, effect in effects:
                try:
                    effect()
                except Exception as e:
                    logger.warning(f"Side effect '{name}' failed: {e}", exc_info=True)
            return

        unfinished = self.side_effects.run(effects)
        if unfinished:
            logger.warning(
                f"Side effects for {applied.reference} not confirmed: {', '.join(unfinished)}"
            )

    def _refresh_realtime(self, applied: AppliedSettlement) -> None:
        leave = [f"role:{ROLE_USER}"] if applied.promoted else []
        join = [f"course:{course_id}" for course_id in applied.course_ids]
        if applied.promoted:
            join.append(f"role:{ROLE_LEARNER}")
        touched = self.realtime.refresh_membership(applied.user_id, leave=leave, join=join)
        logger.debug(f"Realtime refresh reached {touched} connection(s) for user {applied.user_id}")

    def _titles_text(self, applied: AppliedSettlement) -> str:
        titles = [applied.course_titles.get(cid, f"course #{cid}") for cid in applied.course_ids]
        return ", ".join(titles)

    def _notify_buyer(self, applied: AppliedSettlement) -> None:
        action_url = (
            f"/courses/{applied.course_ids[0]}" if len(applied.course_ids) == 1 else "/my-courses"
        )
        self.notifier.notify_user(
            applied.user_id,
            NotificationPayload(
                type="payment",
                title="Payment Successful",
                message=f"You are now enrolled in {self._titles_text(applied)}.",
                action_url=action_url,
                action_label="Start learning",
                metadata={"reference": applied.reference, "courseIds": applied.course_ids},
            ),
        )

    def _notify_group_invite(self, applied: AppliedSettlement) -> None:
        self.notifier.notify_user(
            applied.user_id,
            NotificationPayload(
                type="payment",
                title="Group Purchase Started",
                message=(
                    f"Your group for {self._titles_text(applied)} is active. "
                    f"Share invite code {applied.invite_code} with your friends."
                ),
                action_url=f"/group/{applied.invite_code}",
                action_label="Invite friends",
                metadata={
                    "reference": applied.reference,
                    "groupPurchaseId": applied.group_purchase_id,
                    "inviteCode": applied.invite_code,
                },
            ),
        )

    @staticmethod
    def _credits_by_tutor(applied: AppliedSettlement) -> Dict[int, List[Dict[str, Any]]]:
        """Positive credits grouped by tutor, in line item order."""
        grouped: Dict[int, List[Dict[str, Any]]] = {}
        for credit in applied.tutor_credits:
            if credit["amount"] > ZERO:
                grouped.setdefault(credit["tutor_id"], []).append(credit)
        return grouped

    def _notify_tutor(
        self, applied: AppliedSettlement, tutor_id: int, credits: List[Dict[str, Any]]
    ) -> None:
        course_ids = [credit["course_id"] for credit in credits]
        titles = ", ".join(
            applied.course_titles.get(course_id, f"course #{course_id}") for course_id in course_ids
        )
        amount = sum_currency((credit["amount"] for credit in credits), self.quantum)
        noun, verb = ("course", "was") if len(credits) == 1 else ("courses", "were")
        self.notifier.notify_user(
            tutor_id,
            NotificationPayload(
                type="course",
                title="Course Purchase",
                message=f"Your {noun} {titles} {verb} purchased. {amount} was added to your wallet.",
                action_url="/tutor/wallet",
                action_label="View wallet",
                metadata={"courseIds": course_ids, "reference": applied.reference},
            ),
        )

    def _notify_admins(self, applied: AppliedSettlement) -> None:
        kind = "Group purchase" if applied.is_group else "Course sale"
        self.notifier.notify_role(
            ROLE_ADMIN,
            NotificationPayload(
                type="system",
                title=kind,
                message=f"{kind} {applied.reference} settled: {self._titles_text(applied)} ({applied.total_amount}).",
                metadata={"reference": applied.reference, "userId": applied.user_id},
            ),
        )


def build_settlement_service(
    db: Session,
    realtime=None,
    side_effects: Optional[SideEffectRunner] = None,
    verifier=None,
) -> SettlementService:
    """Wire a settlement service with the production gateway and notifier."""
    return SettlementService(
        db,
        verifier=verifier or PaystackClient(),
        notifier=build_dispatcher(SessionLocal),
        realtime=realtime,
        side_effects=side_effects,
    )
