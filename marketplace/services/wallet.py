# marketplace/services/wallet.py
from sqlalchemy import func
from sqlalchemy.orm import Session

from marketplace.models.ledger import TutorEarning
from marketplace.models.user import User
from marketplace.schemas.payment import WalletSummaryResponse
from marketplace.utils.money import to_decimal


class WalletService:
    def __init__(self, db: Session):
        self.db = db

    def get_summary(self, tutor: User) -> WalletSummaryResponse:
        total, count = (
            self.db.query(
                func.coalesce(func.sum(TutorEarning.amount), 0),
                func.count(TutorEarning.id),
            )
            .filter(TutorEarning.tutor_id == tutor.id)
            .one()
        )
        balance = (
            self.db.query(User.wallet_balance).filter(User.id == tutor.id).scalar()
        )
        return WalletSummaryResponse(
            available_balance=to_decimal(balance),
            total_earnings=to_decimal(total),
            earnings_count=count,
        )
