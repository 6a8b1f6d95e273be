from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.dependencies import get_current_tutor
from marketplace.models.user import User
from marketplace.schemas.payment import WalletSummaryResponse
from marketplace.services.wallet import WalletService

router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("/summary", response_model=WalletSummaryResponse)
def get_wallet_summary(
    db: Session = Depends(get_db),
    current_tutor: User = Depends(get_current_tutor),
):
    return WalletService(db).get_summary(current_tutor)
