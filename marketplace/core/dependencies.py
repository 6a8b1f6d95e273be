import logging

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from marketplace.core.database import SessionLocal, get_db
from marketplace.core.security import jwt_manager
from marketplace.models.user import ROLE_ADMIN, ROLE_TUTOR, User
from marketplace.services.checkout import CheckoutService
from marketplace.services.notification import build_dispatcher
from marketplace.services.settlement import SettlementService
from marketplace.utils.paystack import PaystackClient

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency that requires a valid Bearer token and returns the active user.
    Raises 401 Unauthorized if the token is missing, invalid, or the user is not found.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = jwt_manager.verify_token(credentials.credentials, "access")
    user_id = payload.get("user_id")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: Not a valid user token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")

    return user


async def get_current_tutor(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role not in (ROLE_TUTOR, ROLE_ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Tutor access required"
        )
    return current_user


# -----------------------
# Collaborators
# -----------------------
def get_payment_gateway() -> PaystackClient:
    return PaystackClient()


def get_realtime(request: Request):
    return getattr(request.app.state, "realtime", None)


def get_side_effect_runner(request: Request):
    return getattr(request.app.state, "side_effects", None)


def get_settlement_service(
    db: Session = Depends(get_db),
    gateway=Depends(get_payment_gateway),
    realtime=Depends(get_realtime),
    side_effects=Depends(get_side_effect_runner),
) -> SettlementService:
    return SettlementService(
        db,
        verifier=gateway,
        notifier=build_dispatcher(SessionLocal),
        realtime=realtime,
        side_effects=side_effects,
    )


def get_checkout_service(
    db: Session = Depends(get_db),
    gateway=Depends(get_payment_gateway),
) -> CheckoutService:
    return CheckoutService(db, gateway)

