from fastapi import APIRouter, Depends, Request

from marketplace.core.config import settings
from marketplace.core.dependencies import get_checkout_service, get_current_user
from marketplace.core.limiter import limiter
from marketplace.models.user import User
from marketplace.schemas.checkout import PromoValidateRequest, PromoValidateResponse
from marketplace.services.checkout import CheckoutService

router = APIRouter(prefix="/promos", tags=["Promo Codes"])


@router.post("/validate", response_model=PromoValidateResponse)
@limiter.limit(settings.rate_limit)
def validate_promo(
    request: Request,
    promo_in: PromoValidateRequest,
    current_user: User = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Check a promo code against a cart and return the discounted quote."""
    promo, totals = service.quote(current_user.id, promo_in.course_ids, promo_in.code)
    return PromoValidateResponse(ok=True, promo=promo, totals=totals)
