from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from marketplace.core.config import settings
from marketplace.core.dependencies import get_checkout_service, get_current_user
from marketplace.core.limiter import limiter
from marketplace.models.user import User
from marketplace.schemas.checkout import (
    CheckoutRequest,
    CheckoutResponse,
    GroupCheckoutRequest,
)
from marketplace.services.checkout import CheckoutService

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("/", response_model=CheckoutResponse)
@limiter.limit(settings.rate_limit)
async def begin_checkout(
    request: Request,
    checkout_in: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    return await run_in_threadpool(
        service.begin_checkout, current_user, checkout_in.course_ids, checkout_in.promo_code
    )


@router.post("/group", response_model=CheckoutResponse)
@limiter.limit(settings.rate_limit)
async def begin_group_checkout(
    request: Request,
    checkout_in: GroupCheckoutRequest,
    current_user: User = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    return await run_in_threadpool(
        service.begin_group_checkout,
        current_user,
        checkout_in.course_id,
        checkout_in.member_limit,
        checkout_in.group_price,
    )
