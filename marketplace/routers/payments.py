import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from marketplace.core.config import settings
from marketplace.core.dependencies import get_settlement_service
from marketplace.core.limiter import limiter
from marketplace.services.settlement import SettlementService
from marketplace.utils.paystack import verify_webhook_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments/paystack", tags=["Payments"])


@router.post("/finalize")
@limiter.limit(settings.rate_limit)
async def finalize_payment(
    request: Request,
    service: SettlementService = Depends(get_settlement_service),
):
    """
    Called by the checkout redirect page. The reference comes from the JSON
    body or, failing that, the query string.
    """
    try:
        body = await request.json()
    except ValueError:
        body = {}
    reference = body.get("reference") if isinstance(body, dict) else None
    reference = reference or request.query_params.get("reference")

    if not reference:
        return JSONResponse(
            status_code=400, content={"ok": False, "reason": "missing_reference"}
        )

    result = await run_in_threadpool(service.finalize_by_reference, reference)
    return result.model_dump(by_alias=True)


@router.post("/webhook")
@limiter.limit(settings.rate_limit)
async def paystack_webhook(
    request: Request,
    service: SettlementService = Depends(get_settlement_service),
):
    raw_body = await request.body()
    signature = request.headers.get("x-paystack-signature")
    if not verify_webhook_signature(raw_body, signature):
        logger.warning("Rejected Paystack webhook with invalid signature")
        return JSONResponse(status_code=401, content={"ok": False})

    try:
        event = json.loads(raw_body)
    except ValueError:
        return JSONResponse(
            status_code=400, content={"ok": False, "reason": "invalid_payload"}
        )

    if event.get("event") == "charge.success":
        reference = (event.get("data") or {}).get("reference")
        if reference:
            result = await run_in_threadpool(service.finalize_by_reference, reference)
            logger.info(f"Webhook finalize for {reference}: ok={result.ok} reason={result.reason}")

    return {"ok": True}
