from .checkout import router as checkout_router
from .notification import router as notification_router
from .payments import router as payments_router
from .promo import router as promo_router
from .realtime import router as realtime_router
from .wallet import router as wallet_router

routes = [
    checkout_router,
    promo_router,
    payments_router,
    wallet_router,
    notification_router,
    realtime_router,
]
