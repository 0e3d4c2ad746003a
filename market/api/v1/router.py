from fastapi import APIRouter

from market.api.v1.endpoints.health import router as health_router
from market.api.v1.endpoints.accounts import router as accounts_router
from market.api.v1.endpoints.contracts import router as contracts_router
from market.api.v1.endpoints.tokens import router as tokens_router
from market.api.v1.endpoints.listings import router as listings_router
from market.api.v1.endpoints.internal import router as internal_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(accounts_router, tags=["accounts"])
router.include_router(contracts_router, tags=["contracts"])
router.include_router(tokens_router, tags=["tokens"])
router.include_router(listings_router, tags=["listings"])
router.include_router(internal_router, tags=["internal"])
