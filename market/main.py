from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from market.api.v1.router import router as v1_router
from market.core.errors import MarketError
from market.core.telemetry import setup_telemetry

app = FastAPI(title="Sale Hub API", version="0.1.0")


@app.exception_handler(MarketError)
async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    # the call's savepoint is already rolled back; the request session discards the rest
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


setup_telemetry(app)
app.include_router(v1_router)
