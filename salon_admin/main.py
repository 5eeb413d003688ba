import asyncio
import logging
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from .booking_detail import InvalidTransition
from .breaker import CircuitBreaker
from .config import LOG_LEVEL, STORE_KEY, STORE_URL
from .deps import get_breakers
from .errors import DataAccessError, NotFoundError, ValidationError
from .middleware import RequestLoggingMiddleware
from .redis_client import redis_client
from .routes import router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "System", "description": "Operational endpoints (health, breakers)."},
    {"name": "Bookings", "description": "Booking lists, detail, edit and delete."},
    {"name": "Services", "description": "Service catalogue."},
    {"name": "Clients", "description": "Client records."},
    {"name": "Staff", "description": "Staff records."},
    {"name": "Roster", "description": "Staff shifts and availability."},
    {"name": "Dashboard", "description": "Today's bookings and sales."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    try:
        await redis_client.aclose()
    except RedisError:
        logger.exception("Closing redis connection failed")


app = FastAPI(title="Salon Admin", openapi_tags=OPENAPI_TAGS, lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
app.include_router(router)


# ================= ERRORS =================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.as_dict()})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(DataAccessError)
async def data_access_error_handler(request: Request, exc: DataAccessError):
    return JSONResponse(status_code=502, content={"detail": exc.message})


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


# ================= SYSTEM =================

@app.get("/health", tags=["System"])
async def health():
    return {"status": "ok", "service": "salon-admin"}


@app.get("/system/health", tags=["System"])
async def system_health(request: Request):
    async def check_store():
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=2.0) as client:
                r = await client.get(
                    f"{STORE_URL.rstrip('/')}/rest/v1/",
                    headers={"apikey": STORE_KEY, "X-Request-Id": request.state.request_id},
                )
                latency_ms = (time.perf_counter() - start) * 1000
                return {
                    "service": "store",
                    "status": "up" if r.status_code < 500 else "down",
                    "http_status": r.status_code,
                    "latency_ms": round(latency_ms, 2),
                }
        except httpx.HTTPError as e:
            latency_ms = (time.perf_counter() - start) * 1000
            return {"service": "store", "status": "down", "error": str(e), "latency_ms": round(latency_ms, 2)}

    async def check_redis():
        start = time.perf_counter()
        try:
            await redis_client.ping()
            return {"service": "redis", "status": "up", "latency_ms": round((time.perf_counter() - start) * 1000, 2)}
        except Exception as e:
            return {"service": "redis", "status": "down", "error": str(e)}

    results = await asyncio.gather(check_store(), check_redis())
    overall = "up" if all(r.get("status") == "up" for r in results) else "degraded"
    return {"status": overall, "services": results}


@app.get("/system/breakers", tags=["System"])
async def breakers_status(breakers: dict[str, CircuitBreaker] = Depends(get_breakers)):
    statuses = await asyncio.gather(*[b.status() for b in breakers.values()])
    statuses.sort(key=lambda x: x["name"])
    return {"breakers": statuses}


@app.post("/system/breakers/{name}/close", tags=["System"])
async def breaker_close(name: str, breakers: dict[str, CircuitBreaker] = Depends(get_breakers)):
    b = breakers.get(name)
    if not b:
        raise HTTPException(status_code=404, detail="Breaker not found")
    await b.close()
    return {"message": "closed", "breaker": await b.status()}


@app.post("/system/breakers/{name}/open", tags=["System"])
async def breaker_open(name: str, breakers: dict[str, CircuitBreaker] = Depends(get_breakers)):
    b = breakers.get(name)
    if not b:
        raise HTTPException(status_code=404, detail="Breaker not found")
    await b.open()
    return {"message": "opened", "breaker": await b.status()}

