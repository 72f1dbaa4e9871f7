from contextlib import asynccontextmanager
import logging
import os
import time

from fastapi import FastAPI, Response, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from .database import Base, SessionLocal, engine
from .errors import PowerbagError
from .services import settings as site_settings
from .routes import (
    users,
    assets,
    collections,
    storylines,
    info,
    settings,
)

_logger = logging.getLogger(__name__)

dsn = os.getenv("SENTRY_DSN")
if dsn:
    sentry_sdk.init(dsn=dsn, integrations=[FastApiIntegration()])

REQUEST_COUNT = Counter("request_count", "Total requests", ["method", "endpoint"])
REQUEST_LATENCY = Histogram(
    "request_latency_seconds", "Request latency", ["endpoint"]
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        site_settings.initialize_default_settings(db)
    finally:
        db.close()
    yield


app = FastAPI(title="Powerbag API", lifespan=lifespan)

origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, lambda r, e: Response("Too Many Requests", status_code=429))
if os.getenv("TESTING") != "1":
    app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(PowerbagError)
async def powerbag_error_handler(request: Request, exc: PowerbagError):
    if exc.status_code >= 500:
        _logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    endpoint = request.url.path
    REQUEST_COUNT.labels(request.method, endpoint).inc()
    REQUEST_LATENCY.labels(endpoint).observe(time.time() - start)
    return response

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

app.include_router(users.router)
app.include_router(assets.router)
app.include_router(collections.router)
app.include_router(storylines.router)
app.include_router(info.router)
app.include_router(settings.router)


PUBLIC_ROUTES = {
    ("GET", "/api/collections/"),
    ("GET", "/api/collections/{collection_id}"),
    ("GET", "/api/storylines/"),
    ("GET", "/api/storylines/{storyline_id}"),
    ("GET", "/api/info/"),
    ("GET", "/api/settings/public"),
    ("POST", "/api/users/send-code"),
    ("POST", "/api/users/login"),
    ("GET", "/api/users/check-email/{email}"),
}


def _dependency_calls(dependant):
    for dep in dependant.dependencies:
        yield dep.call
        yield from _dependency_calls(dep)


def audit_routes():
    from fastapi.routing import APIRoute
    from .auth import get_current_user

    for route in app.routes:
        if not isinstance(route, APIRoute) or not route.path.startswith("/api"):
            continue
        for method in route.methods:
            if (method, route.path) in PUBLIC_ROUTES:
                continue
            if get_current_user not in _dependency_calls(route.dependant):
                raise RuntimeError(f"Route {method} {route.path} missing authentication")


audit_routes()
