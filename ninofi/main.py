from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ninofi.api.middleware import AuditMiddleware
from ninofi.api.v1.router import v1_router
from ninofi.api.v1.ws import router as ws_router
from ninofi.common.exceptions import NinofiException
from ninofi.common.logging import get_logger, setup_logging
from ninofi.config import settings
from ninofi.integrations import MapsClient, StripeClient

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("NINOFI API starting (env=%s)", settings.APP_ENV)
    yield


app = FastAPI(
    title="NINOFI API",
    description="Escrow, milestones and crew check-ins for construction projects",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AuditMiddleware)

# API routes
app.include_router(v1_router, prefix="/api/v1")
app.include_router(ws_router, prefix="/api/v1")


# --- Error handlers ---


@app.exception_handler(NinofiException)
async def ninofi_exception_handler(request: Request, exc: NinofiException):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    logger.warning("Concurrent update rejected on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=409,
        content={"detail": "This record was changed by another request, please retry", "code": "conflict"},
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity error on %s: %s", request.url.path, exc.orig)
    return JSONResponse(
        status_code=409,
        content={"detail": "The request conflicts with existing data", "code": "conflict"},
    )


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "ninofi",
        "version": "1.0.0",
        "env": settings.APP_ENV,
        "integrations": {
            "stripe": await StripeClient().status(),
            "maps": await MapsClient().status(),
        },
    }
