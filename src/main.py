"""
Souq Orders - order lifecycle and messaging for an offline-payment marketplace

Main FastAPI application with:
- JWT authentication (bearer header or cookie)
- Orders, messages, disputes and invoices REST API under /api
- Real-time channel on /ws
- Invoice rendering on an APScheduler interval job
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.api import api_router
from src.auth.middleware import AuthMiddleware
from src.config import settings
from src.errors import DomainError
from src.realtime.router import router as realtime_router
from src.scheduler.jobs import scheduler, setup_scheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    - Starts the invoice job (unless a stand-alone worker runs it)

    Shutdown:
    - Stops the scheduler
    """
    logger.info("Starting Souq Orders...")

    if settings.scheduler_enabled:
        setup_scheduler()
        scheduler.start()
        logger.info("Scheduler started")

    logger.info("Souq Orders started successfully!")

    yield

    # Shutdown
    logger.info("Shutting down Souq Orders...")
    if scheduler.running:
        scheduler.shutdown(wait=False)


# Create FastAPI application
app = FastAPI(
    title="Souq Orders",
    description="Order intents, buyer/seller messaging and disputes with offsite payment",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# Add authentication middleware
app.add_middleware(AuthMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"Invalid {field}: {first.get('msg')}" if field else "Validation failed"
    return JSONResponse(
        status_code=400,
        content={
            "error": True,
            "message": message,
            "errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content = {"error": True, "message": "Internal server error"}
    if not settings.is_production:
        content["detail"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# Include routers
app.include_router(api_router)  # /api/* endpoints
app.include_router(realtime_router)  # /ws


@app.get("/", include_in_schema=False)
async def root():
    return {"service": "souq-orders", "status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
    )
