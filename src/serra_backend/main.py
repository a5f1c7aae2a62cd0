"""
FastAPI application entry point for the Serra device backend.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import settings
from .api import commands, device_protocol, devices, maintenance
from .errors import ProtocolError, ValidationFailed
from .jobs import MaintenanceScheduler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
LOGGER = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Serra Device API",
    description="Device identity, liveness, config sync and actuator commands for greenhouse controllers",
    version=__version__,
)

# Configure CORS for the operator dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(device_protocol.router, prefix="/api/v1/device")
app.include_router(devices.router, prefix="/api/v1/devices")
app.include_router(commands.router, prefix="/api/v1/commands")
app.include_router(maintenance.router, prefix="/api/v1/maintenance")

scheduler = MaintenanceScheduler(settings.SWEEP_INTERVAL_SECONDS)


@app.exception_handler(ProtocolError)
async def protocol_error_handler(request: Request, exc: ProtocolError):
    """Render domain errors as a uniform JSON body."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.kind, "detail": exc.detail},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Schema rejections share the domain error body."""
    detail = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(
        status_code=ValidationFailed.status_code,
        content={"success": False, "error": ValidationFailed.kind, "detail": detail},
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Serra Device API", "version": __version__}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    LOGGER.info("Serra Device API starting...")
    LOGGER.info("CORS enabled for: %s", settings.cors_origins_list)
    scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    await scheduler.stop()
    LOGGER.info("Serra Device API shutting down...")
