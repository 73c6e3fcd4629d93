from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
import httpx
import time
import logging

from .api.v1.auth import router as auth_router
from .api.v1.doctor_shifts import router as doctor_shifts_router
from .core.config import Settings, settings as default_settings
from .core.errors import ConsoleError
from .core.http import BackendClient, create_http_client
from .services.board import WorkflowBoard
from .services.preview import ImpactPreviewService
from .services.registry import ShiftRegistry
from .services.session import Session
from .services.shift_api import ShiftApi

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def create_app(
    settings: Settings = default_settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    session: Optional[Session] = None,
) -> FastAPI:
    """Build the console, wired to the backend at ``BACKEND_API_URL``.

    ``transport`` replaces the network layer (tests pass an
    ``httpx.MockTransport``).
    """
    http = create_http_client(settings, transport)
    session = session or Session(http, settings)
    shift_api = ShiftApi(BackendClient(http, session))
    registry = ShiftRegistry(shift_api)
    board = WorkflowBoard(
        registry,
        ImpactPreviewService(shift_api),
        shift_api,
        timeout=settings.WORKFLOW_TIMEOUT_SECONDS,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME} against {settings.BACKEND_API_URL}...")
        state = await session.restore()
        logger.info(f"Operator session: {state.value}")
        yield
        logger.info(f"Shutting down {settings.APP_NAME}...")
        await http.aclose()

    # Create FastAPI application
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="Operator console for clinic doctor-shift scheduling",
        openapi_url="/api/v1/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.http = http
    app.state.session = session
    app.state.registry = registry
    app.state.board = board

    # Middleware setup
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Only add TrustedHostMiddleware in production, not in testing
    if not settings.TESTING:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"]
        )

    # Custom middleware for request logging and timing
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        # Log request
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.4f}s"
        )

        return response

    # Exception handlers
    @app.exception_handler(ConsoleError)
    async def console_error_handler(request: Request, exc: ConsoleError):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.kind,
                "message": exc.message,
            }
        )

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not Found",
                "message": "The requested resource was not found",
                "path": str(request.url.path)
            }
        )

    @app.exception_handler(500)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.error(f"Internal server error: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "message": "An unexpected error occurred"
            }
        )

    # Include routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(doctor_shifts_router, prefix="/api/v1")

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "version": settings.VERSION,
            "session": session.state.value,
        }

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.VERSION,
            "backend": settings.BACKEND_API_URL,
            "docs": "/docs",
            "health": "/health"
        }

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clinic_console.main:app",
        host="127.0.0.1",
        port=8000,
        reload=default_settings.DEBUG,
        log_level="info"
    )
