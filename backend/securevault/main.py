import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from securevault.core.config import Settings, settings
from securevault.core.database import Database
from securevault.core.errors import VaultError
from securevault.core.logging_setup import setup_logging
from securevault.core.scheduler import start_scheduler, stop_scheduler
from securevault.migrations.engine import MigrationEngine
from securevault.api.routes import auth, migrations, vault

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"users", "vault_items", "user_sessions", "migrations"}


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as {"error": ..., "code": ...} without backend detail"""

    @app.exception_handler(VaultError)
    async def vault_error_handler(request: Request, exc: VaultError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "code": exc.code})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # Only field locations are echoed back, never submitted values
        fields = sorted({".".join(str(part) for part in err["loc"] if part != "body") for err in exc.errors()})
        message = f"Invalid request: {', '.join(f for f in fields if f)}" if any(fields) else "Invalid request"
        return JSONResponse(status_code=400, content={"error": message, "code": "INVALID_INPUT"})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": "Internal server error", "code": "INTERNAL_ERROR"})


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or settings
    setup_logging(app_settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage app lifecycle events.

        Startup: Open the connection pool, apply pending migrations, start the scheduler
        Shutdown: Stop the scheduler, close every pooled connection
        """
        database = Database(app_settings)
        app.state.database = database
        if app_settings.AUTO_MIGRATE:
            MigrationEngine(database.engine).migrate()
        scheduler = start_scheduler(database, app_settings)
        try:
            yield
        finally:
            stop_scheduler(scheduler)
            database.dispose()

    app = FastAPI(
        title="SecureVault API",
        description="Zero-knowledge password vault: the server only stores ciphertext",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = app_settings

    # CORS middleware - allows frontend to make requests to backend
    # allow_credentials is required for the session cookie to be sent
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Register API route modules
    # All routes are prefixed with /api for consistency
    app.include_router(auth.router, prefix="/api")
    app.include_router(vault.router, prefix="/api")
    app.include_router(migrations.router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint - API information"""
        return {"message": "SecureVault API", "version": "1.0.0"}

    @app.get("/health")
    def health(request: Request):
        """Health check endpoint - reports database reachability and schema presence"""
        database: Database = request.app.state.database
        connected = database.ping()
        tables = sorted(EXPECTED_TABLES & set(database.table_names())) if connected else []
        body = {
            "status": "healthy" if connected else "unhealthy",
            "database": {"connected": connected, "tables": tables},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return JSONResponse(status_code=200 if connected else 503, content=body)

    return app


app = create_app()
