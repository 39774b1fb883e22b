"""
Cadastro API — FastAPI Application Factory
============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires settings, the Database, the PasswordHasher and the
       UsuarioService together and stores them on app.state. Routes reach
       them through FastAPI dependencies, never through module globals.
Who:   uvicorn (via `python -m app` or `uvicorn app.main:app`) and the tests,
       which pass their own Settings/Database.

Application Architecture:
    ┌───────────────────────────────────────────────────────┐
    │                     FastAPI App                       │
    │                                                       │
    │  Middleware:  Request ID → Logging → CORS             │
    │                                                       │
    │  Routes:                                              │
    │   GET /   GET /status   GET|POST /users               │
    │   PUT|PATCH /users/{id}   POST /login                 │
    │                                                       │
    │  Exception Handlers:                                  │
    │   Validation→400  Authentication→401  NotFound→404    │
    │   Conflict→409    Datastore→500       Unexpected→500  │
    └───────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  configure logging, optionally create tables
    Shutdown: dispose the engine (close pooled connections)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import __version__
from app.config import Settings, settings as default_settings
from app.database import Database
from app.exceptions import CadastroError, DatastoreError
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import auth, health, usuarios
from app.services.password_service import PasswordHasher
from app.services.usuario_service import UsuarioService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once for the whole process.

    Format: 2026-01-15T12:00:00 [INFO] app.services.usuario_service: ...
    Output: stdout (container runtimes collect it from there)
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Our RequestLoggingMiddleware replaces uvicorn's access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app_settings: Settings = app.state.settings
    database: Database = app.state.database

    setup_logging(app_settings.log_level)
    logger.info("Cadastro API %s starting up", __version__)

    if app_settings.db_create_tables:
        await database.create_tables()

    logger.info("Listening on http://%s:%d", app_settings.host, app_settings.port)

    yield

    logger.info("Cadastro API shutting down...")
    await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to HTTP responses.

    Every error body has the same shape: {"error": "<message>"}.

        CadastroError subclasses → exc.status_code
        RequestValidationError   → 400 (malformed JSON, wrong types)
        Exception                → 500, generic message, stack trace logged

    Security: DatastoreError context (exception type, ids) is logged here and
    never included in the response.
    """

    @app.exception_handler(CadastroError)
    async def handle_cadastro_error(request: Request, exc: CadastroError):
        rid = request_id_var.get("")
        if isinstance(exc, DatastoreError):
            logger.error("[%s] %s | Context: %s", rid, exc.message, exc.context)
        else:
            logger.info("[%s] %s %s: %s", rid, exc.status_code, type(exc).__name__, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        rid = request_id_var.get("")
        # Field locations only; input values may contain the password
        locations = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
        logger.info("[%s] Invalid request body: %s", rid, locations)
        return JSONResponse(status_code=400, content={"error": "Dados inválidos na requisição"})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, type(exc).__name__, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Erro interno do servidor"})


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    hasher: Optional[PasswordHasher] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: configuration; defaults to the environment-loaded settings
        database: datastore handle; built from settings when omitted
        hasher:   password hasher; bcrypt at settings.bcrypt_rounds when omitted

    Building the Database does not open a connection, so importing this
    module (which creates `app` below) has no network side effects.
    """
    settings = settings or default_settings
    database = database or Database.from_settings(settings)
    hasher = hasher or PasswordHasher(rounds=settings.bcrypt_rounds)

    app = FastAPI(
        title="Cadastro API",
        description="User registration and authentication backed by PostgreSQL.",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database
    app.state.usuario_service = UsuarioService(hasher, timeout=settings.db_timeout_seconds)

    # Middleware executes in reverse order of addition:
    # RequestID → Logging → CORS → routes
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,  # must stay off while allow_origins is "*"
        allow_methods=settings.cors_methods_list,
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(usuarios.router)
    app.include_router(auth.router)

    return app


app = create_app()
