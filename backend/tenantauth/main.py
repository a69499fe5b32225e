# backend/tenantauth/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tenantauth.api.routers.admin import admin_router
from tenantauth.api.routers.auth import auth_router
from tenantauth.api.routers.health import health_router
from tenantauth.core.config import settings
from tenantauth.core.request_context import RequestContextMiddleware
from tenantauth.core.security_logger import SecurityLogger

# Import all models to ensure they are registered in the registry
from tenantauth.db import base  # noqa: F401
from tenantauth.db import session as db_session_module
from tenantauth.db.session import lifespan_db_manager
from tenantauth.platform.supabase_identity import SupabaseIdentityBackend
from tenantauth.services.caller_auth import CallerAuthService

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


# --- Lifespan Management ---
@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    logger.info(f"Starting up {settings.APP_NAME} v{settings.APP_VERSION}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    if not settings.platform_configured:
        logger.critical("LIFESPAN_HOOK: SUPABASE_URL and SUPABASE_ANON_KEY must both be set.")
        raise RuntimeError("Identity platform is not configured.")

    try:
        await lifespan_db_manager("startup")
        logger.info("LIFESPAN_HOOK: Database resources initialized via lifespan_db_manager.")
    except Exception as e:
        logger.critical(
            f"LIFESPAN_HOOK: CRITICAL - Failed to initialize database resources: {e}", exc_info=True
        )
        raise

    identity = await SupabaseIdentityBackend.connect(
        settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY
    )
    app_instance.state.caller_auth = CallerAuthService(
        db_session_module.get_session_factory(),
        identity,
        security_log=SecurityLogger(settings.SECURITY_LOG_PATH),
    )
    logger.info("LIFESPAN_HOOK: Caller auth service ready.")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    app_instance.state.caller_auth = None
    await lifespan_db_manager("shutdown")
    logger.info("Application shutdown complete.")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=settings.APP_DESCRIPTION,
    lifespan=lifespan,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
    debug=settings.DEBUG,
)

# --- Middleware ---
app.add_middleware(RequestContextMiddleware)

if settings.BACKEND_CORS_ORIGINS:
    origins = [
        str(origin).strip("/") for origin in settings.BACKEND_CORS_ORIGINS if str(origin).strip("/")
    ]
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        logger.info(f"CORS enabled for origins: {origins}")
    else:
        logger.warning("BACKEND_CORS_ORIGINS configured but resulted in an empty list.")
else:
    logger.info("CORS disabled (BACKEND_CORS_ORIGINS not configured).")


# --- Exception Handlers ---
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    error_details = exc.errors()
    logger.warning(
        f"Request validation error: {request.method} {request.url.path} - Errors: {error_details}"
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": error_details}
    )


@app.exception_handler(HTTPException)
async def http_exception_handler_custom(request: Request, exc: HTTPException):
    log_message = f"HTTPException: Status={exc.status_code}, Detail='{exc.detail}' for {request.method} {request.url.path}"
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(log_message)
    else:
        logger.warning(log_message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler_custom(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception during request: {request.method} {request.url.path}", exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected internal server error occurred."},
    )


# --- API v1 Router Definition and Inclusions ---
api_v1_router = APIRouter()
api_v1_router.include_router(auth_router, prefix="/auth")
api_v1_router.include_router(admin_router)
api_v1_router.include_router(health_router)

app.include_router(api_v1_router, prefix=settings.API_V1_STR)


# --- Health Check Endpoint (at app root) ---
@app.get(
    "/health",
    tags=["System Health"],
    summary="Basic System Liveness Check",
    status_code=status.HTTP_200_OK,
    include_in_schema=False,
)
async def health_check_basic_system():
    return {"status": "healthy"}


# --- Main entry point for Uvicorn direct run ---
if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting Uvicorn server directly for {settings.APP_NAME} (local debugging)...")
    uvicorn.run(
        "tenantauth.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
