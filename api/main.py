"""
=====================================================
Voice Scheduling Platform - Main FastAPI Application
=====================================================
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from config.settings import get_settings
from api.tenant_routes import router as tenant_router
from api.voice_routes import router as voice_router
from services.tts.audio_store import close_audio_store


# Get settings
settings = get_settings()

# Configure logger
logger.remove()  # Remove default handler
logger.add(
    settings.log_file,
    rotation="500 MB",
    level=settings.log_level,
    backtrace=True,
    diagnose=True
)
logger.add(lambda msg: print(msg, end=""), level=settings.log_level)


def _uses_postgres() -> bool:
    return settings.storage_backend == "postgres" or settings.tenant_source == "postgres"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    logger.info(f"{settings.app_name} starting up (storage={settings.storage_backend}, tenants={settings.tenant_source})")

    if _uses_postgres():
        from services.database import init_schema
        await init_schema()

    yield

    logger.info(f"{settings.app_name} shutting down...")
    await close_audio_store()
    if _uses_postgres():
        from services.database import close_db_pool
        await close_db_pool()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Multi-tenant voice agent for appointment scheduling",
    version=settings.app_version,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(voice_router)
app.include_router(tenant_router)


# =====================================================
# HEALTH CHECK
# =====================================================

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "voice-scheduling-platform",
        "version": settings.app_version,
        "environment": settings.environment
    }


# =====================================================
# ERROR HANDLERS
# =====================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)}
    )


# =====================================================
# MAIN ENTRY POINT (for development)
# =====================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
