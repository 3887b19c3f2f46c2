"""Fitness Coach API - FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .routes import generation, events, nutrition, shopping
from .services import generation_service as service_module

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Clear orphaned generation state on startup; stop polling on shutdown."""
    service = service_module.generation_service
    service.recover()
    logger.info(f"[COACH API] Ready, job API at {settings.coach_api_url}")
    yield
    await service.shutdown()


app = FastAPI(
    title="Fitness Coach API",
    description="Plan generation orchestration and plan analytics",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Include routers
app.include_router(generation.router)
app.include_router(events.router)
app.include_router(nutrition.router)
app.include_router(shopping.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for the API."""
    return {"status": "healthy", "service": "coach-api"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "server.coach_api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )
