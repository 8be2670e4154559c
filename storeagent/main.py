"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from storeagent.api.routes import api_router
from storeagent.infrastructure.redis import redis_client
from storeagent.logging_config import setup_logging
from storeagent.settings import settings

# Setup logging
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    await redis_client.connect()
    yield
    # Shutdown
    await redis_client.disconnect()


app = FastAPI(
    title="Store Agent API",
    description="Prompt construction and response generation for the store chat agent",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint for Cloud Run."""
    return {"status": "healthy"}
