from fastapi import APIRouter

from .endpoints import extraction, external_sources, health

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])

# Digest ingestion, status polling, logs and content deletion
api_router.include_router(extraction.router, prefix="/extraction", tags=["extraction"])

# Source registry CRUD plus on-demand fetches
api_router.include_router(external_sources.router, prefix="/external-sources", tags=["external-sources"])
