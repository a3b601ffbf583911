"""
Main API router aggregator
"""
from fastapi import APIRouter

from casegate.api.v1.endpoints import (
    cases,
    documents,
    generation_worker,
    health,
)

api_router = APIRouter()

api_router.include_router(cases.router, prefix="/cases", tags=["Cases"])
api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])
api_router.include_router(generation_worker.router, prefix="/generation-worker", tags=["Generation Worker"])
api_router.include_router(health.router, prefix="/health", tags=["Health"])
