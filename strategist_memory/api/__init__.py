"""API router for v1 endpoints."""

from fastapi import APIRouter

from strategist_memory.api import memory

router = APIRouter()

# Document memory pipeline routes
router.include_router(memory.router, tags=["memory"])
