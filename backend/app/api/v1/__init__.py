"""
API v1 Router - Joinery BOM
"""
from fastapi import APIRouter
from app.api.v1.endpoints import boms

router = APIRouter()

# Bills of Materials
router.include_router(boms.router)
