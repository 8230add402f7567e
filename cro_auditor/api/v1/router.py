"""
API v1 router aggregating all endpoints.
"""
from fastapi import APIRouter

from cro_auditor.api.v1.audits import router as audits_router
from cro_auditor.api.v1.catalog import router as catalog_router

api_router = APIRouter()

api_router.include_router(audits_router)
api_router.include_router(catalog_router)
