from fastapi import APIRouter

from skilltrace.api.v1 import analysis

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(analysis.router)
