from fastapi import APIRouter

from catalog_admin.api.taxonomy import router as taxonomy_router

api_router = APIRouter()
api_router.include_router(taxonomy_router)
