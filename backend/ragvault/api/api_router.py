from fastapi import APIRouter
from ragvault.api.routes.kb import kb_router

api_router = APIRouter()

api_router.include_router(kb_router)
