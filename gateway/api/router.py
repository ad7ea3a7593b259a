from fastapi import APIRouter

from gateway.api.routes import admin, peers

api_router = APIRouter()
api_router.include_router(peers.router, tags=["peers"])
api_router.include_router(admin.router, tags=["admin"])
