from fastapi import APIRouter
from mediahub.modules.assets.router import router as assets_router
from mediahub.modules.playlists.router import router as playlists_router

api_router = APIRouter()
api_router.include_router(assets_router, prefix="/media-assets", tags=["media-assets"])
api_router.include_router(playlists_router, prefix="/playlists", tags=["playlists"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
