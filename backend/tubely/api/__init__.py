"""
Tubely API Package.

Aggregates the endpoint routers into ``api_router``, mounted under ``/api``
by the application.

Router Structure:
    - upload.py: POST /video_upload/{video_id}
    - videos.py: /videos create, list, get, delete
"""

from fastapi import APIRouter

from tubely.api.upload import router as upload_router
from tubely.api.videos import router as videos_router


api_router = APIRouter()
api_router.include_router(upload_router)
api_router.include_router(videos_router)


__all__ = ["api_router"]
