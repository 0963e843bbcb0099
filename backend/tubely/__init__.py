"""
Tubely Backend Application Package

FastAPI backend for hosting user-uploaded videos. Authenticated clients
upload an MP4 for one of their video records; the service remuxes it for
fast-start playback, classifies its aspect ratio, stores it in S3-compatible
object storage and records the delivery URL on the record.

Package Structure:
- api/: REST endpoints (video upload, video metadata records)
- core/: Infrastructure (auth, database, storage, errors, body size limit)
- models/: Pydantic data models
- services/: Upload pipeline, staging, media tools, video repository
- utils/: Aspect ratio, content type validation, logging, secure tokens
"""

__version__ = "1.0.0"
__app_name__ = "Tubely"
