"""
Services module for the Tubely backend.

- video_upload_service: The upload pipeline from ownership check to record update
- video_repository: MongoDB-backed video metadata store with optimistic updates
- staging: Private per-request temporary directories
- media_tools: ffmpeg fast-start remux and ffprobe introspection

Services are wired through FastAPI's dependency system.
"""
