"""
Models Package for Tubely.

Pydantic models for video metadata records and the API error envelope.

Example Usage:
    ```python
    from tubely.models import Video, VideoCreate

    video = Video(user_id=caller.user_id, title="Boots on the trail")
    ```
"""

from tubely.models.video import ErrorResponse, Video, VideoCreate


__all__ = ["ErrorResponse", "Video", "VideoCreate"]
