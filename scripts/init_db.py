#!/usr/bin/env python3
"""
MongoDB initialization and development seeding for Tubely.

Creates the ``videos`` collection indexes and, on request, seeds an empty
video record for a user and prints a bearer token for that user, so the
upload endpoint can be tried locally with curl. Safe to run repeatedly.

Usage:
    python scripts/init_db.py [options]

Options:
    --seed-user UUID    Create a sample video record owned by this user
    --title TEXT        Title of the seeded record (default: "Sample video")
    --token-hours INT   Lifetime of the printed token (default: 24)
    --verbose           Display detailed operation logs

Configuration comes from the same environment variables / .env file the
server reads (MONGODB_URI, MONGODB_DB_NAME, JWT_SECRET, ...).
"""

import argparse
import asyncio
import logging
import sys

from datetime import timedelta
from uuid import UUID

from tubely.config import get_settings
from tubely.core.auth import create_access_token
from tubely.core.database import close_db, init_db
from tubely.core.errors import TubelyError
from tubely.models.video import Video
from tubely.services.video_repository import VideoRepository
from tubely.utils.logger import setup_logging


def parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Initialize the Tubely MongoDB database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/init_db.py                       # Create indexes only
  python scripts/init_db.py --seed-user <uuid>    # Also seed a record and print a token
        """,
    )

    parser.add_argument("--seed-user", type=UUID, help="Owner of the seeded video record")

    parser.add_argument("--title", default="Sample video", help="Title of the seeded record")

    parser.add_argument(
        "--token-hours", type=int, default=24, help="Lifetime of the printed token in hours"
    )

    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Display detailed operation logs"
    )

    return parser.parse_args()


async def initialize(args: argparse.Namespace) -> int:
    settings = get_settings()

    try:
        db_client = await init_db(settings)
    except RuntimeError as e:
        print(f"\nFailed to connect to MongoDB: {e}")
        return 1

    try:
        print(f"Indexes ready on {settings.mongodb_db_name}.videos")

        if args.seed_user is None:
            return 0

        repository = VideoRepository(db_client.get_videos_collection())
        video = await repository.create_video(Video(user_id=args.seed_user, title=args.title))
        token = create_access_token(
            args.seed_user, settings, expires_in=timedelta(hours=args.token_hours)
        )

        print(f"\nSeeded video {video.id} for user {args.seed_user}")
        print(f"\nBearer token (valid {args.token_hours}h):\n{token}")
        print(
            "\nTry:\n"
            f"  curl -H 'Authorization: Bearer {token}' \\\n"
            f"       -F 'video=@clip.mp4;type=video/mp4' \\\n"
            f"       http://localhost:{settings.port}/api/video_upload/{video.id}"
        )
        return 0

    except TubelyError as e:
        print(f"\nFailed to seed video record: {e.message}")
        return 1

    finally:
        await close_db()


def main() -> int:
    args = parse_arguments()

    setup_logging(log_level="debug" if args.verbose else "warning", json_logs=False)

    print("\n" + "=" * 60)
    print("Tubely - MongoDB Database Initialization")
    print("=" * 60 + "\n")

    try:
        return asyncio.run(initialize(args))
    except KeyboardInterrupt:
        print("\n\nInitialization interrupted by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
