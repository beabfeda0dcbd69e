from __future__ import annotations
import logging
import time
from typing import Optional

from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket
from pymongo.errors import PyMongoError

from backend.config import settings
from backend.database import get_db
from backend.errors import NotFound, RemoteCallFailure

logger = logging.getLogger(__name__)


class ImageStorage:
    """Product/store images kept in GridFS, served back under /images/."""

    def __init__(self, db: AsyncIOMotorDatabase, bucket_name: str = "images"):
        self.bucket = AsyncIOMotorGridFSBucket(db, bucket_name=bucket_name)

    @staticmethod
    def public_url(name: str) -> str:
        return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/images/{name}"

    async def upload(self, filename: str, data: bytes, content_type: Optional[str] = None) -> str:
        name = f"{int(time.time() * 1000)}_{filename}"
        try:
            await self.bucket.upload_from_stream(name, data, metadata={"content_type": content_type})
        except PyMongoError as e:
            logger.error("upload of %s failed: %s", name, e)
            raise RemoteCallFailure("Upload failed") from e
        return self.public_url(name)

    async def open(self, name: str) -> tuple[bytes, Optional[str]]:
        try:
            grid_out = await self.bucket.open_download_stream_by_name(name)
            data = await grid_out.read()
        except NoFile:
            raise NotFound("Image not found")
        except PyMongoError as e:
            logger.error("download of %s failed: %s", name, e)
            raise RemoteCallFailure() from e
        content_type = (grid_out.metadata or {}).get("content_type")
        return data, content_type


async def get_storage() -> ImageStorage:
    return ImageStorage(await get_db())
