"""
Project image uploads.

Upload policy is enforced here before anything is stored: at most
MAX_PROJECT_IMAGES files, image content types only. Blobs go to GridFS
under ``projects/{owner}/{timestamp}_{filename}``.
"""
import logging
from dataclasses import dataclass
from typing import List

import gridfs

import config
import database
from errors import NotFoundError, PreconditionError
from gateway import backend_call

logger = logging.getLogger(__name__)


@dataclass
class ImageUpload:
    filename: str
    content_type: str
    data: bytes


@dataclass
class StoredImage:
    filename: str
    content_type: str
    data: bytes


def validate_image_uploads(files: List[ImageUpload], existing: int = 0):
    if existing + len(files) > config.MAX_PROJECT_IMAGES:
        raise PreconditionError(f"A project can have at most {config.MAX_PROJECT_IMAGES} images")
    for f in files:
        if not (f.content_type or "").startswith("image/"):
            raise PreconditionError(f"{f.filename} is not an image")


def storage_key(owner_id: str, filename: str) -> str:
    stamp = int(database.utcnow().timestamp() * 1000)
    return f"projects/{owner_id}/{stamp}_{filename}"


class GridFSImageStorage:
    """Blob storage for project images on top of GridFS."""

    def __init__(self, db=None, bucket: str = "images"):
        self._db = db
        self.bucket = bucket

    @property
    def fs(self) -> gridfs.GridFS:
        return gridfs.GridFS(self._db if self._db is not None else database.get_db(), collection=self.bucket)

    def put(self, key: str, upload: ImageUpload) -> str:
        file_id = self.fs.put(upload.data, filename=key, metadata={"content_type": upload.content_type})
        return f"/images/{file_id}"

    def open(self, file_id: str) -> StoredImage:
        _id = database.oid(file_id)
        if _id is None:
            raise NotFoundError(f"Image {file_id} not found")
        try:
            grid_out = self.fs.get(_id)
        except gridfs.NoFile:
            raise NotFoundError(f"Image {file_id} not found")
        return StoredImage(
            filename=grid_out.filename,
            content_type=(grid_out.metadata or {}).get("content_type") or "application/octet-stream",
            data=grid_out.read(),
        )


async def upload_project_images(storage, owner_id: str, files: List[ImageUpload],
                                existing: int = 0) -> List[str]:
    """Store the images and return their retrieval URLs, in upload order."""
    validate_image_uploads(files, existing)
    urls = []
    with backend_call("upload images"):
        for f in files:
            urls.append(storage.put(storage_key(owner_id, f.filename), f))
    logger.info("Uploaded %d image(s) for %s", len(urls), owner_id)
    return urls
