"""
Tests for project image upload policy.

Run: pytest test_images.py -v
"""
import asyncio

import pytest

import images
from errors import GatewayError, PreconditionError
from images import ImageUpload


class MemoryStorage:
    def __init__(self):
        self.blobs = {}

    def put(self, key, upload):
        self.blobs[key] = upload
        return f"/images/{len(self.blobs)}"


def png(name="a.png"):
    return ImageUpload(filename=name, content_type="image/png", data=b"\x89PNG")


def test_upload_returns_urls_in_order(clock):
    storage = MemoryStorage()
    urls = asyncio.run(images.upload_project_images(storage, "u1", [png("a.png"), png("b.png")]))
    assert urls == ["/images/1", "/images/2"]
    assert all(key.startswith("projects/u1/") for key in storage.blobs)
    assert sorted(k.rsplit("_", 1)[1] for k in storage.blobs) == ["a.png", "b.png"]


def test_at_most_five_images():
    with pytest.raises(PreconditionError):
        images.validate_image_uploads([png() for _ in range(6)])
    with pytest.raises(PreconditionError):
        images.validate_image_uploads([png(), png()], existing=4)
    images.validate_image_uploads([png() for _ in range(5)])


def test_only_images_are_accepted():
    storage = MemoryStorage()
    pdf = ImageUpload(filename="cv.pdf", content_type="application/pdf", data=b"%PDF")
    with pytest.raises(PreconditionError):
        asyncio.run(images.upload_project_images(storage, "u1", [png(), pdf]))
    assert storage.blobs == {}


def test_storage_failure_is_gateway_error():
    class Broken:
        def put(self, key, upload):
            raise IOError("bucket gone")

    with pytest.raises(GatewayError) as exc:
        asyncio.run(images.upload_project_images(Broken(), "u1", [png()]))
    assert str(exc.value) == "Failed to upload images"
