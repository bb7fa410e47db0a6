"""Photo and video uploads."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from wedding_gallery.domain.errors import UploadValidationFailure
from wedding_gallery.domain.photos import PhotoItem
from wedding_gallery.services.analytics import EventRecorder
from wedding_gallery.services.feed import FeedPaginator, ObjectStore, object_path

logger = logging.getLogger(__name__)

_BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class UploadPolicy:
    """Which files guests may upload."""

    enabled: bool = True
    allowed_type_prefixes: tuple[str, ...] = ("image/", "video/")
    max_size_mb: int = 50

    def validate(self, content_type: str | None, size: int) -> None:
        """Raise when the file's type or size is not allowed."""
        if not self.enabled:
            return
        if not content_type or not content_type.startswith(
            self.allowed_type_prefixes
        ):
            raise UploadValidationFailure(
                f"Rejected media type {content_type!r}",
                user_message=(
                    "Invalid file type. Please upload an image or video file."
                ),
            )
        if size > self.max_size_mb * _BYTES_PER_MB:
            raise UploadValidationFailure(
                f"Rejected upload of {size} bytes",
                user_message=(
                    f"File size exceeds {self.max_size_mb}MB limit. "
                    "Please upload a smaller file."
                ),
            )


@dataclass(frozen=True)
class LocalFile:
    """A file selected by the guest."""

    filename: str
    content_type: str | None
    data: bytes


def _clock_millis() -> int:
    return int(time.time() * 1000)


def object_name(filename: str, captured_at: int) -> str:
    """Build the object name ``<millis>_<filename>`` from a file's base name."""
    base = PurePosixPath(filename.replace("\\", "/")).name or "upload"
    return f"{captured_at}_{base}"


@dataclass
class UploadCoordinator:
    """Validates, stores and optimistically shows a guest's upload."""

    store: ObjectStore
    prefix: str
    policy: UploadPolicy = field(default_factory=UploadPolicy)
    events: EventRecorder = field(default_factory=EventRecorder)
    clock: Callable[[], int] = _clock_millis

    async def upload(
        self, file: LocalFile, feed: FeedPaginator, user: str | None = None
    ) -> PhotoItem:
        """Upload a file and prepend it to the feed once stored."""
        self.policy.validate(file.content_type, len(file.data))

        captured_at = self.clock()
        newest = feed.newest_capture_millis()
        if newest is not None and captured_at <= newest:
            captured_at = newest + 1
        name = object_name(file.filename, captured_at)

        handle = await self.store.write_object(
            object_path(self.prefix, name),
            file.data,
            file.content_type or "application/octet-stream",
        )
        url = await self.store.resolve_retrieval_url(handle)

        item = PhotoItem(url=url, name=handle.name, handle=handle)
        feed.prepend(item)
        logger.info("Uploaded %s", name, extra={"user_id": user})
        self.events.record("upload_image", user=user, name=name, url=url)
        return item
