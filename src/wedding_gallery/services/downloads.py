"""Downloads of stored photos."""

from dataclasses import dataclass, field

from wedding_gallery.domain.errors import DownloadFailure
from wedding_gallery.domain.photos import ObjectHandle
from wedding_gallery.services.analytics import EventRecorder
from wedding_gallery.services.feed import ObjectStore, object_path


@dataclass(frozen=True)
class Download:
    """Bytes of a stored object ready to be sent as an attachment."""

    filename: str
    data: bytes


@dataclass
class DownloadService:
    """Reads a photo's bytes for the per-item download action."""

    store: ObjectStore
    prefix: str
    events: EventRecorder = field(default_factory=EventRecorder)

    async def download(self, name: str, user: str | None = None) -> Download:
        """Return the bytes of the named object in the collection."""
        if not name or "/" in name or name.startswith("."):
            raise DownloadFailure(f"Invalid object name {name!r}")
        handle = ObjectHandle(name=name, path=object_path(self.prefix, name))
        data = await self.store.read_object_bytes(handle)
        self.events.record("download_image", user=user, name=name)
        return Download(filename=name, data=data)
