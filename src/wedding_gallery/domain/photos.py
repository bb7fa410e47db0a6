"""Domain models for the photo feed."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ObjectHandle:
    """A stored object: its bare name and its full path inside the bucket."""

    name: str
    path: str


@dataclass(frozen=True)
class ObjectPage:
    """One page of a storage listing."""

    items: list[ObjectHandle]
    next_cursor: str | None


@dataclass(frozen=True)
class PhotoItem:
    """A photo or video shown in the feed."""

    url: str
    name: str
    handle: ObjectHandle

    def to_dict(self) -> dict[str, str]:
        """Return the JSON shape used by the page script."""
        return {"url": self.url, "name": self.name}


@dataclass
class FeedState:
    """Incrementally loaded view of the photo collection, newest first."""

    items: list[PhotoItem] = field(default_factory=list)
    cursor: str | None = None
    has_more: bool = True
    loading: bool = False


def capture_millis(name: str) -> int | None:
    """Return the capture timestamp embedded in an object name, if any."""
    prefix, sep, _ = name.partition("_")
    if not sep or not prefix.isdigit():
        return None
    return int(prefix)
