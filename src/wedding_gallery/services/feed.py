"""Incrementally loaded photo feed."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from wedding_gallery.domain.photos import (
    FeedState,
    ObjectHandle,
    ObjectPage,
    PhotoItem,
    capture_millis,
)
from wedding_gallery.services.analytics import EventRecorder

FeedObserver = Callable[[FeedState], None]


class ObjectStore(Protocol):
    """Persistence interface for the photo bucket."""

    async def list_objects(
        self, prefix: str, limit: int, cursor: str | None
    ) -> ObjectPage:
        """List one page of objects, newest name first."""

    async def list_all_objects(self, prefix: str) -> list[ObjectHandle]:
        """List every object under a prefix, in no particular order."""

    async def resolve_retrieval_url(self, handle: ObjectHandle) -> str:
        """Return a time-limited URL for reading the object."""

    async def write_object(
        self, path: str, data: bytes, content_type: str
    ) -> ObjectHandle:
        """Store bytes under a path and return the handle."""

    async def read_object_bytes(self, handle: ObjectHandle) -> bytes:
        """Return the object's bytes."""


def object_path(prefix: str, name: str) -> str:
    """Return the bucket path of a named object in the collection."""
    return f"{prefix.strip('/')}/{name}"


@dataclass(frozen=True)
class ListedPage:
    """A page of handles plus where the next page resumes."""

    items: list[ObjectHandle]
    cursor: str | None
    has_more: bool


class ListingStrategy(Protocol):
    """How the feed walks the collection one page at a time."""

    async def fetch(self, cursor: str | None) -> ListedPage:
        """Return the page that starts at ``cursor`` (or the first page)."""


@dataclass
class NativeCursorListing(ListingStrategy):
    """Pages with the store's own continuation token."""

    store: ObjectStore
    prefix: str
    page_size: int

    async def fetch(self, cursor: str | None) -> ListedPage:
        page = await self.store.list_objects(self.prefix, self.page_size, cursor)
        return ListedPage(
            items=page.items,
            cursor=page.next_cursor,
            has_more=page.next_cursor is not None,
        )


@dataclass
class RelistAndSkipListing(ListingStrategy):
    """Emulates a cursor by re-listing everything and skipping past a name.

    Each page costs one full listing of the collection, so this is O(total
    objects) per page. Use it only for stores that cannot page natively.
    The cursor is the name of the last item handed out.
    """

    store: ObjectStore
    prefix: str
    page_size: int

    async def fetch(self, cursor: str | None) -> ListedPage:
        handles = sorted(
            await self.store.list_all_objects(self.prefix),
            key=lambda handle: handle.name,
            reverse=True,
        )
        start = 0
        if cursor is not None:
            start = next(
                (
                    index
                    for index, handle in enumerate(handles)
                    if handle.name < cursor
                ),
                len(handles),
            )
        items = handles[start : start + self.page_size]
        end = start + len(items)
        return ListedPage(
            items=items,
            cursor=items[-1].name if items else cursor,
            has_more=end < len(handles),
        )


def build_listing(
    strategy: str, store: ObjectStore, prefix: str, page_size: int
) -> ListingStrategy:
    """Create the listing strategy named in settings."""
    if strategy == "relist":
        return RelistAndSkipListing(store=store, prefix=prefix, page_size=page_size)
    return NativeCursorListing(store=store, prefix=prefix, page_size=page_size)


@dataclass
class FeedPaginator:
    """Ordered, deduplicated, incrementally loaded view of the collection.

    Only one page load may be outstanding at a time. A load started while
    another is running is refused rather than queued. Loaded items keep
    their position; later pages are appended and optimistic uploads are
    prepended.
    """

    store: ObjectStore
    listing: ListingStrategy
    events: EventRecorder = field(default_factory=EventRecorder)
    user: str | None = None
    state: FeedState = field(default_factory=FeedState)
    _observers: list[FeedObserver] = field(default_factory=list)
    _started: bool = False

    def subscribe(self, observer: FeedObserver) -> Callable[[], None]:
        """Register an observer and return a function that removes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    async def load_first_page(self) -> bool:
        """Load the newest page, replacing whatever the feed held."""
        return await self._load(cursor=None, replace=True)

    async def load_next_page(self) -> bool:
        """Append the next page. Returns false when nothing was started."""
        if not self._started:
            return await self.load_first_page()
        if not self.state.has_more:
            return False
        return await self._load(cursor=self.state.cursor, replace=False)

    @property
    def started(self) -> bool:
        """Return true once a first page has been published."""
        return self._started

    def prepend(self, item: PhotoItem) -> None:
        """Insert a freshly uploaded item at the top of the feed."""
        if any(existing.name == item.name for existing in self.state.items):
            return
        self.state.items = [item, *self.state.items]
        self._notify()

    def newest_capture_millis(self) -> int | None:
        """Return the largest capture timestamp among loaded items."""
        stamps = [
            stamp
            for stamp in (capture_millis(item.name) for item in self.state.items)
            if stamp is not None
        ]
        return max(stamps, default=None)

    async def _load(self, cursor: str | None, replace: bool) -> bool:
        if self.state.loading:
            return False
        self.state.loading = True
        self._notify()
        before = {item.name for item in self.state.items}
        try:
            page = await self.listing.fetch(cursor)
            photos = await self._resolve(page.items)
            if replace:
                # Keep uploads prepended while the listing was in flight.
                fresh = {photo.name for photo in photos}
                prepended = [
                    item
                    for item in self.state.items
                    if item.name not in before and item.name not in fresh
                ]
                items = [*prepended, *photos]
            else:
                seen = {item.name for item in self.state.items}
                items = [
                    *self.state.items,
                    *(photo for photo in photos if photo.name not in seen),
                ]
            self.state.items = items
            self.state.cursor = page.cursor
            self.state.has_more = page.has_more
            self._started = True
        finally:
            self.state.loading = False
            self._notify()
        self.events.record(
            "fetch_photos", user=self.user, count=len(photos), page_token=cursor
        )
        return True

    async def _resolve(self, handles: list[ObjectHandle]) -> list[PhotoItem]:
        urls = await asyncio.gather(
            *(self.store.resolve_retrieval_url(handle) for handle in handles)
        )
        return [
            PhotoItem(url=url, name=handle.name, handle=handle)
            for handle, url in zip(handles, urls, strict=True)
        ]

    def _notify(self) -> None:
        for observer in list(self._observers):
            observer(self.state)
