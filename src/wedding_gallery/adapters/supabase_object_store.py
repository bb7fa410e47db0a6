"""Supabase Storage adapter for the photo bucket."""

from dataclasses import dataclass
from pathlib import PurePosixPath

from supabase import AsyncClient

from wedding_gallery.domain.errors import (
    DownloadFailure,
    ListingFailure,
    UploadWriteFailure,
    UrlResolutionFailure,
)
from wedding_gallery.domain.photos import ObjectHandle, ObjectPage
from wedding_gallery.services.feed import ObjectStore, object_path


def _handles(prefix: str, rows: list[dict[str, object]]) -> list[ObjectHandle]:
    """Keep real files, dropping folder entries and placeholder objects."""
    handles: list[ObjectHandle] = []
    for row in rows:
        name = str(row.get("name") or "")
        if not name or name.startswith(".") or row.get("id") is None:
            continue
        handles.append(ObjectHandle(name=name, path=object_path(prefix, name)))
    return handles


@dataclass
class SupabaseObjectStore(ObjectStore):
    """Supabase Storage implementation of the photo bucket.

    Listings page with ``limit``/``offset`` sorted by name descending, so the
    continuation cursor is the offset of the next row.
    """

    client: AsyncClient
    bucket: str
    signed_url_ttl_seconds: int = 3600
    batch_size: int = 100

    async def list_objects(
        self, prefix: str, limit: int, cursor: str | None
    ) -> ObjectPage:
        """List one page of the collection, newest first."""
        try:
            offset = int(cursor) if cursor else 0
        except ValueError as exc:
            raise ListingFailure(f"Invalid cursor {cursor!r}") from exc
        rows = await self._list(prefix, limit, offset, order="desc")
        next_cursor = str(offset + len(rows)) if len(rows) >= limit else None
        return ObjectPage(items=_handles(prefix, rows), next_cursor=next_cursor)

    async def list_all_objects(self, prefix: str) -> list[ObjectHandle]:
        """List the whole collection in batches."""
        handles: list[ObjectHandle] = []
        offset = 0
        while True:
            rows = await self._list(prefix, self.batch_size, offset, order="asc")
            handles.extend(_handles(prefix, rows))
            if len(rows) < self.batch_size:
                return handles
            offset += len(rows)

    async def resolve_retrieval_url(self, handle: ObjectHandle) -> str:
        """Create a signed URL for the object."""
        try:
            response = await self.client.storage.from_(self.bucket).create_signed_url(
                handle.path, self.signed_url_ttl_seconds
            )
        except Exception as exc:
            raise UrlResolutionFailure(str(exc)) from exc
        url = response.get("signedURL") or response.get("signedUrl")
        if not url:
            raise UrlResolutionFailure(f"No signed URL returned for {handle.path}")
        return str(url)

    async def write_object(
        self, path: str, data: bytes, content_type: str
    ) -> ObjectHandle:
        """Upload bytes without overwriting an existing object."""
        try:
            await self.client.storage.from_(self.bucket).upload(
                path, data, {"content-type": content_type}
            )
        except Exception as exc:
            raise UploadWriteFailure(str(exc)) from exc
        return ObjectHandle(name=PurePosixPath(path).name, path=path)

    async def read_object_bytes(self, handle: ObjectHandle) -> bytes:
        """Download the object's bytes."""
        try:
            return await self.client.storage.from_(self.bucket).download(handle.path)
        except Exception as exc:
            raise DownloadFailure(str(exc)) from exc

    async def _list(
        self, prefix: str, limit: int, offset: int, order: str
    ) -> list[dict[str, object]]:
        try:
            rows = await self.client.storage.from_(self.bucket).list(
                prefix.strip("/"),
                {
                    "limit": limit,
                    "offset": offset,
                    "sortBy": {"column": "name", "order": order},
                },
            )
        except Exception as exc:
            raise ListingFailure(str(exc)) from exc
        return list(rows or [])
