"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlsplit

import pytest

from wedding_gallery.config import Settings
from wedding_gallery.containers import AppContainer, build_services
from wedding_gallery.domain.auth import AuthSession
from wedding_gallery.domain.errors import (
    AuthExchangeFailure,
    AuthRequestFailure,
    DownloadFailure,
    ListingFailure,
    UploadWriteFailure,
    UrlResolutionFailure,
)
from wedding_gallery.domain.photos import ObjectHandle, ObjectPage
from wedding_gallery.services.analytics import EventRecorder, EventSink
from wedding_gallery.services.feed import ObjectStore, object_path
from wedding_gallery.services.sign_in import IdentityProvider


@dataclass
class RecordingEventSink(EventSink):
    """Event sink that keeps every analytics event."""

    events: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    def emit(self, event: str, params: dict[str, object]) -> None:
        self.events.append((event, params))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@dataclass
class InMemoryObjectStore(ObjectStore):
    """In-memory photo bucket for tests."""

    objects: dict[str, bytes] = field(default_factory=dict)
    content_types: dict[str, str] = field(default_factory=dict)
    list_calls: int = 0
    list_all_calls: int = 0
    writes: list[str] = field(default_factory=list)
    fail_listing: bool = False
    fail_urls: bool = False
    fail_write: bool = False
    gate: asyncio.Event | None = None

    def add(self, *names: str, prefix: str = "photos") -> None:
        for name in names:
            self.objects[object_path(prefix, name)] = f"bytes of {name}".encode()

    def _handles(self, prefix: str) -> list[ObjectHandle]:
        folder = prefix.strip("/") + "/"
        return [
            ObjectHandle(name=path.removeprefix(folder), path=path)
            for path in self.objects
            if path.startswith(folder)
        ]

    async def list_objects(
        self, prefix: str, limit: int, cursor: str | None
    ) -> ObjectPage:
        self.list_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_listing:
            raise ListingFailure("listing unavailable")
        handles = sorted(
            self._handles(prefix), key=lambda handle: handle.name, reverse=True
        )
        offset = int(cursor) if cursor else 0
        page = handles[offset : offset + limit]
        next_cursor = str(offset + len(page)) if len(page) >= limit else None
        return ObjectPage(items=page, next_cursor=next_cursor)

    async def list_all_objects(self, prefix: str) -> list[ObjectHandle]:
        self.list_all_calls += 1
        if self.fail_listing:
            raise ListingFailure("listing unavailable")
        return list(reversed(self._handles(prefix)))

    async def resolve_retrieval_url(self, handle: ObjectHandle) -> str:
        if self.fail_urls:
            raise UrlResolutionFailure("signing unavailable")
        return f"https://cdn.test/{handle.path}?token=signed"

    async def write_object(
        self, path: str, data: bytes, content_type: str
    ) -> ObjectHandle:
        if self.fail_write:
            raise UploadWriteFailure("bucket unavailable")
        self.writes.append(path)
        self.objects[path] = data
        self.content_types[path] = content_type
        return ObjectHandle(name=path.rsplit("/", 1)[-1], path=path)

    async def read_object_bytes(self, handle: ObjectHandle) -> bytes:
        if handle.path not in self.objects:
            raise DownloadFailure(f"missing {handle.path}")
        return self.objects[handle.path]


@dataclass
class FakeIdentityProvider(IdentityProvider):
    """Identity provider that issues sessions for any link with a token."""

    sent: list[tuple[str, str]] = field(default_factory=list)
    exchanges: list[tuple[str, str]] = field(default_factory=list)
    revoked: list[str] = field(default_factory=list)
    fail_request: bool = False
    fail_exchange: bool = False
    restorable: bool = True

    async def request_sign_in_link(self, email: str, return_url: str) -> None:
        if self.fail_request:
            raise AuthRequestFailure("mailer unavailable")
        self.sent.append((email, return_url))

    def is_sign_in_link(self, url: str) -> bool:
        query = parse_qs(urlsplit(url).query)
        return "token" in query and query.get("type") == ["email"]

    async def exchange_link_for_session(self, email: str, url: str) -> AuthSession:
        self.exchanges.append((email, url))
        if self.fail_exchange:
            raise AuthExchangeFailure("token expired")
        return AuthSession(
            user_id=f"user-{email}",
            email=email,
            access_token="access-token",
            refresh_token="refresh-token",
        )

    async def restore_session(self, session: AuthSession) -> AuthSession | None:
        return session if self.restorable else None

    async def sign_out(self, session: AuthSession) -> None:
        self.revoked.append(session.user_id)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_anon_key="anon-key",
        supabase_service_key="service-key",
        session_secret="session-secret",
        photos_per_page=2,
        max_file_size_mb=1,
        environment="test",
    )


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def event_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def events(event_sink: RecordingEventSink) -> EventRecorder:
    return EventRecorder(sink=event_sink)


@pytest.fixture
def guest_session() -> AuthSession:
    return AuthSession(
        user_id="user-1",
        email="guest@example.com",
        access_token="access-token",
        refresh_token="refresh-token",
    )


@pytest.fixture
def container(
    settings: Settings,
    identity_provider: FakeIdentityProvider,
    object_store: InMemoryObjectStore,
    events: EventRecorder,
) -> AppContainer:
    return build_services(
        settings,
        identity_provider=identity_provider,
        object_store=object_store,
        events=events,
    )
