"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import AsyncClient, AsyncClientOptions

from wedding_gallery.adapters.supabase_identity_provider import (
    SupabaseIdentityProvider,
)
from wedding_gallery.adapters.supabase_object_store import SupabaseObjectStore
from wedding_gallery.config import Settings, parse_listing_strategy
from wedding_gallery.domain.auth import AuthSession
from wedding_gallery.services.analytics import EventRecorder
from wedding_gallery.services.downloads import DownloadService
from wedding_gallery.services.feed import FeedPaginator, ObjectStore, build_listing
from wedding_gallery.services.notifications import Notifier
from wedding_gallery.services.sign_in import IdentityProvider, SessionResolver
from wedding_gallery.services.uploads import UploadCoordinator, UploadPolicy
from wedding_gallery.services.visitors import VisitorRegistry, VisitorState


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    identity_provider: IdentityProvider
    object_store: ObjectStore
    events: EventRecorder
    session_resolver: SessionResolver
    upload_coordinator: UploadCoordinator
    download_service: DownloadService
    visitors: VisitorRegistry
    close_resources: Callable[[], Awaitable[None]]


def build_services(
    settings: Settings,
    identity_provider: IdentityProvider,
    object_store: ObjectStore,
    events: EventRecorder | None = None,
    close_resources: Callable[[], Awaitable[None]] | None = None,
) -> AppContainer:
    """Wire the gallery services around the given platform adapters."""
    resolved_events = events or EventRecorder()
    listing_strategy = parse_listing_strategy(settings.listing_strategy)
    debug = settings.environment == "local"

    def feed_factory(session: AuthSession) -> FeedPaginator:
        return FeedPaginator(
            store=object_store,
            listing=build_listing(
                listing_strategy,
                object_store,
                settings.photos_path,
                settings.photos_per_page,
            ),
            events=resolved_events,
            user=session.user_id,
        )

    def visitor_factory() -> VisitorState:
        return VisitorState(
            feed_factory=feed_factory,
            notifier=Notifier(debug=debug),
            events=resolved_events,
        )

    async def close_nothing() -> None:
        return None

    return AppContainer(
        settings=settings,
        identity_provider=identity_provider,
        object_store=object_store,
        events=resolved_events,
        session_resolver=SessionResolver(
            identity=identity_provider, events=resolved_events
        ),
        upload_coordinator=UploadCoordinator(
            store=object_store,
            prefix=settings.photos_path,
            policy=UploadPolicy(
                enabled=settings.validate_uploads,
                max_size_mb=settings.max_file_size_mb,
            ),
            events=resolved_events,
        ),
        download_service=DownloadService(
            store=object_store, prefix=settings.photos_path, events=resolved_events
        ),
        visitors=VisitorRegistry(visitor_factory, settings.visitor_ttl_seconds),
        close_resources=close_resources or close_nothing,
    )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    # Shared by every visitor and always called with explicit tokens.
    auth_client = AsyncClient(
        resolved_settings.supabase_url,
        resolved_settings.supabase_anon_key,
        AsyncClientOptions(auto_refresh_token=False, persist_session=False),
    )
    storage_client = AsyncClient(
        resolved_settings.supabase_url,
        resolved_settings.supabase_service_key,
        AsyncClientOptions(auto_refresh_token=False, persist_session=False),
    )
    identity_provider = SupabaseIdentityProvider(
        client=auth_client, allow_new_guests=resolved_settings.allow_new_guests
    )
    object_store = SupabaseObjectStore(
        client=storage_client,
        bucket=resolved_settings.storage_bucket,
        signed_url_ttl_seconds=resolved_settings.signed_url_ttl_seconds,
    )

    async def close_resources() -> None:
        container.visitors.clear()

    container = build_services(
        resolved_settings,
        identity_provider=identity_provider,
        object_store=object_store,
        close_resources=close_resources,
    )
    return container
