"""Per-visitor UI state and its in-memory registry."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from wedding_gallery.domain.auth import AuthSession, SignInPhase
from wedding_gallery.services.analytics import EventRecorder
from wedding_gallery.services.feed import FeedPaginator
from wedding_gallery.services.notifications import Notifier
from wedding_gallery.services.scroll import ScrollTrigger

logger = logging.getLogger(__name__)

SessionObserver = Callable[[AuthSession | None], None]


@dataclass
class SessionStore:
    """Holds the visitor's session and tells subscribers when it changes."""

    session: AuthSession | None = None
    _observers: list[SessionObserver] = field(default_factory=list)

    def on_session_changed(self, observer: SessionObserver) -> Callable[[], None]:
        """Subscribe; the observer is called now and on every identity change."""
        self._observers.append(observer)
        observer(self.session)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def set(self, session: AuthSession | None) -> None:
        """Replace the session, notifying only when the signed-in user changes."""
        previous = self.session.user_id if self.session else None
        current = session.user_id if session else None
        self.session = session
        if previous == current:
            return
        for observer in list(self._observers):
            observer(session)


@dataclass
class VisitorState:
    """Everything the page shows for one browser.

    The feed belongs to the session it was built for: a session change
    throws it away and builds a fresh one instead of merging.
    """

    feed_factory: Callable[[AuthSession], FeedPaginator]
    notifier: Notifier = field(default_factory=Notifier)
    events: EventRecorder = field(default_factory=EventRecorder)
    sessions: SessionStore = field(default_factory=SessionStore)
    phase: SignInPhase = SignInPhase.SIGNED_OUT
    feed: FeedPaginator | None = None
    scroll: ScrollTrigger | None = None

    def __post_init__(self) -> None:
        self._unsubscribe = self.sessions.on_session_changed(self._on_session_changed)

    @property
    def session(self) -> AuthSession | None:
        return self.sessions.session

    def sign_in(self, session: AuthSession) -> None:
        self.sessions.set(session)
        self.phase = SignInPhase.SIGNED_IN

    def sign_out(self, phase: SignInPhase = SignInPhase.SIGNED_OUT) -> None:
        self.sessions.set(None)
        self.phase = phase

    def enter_phase(self, phase: SignInPhase) -> None:
        self.phase = phase

    async def ensure_first_page(self) -> None:
        """Load the first page of a freshly built feed, toasting on failure."""
        feed = self.feed
        if feed is None or feed.started or feed.state.loading:
            return
        try:
            await feed.load_first_page()
        except Exception as exc:
            logger.exception(
                "Failed to load first page", extra={"user_id": feed.user}
            )
            self.events.record_exception(exc, "Error fetching photos", user=feed.user)
            self.notifier.failure(exc)

    def close(self) -> None:
        """Tear down subscriptions when the state is discarded."""
        if self.scroll is not None:
            self.scroll.close()
        self._unsubscribe()

    def _on_session_changed(self, session: AuthSession | None) -> None:
        if self.scroll is not None:
            self.scroll.close()
        self.feed = None
        self.scroll = None
        if session is None:
            return
        self.feed = self.feed_factory(session)
        self.scroll = ScrollTrigger(
            feed=self.feed, notifier=self.notifier, events=self.events
        )


@dataclass
class _RegistryEntry:
    state: VisitorState
    expires_at: datetime


class VisitorRegistry:
    """In-memory visitor states that expire after a period of inactivity."""

    def __init__(
        self, factory: Callable[[], VisitorState], ttl_seconds: int
    ) -> None:
        self._factory = factory
        self._ttl = timedelta(seconds=ttl_seconds)
        self._entries: dict[str, _RegistryEntry] = {}

    def get(self, visitor_id: str) -> VisitorState | None:
        """Return a live state and extend its lifetime."""
        self._evict_expired()
        entry = self._entries.get(visitor_id)
        if entry is None:
            return None
        entry.expires_at = datetime.now(tz=UTC) + self._ttl
        return entry.state

    def get_or_create(self, visitor_id: str) -> VisitorState:
        """Return the visitor's state, creating it on first sight."""
        state = self.get(visitor_id)
        if state is not None:
            return state
        state = self._factory()
        self._entries[visitor_id] = _RegistryEntry(
            state=state, expires_at=datetime.now(tz=UTC) + self._ttl
        )
        return state

    def discard(self, visitor_id: str) -> None:
        entry = self._entries.pop(visitor_id, None)
        if entry is not None:
            entry.state.close()

    def clear(self) -> None:
        """Discard every visitor state."""
        for visitor_id in list(self._entries):
            self.discard(visitor_id)

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_expired(self) -> None:
        now = datetime.now(tz=UTC)
        expired = [
            key for key, entry in self._entries.items() if now >= entry.expires_at
        ]
        for key in expired:
            self.discard(key)
