"""Infinite-scroll trigger driven by sentinel visibility."""

import logging
from dataclasses import dataclass, field

from wedding_gallery.domain.photos import FeedState
from wedding_gallery.services.analytics import EventRecorder
from wedding_gallery.services.feed import FeedPaginator
from wedding_gallery.services.notifications import Notifier

logger = logging.getLogger(__name__)


@dataclass
class ScrollTrigger:
    """Requests the next page when the sentinel after the last item shows up.

    The page reports every visibility change of the sentinel. A load starts
    only on a hidden-to-visible transition while the feed has more items and
    is idle. The observation is re-attached whenever the feed's loading or
    has-more flags change, which resets the last seen visibility and bumps
    the generation so reports about an older sentinel are ignored.
    """

    feed: FeedPaginator
    notifier: Notifier
    events: EventRecorder = field(default_factory=EventRecorder)
    attached: bool = False
    generation: int = 0
    _visible: bool = False
    _deps: tuple[bool, bool] | None = None

    def __post_init__(self) -> None:
        self._unsubscribe = self.feed.subscribe(self._on_feed_changed)
        self._on_feed_changed(self.feed.state)

    async def observe(self, visible: bool, generation: int | None = None) -> bool:
        """Handle a visibility report. Returns true when a page was loaded."""
        if not self.attached:
            return False
        if generation is not None and generation != self.generation:
            return False
        was_visible, self._visible = self._visible, visible
        if not visible or was_visible:
            return False
        state = self.feed.state
        if not state.has_more or state.loading:
            return False
        try:
            return await self.feed.load_next_page()
        except Exception as exc:
            logger.exception(
                "Failed to load next page", extra={"user_id": self.feed.user}
            )
            self.events.record_exception(
                exc, "Error fetching photos", user=self.feed.user
            )
            self.notifier.failure(exc)
            return False

    def disconnect(self) -> None:
        """Stop reacting to visibility reports."""
        self.attached = False

    def close(self) -> None:
        """Detach and stop following the feed."""
        self.disconnect()
        self._unsubscribe()

    def _on_feed_changed(self, state: FeedState) -> None:
        deps = (state.loading, state.has_more)
        if deps == self._deps:
            return
        self._deps = deps
        self.disconnect()
        if state.loading:
            return
        self.generation += 1
        self._visible = False
        self.attached = True
