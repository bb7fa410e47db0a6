"""Email-link sign-in flow."""

import logging
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import urlsplit, urlunsplit

from wedding_gallery.domain.auth import AuthSession, SignInPhase
from wedding_gallery.domain.errors import AuthExchangeFailure, AuthRequestFailure
from wedding_gallery.services.analytics import EventRecorder

logger = logging.getLogger(__name__)

PENDING_EMAIL_KEY = "emailForSignIn"

PhaseObserver = Callable[[SignInPhase], None]


class IdentityProvider(Protocol):
    """Interface to the platform that issues and verifies sign-in links."""

    async def request_sign_in_link(self, email: str, return_url: str) -> None:
        """Email a one-time sign-in link that returns to ``return_url``."""

    def is_sign_in_link(self, url: str) -> bool:
        """Return true when the URL carries a sign-in link."""

    async def exchange_link_for_session(self, email: str, url: str) -> AuthSession:
        """Exchange a sign-in link plus its email for a session."""

    async def restore_session(self, session: AuthSession) -> AuthSession | None:
        """Validate a cached session, refreshing it when possible."""

    async def sign_out(self, session: AuthSession) -> None:
        """Revoke the session on the platform."""


class KeyValueStore(Protocol):
    """Small per-browser persisted storage."""

    def get(self, key: str) -> str | None:
        """Return the stored value, if present."""

    def set(self, key: str, value: str) -> None:
        """Store a value."""

    def remove(self, key: str) -> None:
        """Remove a value if present."""


@dataclass
class MappingStore(KeyValueStore):
    """Key-value store backed by a mutable mapping such as a cookie session."""

    data: MutableMapping[str, object]

    def get(self, key: str) -> str | None:
        value = self.data.get(key)
        return value if isinstance(value, str) and value else None

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


@dataclass(frozen=True)
class Resolution:
    """Outcome of one step of the sign-in flow."""

    phase: SignInPhase
    session: AuthSession | None = None
    redirect_to: str | None = None
    error: AuthExchangeFailure | None = None
    exchanged: bool = False


def strip_link_artifacts(url: str) -> str:
    """Drop the query and fragment that carried the sign-in link."""
    parts = urlsplit(url)
    return urlunsplit(("", "", "/" + parts.path.lstrip("/"), "", ""))


@dataclass
class SessionResolver:
    """Decides what a page load means for the visitor's sign-in state.

    The pending email lives in the visitor's browser between requesting a
    link and opening it. The link may be opened in another browser, in
    which case the email has to be asked for again before the exchange,
    because the platform uses it to confirm the link.
    """

    identity: IdentityProvider
    events: EventRecorder = field(default_factory=EventRecorder)

    async def request_sign_in_link(
        self, email: str, return_url: str, pending: KeyValueStore
    ) -> SignInPhase:
        """Send a sign-in link and remember which email asked for it."""
        cleaned = email.strip()
        if "@" not in cleaned:
            raise AuthRequestFailure(
                "Invalid email address",
                user_message="Please enter a valid email address.",
            )
        try:
            await self.identity.request_sign_in_link(cleaned, return_url)
        except AuthRequestFailure as exc:
            logger.exception("Failed to send sign-in link")
            self.events.record_exception(exc, "Error sending sign-in link")
            raise
        pending.set(PENDING_EMAIL_KEY, cleaned)
        self.events.record("email_sign_in", email=cleaned)
        return SignInPhase.AWAITING_LINK_CLICK

    async def restore(self, cached: AuthSession | None) -> AuthSession | None:
        """Return the platform-validated session for a cached one, if any."""
        if cached is None:
            return None
        return await self.identity.restore_session(cached)

    async def resolve(
        self,
        url: str,
        restored: AuthSession | None,
        pending: KeyValueStore,
        on_phase: PhaseObserver | None = None,
    ) -> Resolution:
        """Resolve the sign-in state for a page load at ``url``."""
        if not self.identity.is_sign_in_link(url):
            if restored is not None:
                return Resolution(SignInPhase.SIGNED_IN, session=restored)
            if pending.get(PENDING_EMAIL_KEY) is not None:
                return Resolution(SignInPhase.AWAITING_LINK_CLICK)
            return Resolution(SignInPhase.SIGNED_OUT)

        email = pending.get(PENDING_EMAIL_KEY)
        if email is None:
            if restored is not None:
                return Resolution(
                    SignInPhase.SIGNED_IN,
                    session=restored,
                    redirect_to=strip_link_artifacts(url),
                )
            return Resolution(SignInPhase.PROMPT_EMAIL)
        return await self._complete(
            email, url, pending, SignInPhase.SIGNED_OUT, on_phase
        )

    async def confirm_email(
        self,
        email: str,
        url: str,
        pending: KeyValueStore,
        on_phase: PhaseObserver | None = None,
    ) -> Resolution:
        """Complete sign-in with an email entered in the confirmation prompt."""
        if not self.identity.is_sign_in_link(url):
            return Resolution(
                SignInPhase.SIGNED_OUT,
                error=AuthExchangeFailure(
                    "Missing sign-in link",
                    user_message="This sign-in link is no longer valid.",
                ),
            )
        return await self._complete(
            email.strip(), url, pending, SignInPhase.PROMPT_EMAIL, on_phase
        )

    async def sign_out(self, session: AuthSession | None) -> SignInPhase:
        """Revoke the session; local state is cleared by the caller either way."""
        if session is not None:
            try:
                await self.identity.sign_out(session)
            except Exception:
                logger.exception(
                    "Failed to revoke session", extra={"user_id": session.user_id}
                )
        return SignInPhase.SIGNED_OUT

    async def _complete(
        self,
        email: str,
        url: str,
        pending: KeyValueStore,
        on_failure: SignInPhase,
        on_phase: PhaseObserver | None = None,
    ) -> Resolution:
        if on_phase is not None:
            on_phase(SignInPhase.AUTHENTICATING)
        try:
            session = await self.identity.exchange_link_for_session(email, url)
        except AuthExchangeFailure as exc:
            logger.exception("Failed to complete sign-in")
            self.events.record_exception(exc, "Error signing in")
            return Resolution(on_failure, error=exc)
        pending.remove(PENDING_EMAIL_KEY)
        self.events.record("login", email=session.email, user=session.user_id)
        return Resolution(
            SignInPhase.SIGNED_IN,
            session=session,
            redirect_to=strip_link_artifacts(url),
            exchanged=True,
        )
