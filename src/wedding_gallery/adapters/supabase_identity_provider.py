"""Supabase Auth adapter for email-link sign-in."""

import logging
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from supabase import AsyncClient

from wedding_gallery.domain.auth import AuthSession
from wedding_gallery.domain.errors import AuthExchangeFailure, AuthRequestFailure
from wedding_gallery.services.sign_in import IdentityProvider

logger = logging.getLogger(__name__)

# The email template must link back as {{ .RedirectTo }}?token={{ .Token }}&type=email
_LINK_TYPES = {"email", "magiclink", "signup", "invite"}


def _link_params(url: str) -> tuple[str | None, str | None]:
    query = parse_qs(urlsplit(url).query)
    token = query.get("token", [None])[0]
    link_type = query.get("type", [None])[0]
    return token, link_type


def _to_session(response: object, fallback_email: str | None = None) -> AuthSession:
    user = getattr(response, "user", None)
    session = getattr(response, "session", None)
    if user is None or session is None:
        raise AuthExchangeFailure("Identity platform returned no session")
    return AuthSession(
        user_id=str(user.id),
        email=user.email or fallback_email or "",
        access_token=session.access_token,
        refresh_token=session.refresh_token,
    )


@dataclass
class SupabaseIdentityProvider(IdentityProvider):
    """Email one-time links through Supabase Auth."""

    client: AsyncClient
    allow_new_guests: bool = True

    async def request_sign_in_link(self, email: str, return_url: str) -> None:
        """Send an email OTP link that returns the guest to ``return_url``."""
        try:
            await self.client.auth.sign_in_with_otp(
                {
                    "email": email,
                    "options": {
                        "email_redirect_to": return_url,
                        "should_create_user": self.allow_new_guests,
                    },
                }
            )
        except Exception as exc:
            raise AuthRequestFailure(str(exc)) from exc

    def is_sign_in_link(self, url: str) -> bool:
        """Return true when the URL carries an email OTP token."""
        token, link_type = _link_params(url)
        return bool(token) and link_type in _LINK_TYPES

    async def exchange_link_for_session(self, email: str, url: str) -> AuthSession:
        """Verify the link's token against the email it was sent to."""
        token, link_type = _link_params(url)
        if not token or link_type not in _LINK_TYPES:
            raise AuthExchangeFailure("URL does not carry a sign-in link")
        try:
            response = await self.client.auth.verify_otp(
                {"email": email, "token": token, "type": link_type}
            )
        except Exception as exc:
            raise AuthExchangeFailure(str(exc)) from exc
        session = _to_session(response, fallback_email=email)
        if session.email.lower() != email.lower():
            raise AuthExchangeFailure("Sign-in link belongs to a different email")
        return session

    async def restore_session(self, session: AuthSession) -> AuthSession | None:
        """Validate the cached access token, refreshing it once if rejected."""
        try:
            response = await self.client.auth.get_user(session.access_token)
        except Exception:
            logger.info(
                "Cached access token rejected", extra={"user_id": session.user_id}
            )
            response = None
        if response is not None and response.user is not None:
            return AuthSession(
                user_id=str(response.user.id),
                email=response.user.email or session.email,
                access_token=session.access_token,
                refresh_token=session.refresh_token,
            )
        try:
            refreshed = await self.client.auth.refresh_session(session.refresh_token)
            return _to_session(refreshed, fallback_email=session.email)
        except Exception:
            logger.info(
                "Cached session could not be refreshed",
                extra={"user_id": session.user_id},
            )
            return None

    async def sign_out(self, session: AuthSession) -> None:
        """Revoke the guest's refresh tokens."""
        await self.client.auth.admin.sign_out(session.access_token)
