"""Domain models for guest sign-in."""

from dataclasses import dataclass
from enum import StrEnum


class SignInPhase(StrEnum):
    """Where a visitor currently is in the email-link sign-in flow."""

    SIGNED_OUT = "signed_out"
    AWAITING_LINK_CLICK = "awaiting_link_click"
    PROMPT_EMAIL = "prompt_email"
    AUTHENTICATING = "authenticating"
    SIGNED_IN = "signed_in"


@dataclass(frozen=True)
class AuthSession:
    """Represents an authenticated guest as issued by the identity platform."""

    user_id: str
    email: str
    access_token: str
    refresh_token: str

    def to_cookie(self) -> dict[str, str]:
        """Serialize the session for the signed session cookie."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
        }

    @classmethod
    def from_cookie(cls, data: object) -> "AuthSession | None":
        """Rebuild a session from cookie data, ignoring malformed payloads."""
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                user_id=str(data["user_id"]),
                email=str(data["email"]),
                access_token=str(data["access_token"]),
                refresh_token=str(data["refresh_token"]),
            )
        except KeyError:
            return None
