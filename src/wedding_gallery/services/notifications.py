"""Transient notifications shown to a visitor."""

from dataclasses import dataclass, field

from wedding_gallery.domain.errors import GalleryError


@dataclass(frozen=True)
class Toast:
    """A short message rendered once and then discarded."""

    level: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"level": self.level, "message": self.message}


@dataclass
class Notifier:
    """Collects toasts until the next page render or API response drains them."""

    debug: bool = False
    _pending: list[Toast] = field(default_factory=list)

    def success(self, message: str) -> None:
        self._pending.append(Toast("success", message))

    def info(self, message: str) -> None:
        self._pending.append(Toast("info", message))

    def error(self, message: str) -> None:
        self._pending.append(Toast("error", message))

    def failure(self, exc: Exception, fallback: str | None = None) -> None:
        """Queue an error toast for an exception, with debug detail locally."""
        message = fallback or (
            exc.user_message
            if isinstance(exc, GalleryError)
            else GalleryError.user_message
        )
        if self.debug:
            detail = f"{type(exc).__name__}: {exc}".strip()
            if detail:
                message = f"{message} (debug: {detail})"
        self.error(message)

    def drain(self) -> list[Toast]:
        """Return and clear the pending toasts."""
        pending, self._pending = self._pending, []
        return pending
