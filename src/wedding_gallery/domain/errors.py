"""Errors raised by gallery operations.

Every error is non-fatal for the visitor: it is caught where the operation
was triggered, logged, and shown as a transient notification.
"""


class GalleryError(Exception):
    """Base class for user-facing gallery failures."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, detail: str | None = None, user_message: str | None = None):
        super().__init__(detail or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class AuthRequestFailure(GalleryError):
    user_message = "Error sending sign-in link. Please try again."


class AuthExchangeFailure(GalleryError):
    user_message = "Error signing in. Please try again."


class ListingFailure(GalleryError):
    user_message = "Error fetching photos. Please try again."


class UrlResolutionFailure(GalleryError):
    user_message = "Error fetching photos. Please try again."


class UploadValidationFailure(GalleryError):
    user_message = "Invalid file. Please upload an image or video file."


class UploadWriteFailure(GalleryError):
    user_message = "Error uploading image. Please try again."


class DownloadFailure(GalleryError):
    user_message = "Error downloading image. Please try again."
