"""FastAPI application factory."""

import logging
import mimetypes
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import quote, urlsplit, urlunsplit
from uuid import uuid4

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel
from starlette.middleware.sessions import SessionMiddleware

from wedding_gallery.app_logging import configure_logging
from wedding_gallery.containers import AppContainer
from wedding_gallery.domain.auth import AuthSession, SignInPhase
from wedding_gallery.domain.errors import (
    AuthRequestFailure,
    DownloadFailure,
    GalleryError,
    UploadValidationFailure,
)
from wedding_gallery.services.sign_in import (
    PENDING_EMAIL_KEY,
    MappingStore,
    Resolution,
)
from wedding_gallery.services.uploads import LocalFile
from wedding_gallery.services.visitors import VisitorState

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"

VISITOR_KEY = "visitor_id"
AUTH_KEY = "auth"


class VisibilityReport(BaseModel):
    """Sentinel visibility change reported by the page."""

    visible: bool
    generation: int | None = None


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)
    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
    settings = container.settings
    resolver = container.session_resolver

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        same_site="lax",
        https_only=settings.environment == "production",
    )

    def visitor(request: Request) -> VisitorState:
        visitor_id = request.session.get(VISITOR_KEY)
        if not isinstance(visitor_id, str):
            visitor_id = uuid4().hex
            request.session[VISITOR_KEY] = visitor_id
        return container.visitors.get_or_create(visitor_id)

    async def restore(request: Request, state: VisitorState) -> AuthSession | None:
        if state.session is not None:
            return state.session
        cached = AuthSession.from_cookie(request.session.get(AUTH_KEY))
        restored = await resolver.restore(cached)
        if restored is None:
            request.session.pop(AUTH_KEY, None)
        return restored

    async def signed_in(request: Request) -> VisitorState:
        state = visitor(request)
        session = await restore(request, state)
        if session is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        if state.session is None:
            state.sign_in(session)
            request.session[AUTH_KEY] = session.to_cookie()
        return state

    def apply(
        request: Request, state: VisitorState, resolution: Resolution
    ) -> None:
        if resolution.error is not None:
            state.notifier.failure(resolution.error)
        if resolution.session is None:
            state.sign_out(resolution.phase)
            request.session.pop(AUTH_KEY, None)
            return
        state.sign_in(resolution.session)
        request.session[AUTH_KEY] = resolution.session.to_cookie()
        if resolution.exchanged:
            state.notifier.success("Successfully signed in!")

    def render(
        request: Request, state: VisitorState, link: str | None = None
    ) -> Response:
        feed = state.feed
        items = [item.to_dict() for item in feed.state.items] if feed else []
        return templates.TemplateResponse(
            request,
            "page.html",
            {
                "app_title": settings.app_title,
                "phase": state.phase.value,
                "email": state.session.email if state.session else None,
                "pending_email": request.session.get(PENDING_EMAIL_KEY),
                "link": link,
                "items": items,
                "has_more": feed.state.has_more if feed else False,
                "loading": feed.state.loading if feed else False,
                "generation": state.scroll.generation if state.scroll else 0,
                "max_file_size_mb": settings.max_file_size_mb,
                "toasts": [toast.to_dict() for toast in state.notifier.drain()],
            },
        )

    def drained(state: VisitorState) -> list[dict[str, str]]:
        return [toast.to_dict() for toast in state.notifier.drain()]

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/", response_class=HTMLResponse, name="index")
    async def index(request: Request) -> Response:
        """Render the sign-in page or the gallery for the current visitor."""
        state = visitor(request)
        restored = await restore(request, state)
        url = str(request.url)
        resolution = await resolver.resolve(
            url, restored, MappingStore(request.session), on_phase=state.enter_phase
        )
        apply(request, state, resolution)
        if resolution.redirect_to is not None:
            return RedirectResponse(
                resolution.redirect_to, status_code=status.HTTP_303_SEE_OTHER
            )
        if state.session is not None:
            await state.ensure_first_page()
        container.events.record(
            "page_view", user=state.session.user_id if state.session else None
        )
        link = url if state.phase is SignInPhase.PROMPT_EMAIL else None
        return render(request, state, link=link)

    @app.post("/auth/link")
    async def send_sign_in_link(request: Request, email: str = Form(...)) -> Response:
        """Email a sign-in link to a guest."""
        state = visitor(request)
        return_url = str(request.url_for("index"))
        try:
            state.phase = await resolver.request_sign_in_link(
                email, return_url, MappingStore(request.session)
            )
        except AuthRequestFailure as exc:
            state.phase = SignInPhase.SIGNED_OUT
            state.notifier.failure(exc)
        else:
            state.notifier.success("Sign-in link sent to your email!")
        return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)

    @app.post("/auth/confirm")
    async def confirm_email(
        request: Request, email: str = Form(...), link: str = Form(...)
    ) -> Response:
        """Finish signing in with an email re-entered in the confirmation modal."""
        state = visitor(request)
        resolution = await resolver.confirm_email(
            email, link, MappingStore(request.session), on_phase=state.enter_phase
        )
        apply(request, state, resolution)
        if resolution.redirect_to is not None:
            target = resolution.redirect_to
        elif resolution.phase is SignInPhase.PROMPT_EMAIL:
            target = _local_url(link)
        else:
            target = "/"
        return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)

    @app.post("/auth/sign-out")
    async def sign_out(request: Request) -> Response:
        """Sign the visitor out and drop their feed."""
        state = visitor(request)
        await resolver.sign_out(state.session)
        state.sign_out()
        request.session.pop(AUTH_KEY, None)
        state.notifier.info("You have been signed out.")
        return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)

    @app.post("/feed/visibility")
    async def sentinel_visibility(
        report: VisibilityReport, request: Request
    ) -> dict[str, object]:
        """Load the next page when the sentinel scrolls into view."""
        state = await signed_in(request)
        feed = state.feed
        scroll = state.scroll
        if feed is None or scroll is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        seen = {item.name for item in feed.state.items}
        loaded = await scroll.observe(report.visible, report.generation)
        items = [
            item.to_dict() for item in feed.state.items if item.name not in seen
        ]
        return {
            "loaded": loaded,
            "items": items,
            "has_more": feed.state.has_more,
            "loading": feed.state.loading,
            "generation": scroll.generation,
            "notifications": drained(state),
        }

    @app.post("/photos")
    async def upload_photo(
        request: Request, file: UploadFile = File(...)
    ) -> JSONResponse:
        """Upload a photo or video and return the new feed item."""
        state = await signed_in(request)
        feed = state.feed
        if feed is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        user_id = feed.user
        try:
            if file.size is not None:
                container.upload_coordinator.policy.validate(
                    file.content_type, file.size
                )
            data = await file.read()
            item = await container.upload_coordinator.upload(
                LocalFile(
                    filename=file.filename or "upload",
                    content_type=file.content_type,
                    data=data,
                ),
                feed,
                user=user_id,
            )
        except UploadValidationFailure as exc:
            logger.info("Rejected upload: %s", exc, extra={"user_id": user_id})
            state.notifier.failure(exc)
            return JSONResponse(
                {"item": None, "notifications": drained(state)},
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        except GalleryError as exc:
            logger.exception("Failed to upload media", extra={"user_id": user_id})
            container.events.record_exception(
                exc, "Error uploading image", user=user_id
            )
            state.notifier.failure(exc)
            return JSONResponse(
                {"item": None, "notifications": drained(state)},
                status_code=status.HTTP_502_BAD_GATEWAY,
            )
        state.notifier.success("Image uploaded successfully!")
        return JSONResponse(
            {"item": item.to_dict(), "notifications": drained(state)},
            status_code=status.HTTP_201_CREATED,
        )

    @app.get("/photos/{name}/download")
    async def download_photo(name: str, request: Request) -> Response:
        """Send a stored photo as an attachment."""
        state = await signed_in(request)
        user_id = state.session.user_id if state.session else None
        try:
            download = await container.download_service.download(name, user=user_id)
        except DownloadFailure as exc:
            logger.exception(
                "Failed to download media", extra={"user_id": user_id, "name": name}
            )
            container.events.record_exception(
                exc, "Error downloading image", user=user_id
            )
            return JSONResponse(
                {"detail": exc.user_message},
                status_code=status.HTTP_502_BAD_GATEWAY,
            )
        media_type, _ = mimetypes.guess_type(download.filename)
        return Response(
            content=download.data,
            media_type=media_type or "application/octet-stream",
            headers={
                "Content-Disposition": (
                    f"attachment; filename*=UTF-8''{quote(download.filename)}"
                )
            },
        )

    return app


def _local_url(url: str) -> str:
    """Reduce a URL to its path and query so redirects stay on this site."""
    parts = urlsplit(url)
    return urlunsplit(("", "", "/" + parts.path.lstrip("/"), parts.query, ""))
