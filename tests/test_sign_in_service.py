"""Tests for the email-link sign-in flow."""

import asyncio

import pytest

from wedding_gallery.domain.auth import SignInPhase
from wedding_gallery.domain.errors import AuthRequestFailure
from wedding_gallery.services.sign_in import (
    PENDING_EMAIL_KEY,
    MappingStore,
    SessionResolver,
    strip_link_artifacts,
)
from tests.conftest import FakeIdentityProvider, RecordingEventSink

LINK = "https://gallery.test/?token=123456&type=email"


def test_request_link_persists_email_without_exchange(
    identity_provider: FakeIdentityProvider, events, event_sink: RecordingEventSink
) -> None:
    resolver = SessionResolver(identity=identity_provider, events=events)
    pending = MappingStore({})

    phase = asyncio.run(
        resolver.request_sign_in_link(
            " guest@example.com ", "https://gallery.test/", pending
        )
    )

    assert phase is SignInPhase.AWAITING_LINK_CLICK
    assert pending.get(PENDING_EMAIL_KEY) == "guest@example.com"
    assert identity_provider.sent == [("guest@example.com", "https://gallery.test/")]
    assert identity_provider.exchanges == []
    assert event_sink.names() == ["email_sign_in"]


def test_request_link_failure_keeps_nothing(
    identity_provider: FakeIdentityProvider,
) -> None:
    identity_provider.fail_request = True
    resolver = SessionResolver(identity=identity_provider)
    pending = MappingStore({})

    with pytest.raises(AuthRequestFailure):
        asyncio.run(
            resolver.request_sign_in_link(
                "guest@example.com", "https://gallery.test/", pending
            )
        )

    assert pending.get(PENDING_EMAIL_KEY) is None


def test_request_link_rejects_malformed_email(
    identity_provider: FakeIdentityProvider,
) -> None:
    resolver = SessionResolver(identity=identity_provider)

    with pytest.raises(AuthRequestFailure):
        asyncio.run(
            resolver.request_sign_in_link("not-an-email", "/", MappingStore({}))
        )

    assert identity_provider.sent == []


def test_link_with_known_email_exchanges_once(
    identity_provider: FakeIdentityProvider,
) -> None:
    resolver = SessionResolver(identity=identity_provider)
    pending = MappingStore({PENDING_EMAIL_KEY: "guest@example.com"})

    resolution = asyncio.run(resolver.resolve(LINK, None, pending))

    assert resolution.phase is SignInPhase.SIGNED_IN
    assert resolution.exchanged is True
    assert resolution.session is not None
    assert resolution.session.email == "guest@example.com"
    assert resolution.redirect_to == "/"
    assert identity_provider.exchanges == [("guest@example.com", LINK)]
    assert pending.get(PENDING_EMAIL_KEY) is None


def test_link_without_known_email_prompts_first(
    identity_provider: FakeIdentityProvider,
) -> None:
    resolver = SessionResolver(identity=identity_provider)
    pending = MappingStore({})

    resolution = asyncio.run(resolver.resolve(LINK, None, pending))

    assert resolution.phase is SignInPhase.PROMPT_EMAIL
    assert identity_provider.exchanges == []

    confirmed = asyncio.run(
        resolver.confirm_email("guest@example.com", LINK, pending)
    )

    assert confirmed.phase is SignInPhase.SIGNED_IN
    assert identity_provider.exchanges == [("guest@example.com", LINK)]


def test_failed_exchange_is_not_fatal(
    identity_provider: FakeIdentityProvider, events, event_sink: RecordingEventSink
) -> None:
    identity_provider.fail_exchange = True
    resolver = SessionResolver(identity=identity_provider, events=events)
    pending = MappingStore({PENDING_EMAIL_KEY: "guest@example.com"})

    automatic = asyncio.run(resolver.resolve(LINK, None, pending))
    prompted = asyncio.run(
        resolver.confirm_email("guest@example.com", LINK, MappingStore({}))
    )

    assert automatic.phase is SignInPhase.SIGNED_OUT
    assert automatic.error is not None
    assert automatic.redirect_to is None
    assert prompted.phase is SignInPhase.PROMPT_EMAIL
    assert pending.get(PENDING_EMAIL_KEY) == "guest@example.com"
    assert event_sink.names() == ["exception", "exception"]


def test_page_without_link_uses_restored_session(
    identity_provider: FakeIdentityProvider, guest_session
) -> None:
    resolver = SessionResolver(identity=identity_provider)

    signed_in = asyncio.run(
        resolver.resolve("https://gallery.test/", guest_session, MappingStore({}))
    )
    signed_out = asyncio.run(
        resolver.resolve("https://gallery.test/", None, MappingStore({}))
    )
    waiting = asyncio.run(
        resolver.resolve(
            "https://gallery.test/",
            None,
            MappingStore({PENDING_EMAIL_KEY: "guest@example.com"}),
        )
    )

    assert signed_in.phase is SignInPhase.SIGNED_IN
    assert signed_in.session == guest_session
    assert signed_out.phase is SignInPhase.SIGNED_OUT
    assert waiting.phase is SignInPhase.AWAITING_LINK_CLICK
    assert identity_provider.exchanges == []


def test_stale_link_with_restored_session_is_stripped(
    identity_provider: FakeIdentityProvider, guest_session
) -> None:
    resolver = SessionResolver(identity=identity_provider)

    resolution = asyncio.run(resolver.resolve(LINK, guest_session, MappingStore({})))

    assert resolution.phase is SignInPhase.SIGNED_IN
    assert resolution.redirect_to == "/"
    assert resolution.exchanged is False
    assert identity_provider.exchanges == []


def test_confirm_without_link_fails(identity_provider: FakeIdentityProvider) -> None:
    resolver = SessionResolver(identity=identity_provider)

    resolution = asyncio.run(
        resolver.confirm_email("guest@example.com", "/", MappingStore({}))
    )

    assert resolution.phase is SignInPhase.SIGNED_OUT
    assert resolution.error is not None
    assert identity_provider.exchanges == []


def test_sign_out_revokes_session(
    identity_provider: FakeIdentityProvider, guest_session
) -> None:
    resolver = SessionResolver(identity=identity_provider)

    phase = asyncio.run(resolver.sign_out(guest_session))

    assert phase is SignInPhase.SIGNED_OUT
    assert identity_provider.revoked == ["user-1"]


def test_restore_without_cache_skips_platform(
    identity_provider: FakeIdentityProvider,
) -> None:
    identity_provider.restorable = False
    resolver = SessionResolver(identity=identity_provider)

    assert asyncio.run(resolver.restore(None)) is None


def test_strip_link_artifacts_keeps_path_only() -> None:
    assert strip_link_artifacts("https://gallery.test/album?token=1&type=email") == (
        "/album"
    )
    assert strip_link_artifacts("https://gallery.test?token=1#x") == "/"


def test_strip_link_artifacts_never_leaves_the_site() -> None:
    assert strip_link_artifacts("https://gallery.test///evil.example/x?token=1") == (
        "/evil.example/x"
    )


def test_exchange_passes_through_authenticating(
    identity_provider: FakeIdentityProvider,
) -> None:
    resolver = SessionResolver(identity=identity_provider)
    phases: list[SignInPhase] = []

    asyncio.run(
        resolver.resolve(
            LINK,
            None,
            MappingStore({PENDING_EMAIL_KEY: "guest@example.com"}),
            on_phase=phases.append,
        )
    )
    identity_provider.fail_exchange = True
    failed = asyncio.run(
        resolver.confirm_email(
            "guest@example.com", LINK, MappingStore({}), on_phase=phases.append
        )
    )
    asyncio.run(resolver.resolve(LINK, None, MappingStore({}), on_phase=phases.append))

    assert phases == [SignInPhase.AUTHENTICATING, SignInPhase.AUTHENTICATING]
    assert failed.phase is SignInPhase.PROMPT_EMAIL
