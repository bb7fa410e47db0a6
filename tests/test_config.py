"""Tests for configuration helpers."""

import pytest

from wedding_gallery.config import parse_listing_strategy


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, "native"), ("", "native"), (" Relist ", "relist"), ("native", "native")],
)
def test_parse_listing_strategy(raw, expected: str) -> None:
    assert parse_listing_strategy(raw) == expected


def test_parse_listing_strategy_rejects_unknown() -> None:
    with pytest.raises(ValueError):
        parse_listing_strategy("offset")
