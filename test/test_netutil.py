"""Tests for URL liveness checks."""

from __future__ import annotations

from unittest.mock import MagicMock, Mock

import requests

from modgraph.cache import ResourceStatusCache
from modgraph.netutil import CHECK_TIMEOUT, ResourceStatus, check_url, check_urls


def head_response(status_code: int, reason: str = "") -> Mock:
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    return response


class TestCheckURL:
    """Tests for probing a single URL."""

    def test_existing_url(self) -> None:
        """Test a URL answering 200."""
        session = MagicMock()
        session.head.return_value = head_response(200, "OK")
        status = check_url("https://example.com/a", session)
        assert status == ResourceStatus("https://example.com/a", 200, "OK")
        assert status.exists
        session.head.assert_called_once_with("https://example.com/a", timeout=CHECK_TIMEOUT, allow_redirects=True)

    def test_missing_url(self) -> None:
        """Test a URL answering 404."""
        session = MagicMock()
        session.head.return_value = head_response(404, "Not Found")
        assert not check_url("https://example.com/a", session).exists

    def test_transport_error(self) -> None:
        """Test that a failed request is recorded with code 0."""
        session = MagicMock()
        session.head.side_effect = requests.ConnectionError("refused")
        status = check_url("https://example.com/a", session)
        assert status.code == 0
        assert "refused" in status.message
        assert not status.exists


class TestCheckURLs:
    """Tests for checking many URLs against the status cache."""

    def test_cached_and_blacklisted_urls_are_not_requested(self) -> None:
        """Test that only unknown URLs are probed and that they are recorded."""
        cache = ResourceStatusCache()
        cache.put(ResourceStatus("https://example.com/cached", 200, "OK"))
        session = MagicMock()
        session.head.return_value = head_response(200, "OK")
        statuses = check_urls(
            ["https://example.com/cached", "https://example.com/new", "https://example.com/new", "https://bad"],
            cache=cache,
            blacklist=["https://bad"],
            session=session,
        )
        assert sorted(statuses) == ["https://example.com/cached", "https://example.com/new"]
        session.head.assert_called_once()
        assert session.head.call_args.args[0] == "https://example.com/new"
        assert cache.get("https://example.com/new") == ResourceStatus("https://example.com/new", 200, "OK")

    def test_without_cache(self) -> None:
        """Test checking URLs without recording them."""
        session = MagicMock()
        session.head.side_effect = lambda url, **_: head_response(404 if url.endswith("missing") else 200)
        statuses = check_urls(["https://example.com/ok", "https://example.com/missing"], session=session)
        assert statuses["https://example.com/ok"].exists
        assert not statuses["https://example.com/missing"].exists
