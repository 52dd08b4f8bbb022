"""Tests for the HTTP fetcher."""

import httpx
import pytest

from catalog_ingest.core.errors import TransientFetchError
from catalog_ingest.ingestion.fetcher import Fetcher, availability_from_status


def fetcher_for(handler) -> Fetcher:
    return Fetcher(user_agent="TestAgent/1.0", transport=httpx.MockTransport(handler))


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (200, True),
        (302, True),
        (404, False),
        (410, False),
        (405, None),
        (429, None),
        (500, None),
        (None, None),
    ],
)
def test_availability_from_status(status: int | None, expected: bool | None) -> None:
    assert availability_from_status(status) is expected


class TestHead:
    """Tests for Fetcher.head."""

    def test_available(self) -> None:
        """Test a 200 answer."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["agent"] = request.headers["user-agent"]
            return httpx.Response(200, headers={"content-type": "text/html"})

        with fetcher_for(handler) as fetcher:
            result = fetcher.head("https://shop.example/p/1", timeout_ms=2000)

        assert result.availability is True
        assert result.status_code == 200
        assert result.content_type == "text/html"
        assert result.final_url == "https://shop.example/p/1"
        assert seen == {"method": "HEAD", "agent": "TestAgent/1.0"}

    def test_not_found_is_an_observation(self) -> None:
        """Test that a 404 is returned, not raised."""
        with fetcher_for(lambda request: httpx.Response(404)) as fetcher:
            result = fetcher.head("https://shop.example/gone", timeout_ms=2000)

        assert result.availability is False
        assert result.status_code == 404

    def test_redirects_are_followed(self) -> None:
        """Test final_url after a redirect."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": "https://shop.example/new"})
            return httpx.Response(200)

        with fetcher_for(handler) as fetcher:
            result = fetcher.head("https://shop.example/old", timeout_ms=2000)

        assert result.final_url == "https://shop.example/new"
        assert result.availability is True

    @pytest.mark.parametrize("error", [httpx.ConnectTimeout, httpx.ReadTimeout, httpx.ConnectError])
    def test_network_failures_are_transient(self, error: type[httpx.HTTPError]) -> None:
        """Test that timeouts and network errors surface as TransientFetchError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise error("boom", request=request)

        with fetcher_for(handler) as fetcher:
            with pytest.raises(TransientFetchError) as excinfo:
                fetcher.head("https://shop.example/p/1", timeout_ms=500)

        assert excinfo.value.url == "https://shop.example/p/1"


class TestGet:
    """Tests for Fetcher.get."""

    def test_body(self) -> None:
        """Test fetching a page."""
        body = "<html><body>Tank A</body></html>"
        with fetcher_for(lambda request: httpx.Response(200, text=body)) as fetcher:
            result = fetcher.get("https://shop.example/p/1", timeout_ms=2000)

        assert result.status_code == 200
        assert result.text == body

    def test_server_error_is_transient(self) -> None:
        """Test that non-2xx bodies raise."""
        with fetcher_for(lambda request: httpx.Response(503)) as fetcher:
            with pytest.raises(TransientFetchError) as excinfo:
                fetcher.get("https://shop.example/p/1", timeout_ms=2000)

        assert excinfo.value.status_code == 503
