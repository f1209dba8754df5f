"""Tests for remote package fetching."""

from pathlib import Path

import httpx
import pytest

from manifest_generator.core.exceptions import FetchFailureError
from manifest_generator.pipeline import LinkFetcher


def make_fetcher(handler, download_dir: Path) -> LinkFetcher:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return LinkFetcher(download_dir=download_dir, client=client)


class TestLinkFetcher:
    """Tests for LinkFetcher.fetch."""

    def test_downloads_to_temp_file(self, temp_dir: Path) -> None:
        fetcher = make_fetcher(lambda request: httpx.Response(200, content=b"PK\x03\x04data"), temp_dir)

        path = fetcher.fetch("https://example.com/app.ipa")

        assert path.parent == temp_dir
        assert path.suffix == ".ipa"
        assert path.read_bytes() == b"PK\x03\x04data"

    def test_http_error_fails_without_retry(self, temp_dir: Path) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            return httpx.Response(404)

        fetcher = make_fetcher(handler, temp_dir)

        with pytest.raises(FetchFailureError) as exc_info:
            fetcher.fetch("https://example.com/missing.ipa")

        assert exc_info.value.url == "https://example.com/missing.ipa"
        assert len(calls) == 1
        assert list(temp_dir.iterdir()) == []

    def test_status_code_is_client_error(self, temp_dir: Path) -> None:
        fetcher = make_fetcher(lambda request: httpx.Response(500), temp_dir)
        with pytest.raises(FetchFailureError) as exc_info:
            fetcher.fetch("https://example.com/app.ipa")
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize(
        "url",
        ["", "ftp://example.com/app.ipa", "file:///etc/passwd", "not a url"],
    )
    def test_rejects_non_http_links(self, url: str, temp_dir: Path) -> None:
        fetcher = make_fetcher(lambda request: httpx.Response(200), temp_dir)
        with pytest.raises(FetchFailureError):
            fetcher.fetch(url)
        assert list(temp_dir.iterdir()) == []

    @pytest.mark.parametrize(
        "url",
        [
            "http://[::1/x",
            "http://a\x00b/x",
            "http://" + "a" * 300 + ".com/x",
        ],
    )
    def test_malformed_links_leave_no_file(self, url: str, temp_dir: Path) -> None:
        """Links that fail URL parsing are fetch failures and clean up after themselves."""
        fetcher = make_fetcher(lambda request: httpx.Response(200, content=b"x"), temp_dir)
        with pytest.raises(FetchFailureError) as exc_info:
            fetcher.fetch(url)
        assert exc_info.value.status_code == 400
        assert list(temp_dir.iterdir()) == []

    def test_close(self, temp_dir: Path) -> None:
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        LinkFetcher(download_dir=temp_dir, client=client).close()
        assert client.is_closed
