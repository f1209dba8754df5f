"""
Remote package fetching.

Downloads a package from a user-supplied link into a local temporary file
before it enters the pipeline.
"""

import logging
import os
import tempfile
from pathlib import Path

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from manifest_generator.core.exceptions import FetchFailureError
from manifest_generator.inspector.archive import remove_scratch_file

logger = logging.getLogger(__name__)


class LinkFetcher:
    """Streams a remote package into a temporary .ipa file."""

    def __init__(
        self,
        timeout_seconds: float = 60.0,
        download_dir: Path | None = None,
        client: httpx.Client | None = None,
    ):
        """
        Initialize the fetcher.

        Args:
            timeout_seconds: Per-request network timeout
            download_dir: Where temporary files are created (default: system temp)
            client: Optional preconfigured httpx client
        """
        self._download_dir = download_dir
        self._client = client or httpx.Client(
            timeout=timeout_seconds, follow_redirects=True
        )

    def fetch(self, url: str) -> Path:
        """
        Download the link into a new temporary file.

        Args:
            url: HTTP(S) URL of the package

        Returns:
            Path of the downloaded file; the caller owns it

        Raises:
            FetchFailureError: If the download fails; no partial file is left behind
        """
        if not url or not url.lower().startswith(("http://", "https://")):
            raise FetchFailureError("Only http(s) links are supported", url=url)

        fd, name = tempfile.mkstemp(suffix=".ipa", dir=self._download_dir)
        os.close(fd)
        path = Path(name)

        try:
            self._download(url, path)
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeError, OSError) as e:
            logger.error(f"Invalid URL: {url}")
            remove_scratch_file(path)
            raise FetchFailureError(f"Failed to fetch package: {e}", url=url) from e

        logger.info(f"Fetched {url} ({path.stat().st_size} bytes)")
        return path

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _download(self, url: str, path: Path) -> None:
        """
        Stream the response body to disk.

        Retries on transport errors (connection resets, timeouts); HTTP
        error statuses fail immediately.
        """
        with self._client.stream("GET", url) as response:
            response.raise_for_status()
            with open(path, "wb") as out:
                for chunk in response.iter_bytes():
                    out.write(chunk)

    def close(self) -> None:
        self._client.close()
