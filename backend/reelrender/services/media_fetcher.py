"""Remote media retrieval over HTTP."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from reelrender.config import get_settings
from reelrender.exceptions import RetrievalError

logger = logging.getLogger(__name__)

USER_AGENT = "reelrender/1.0 (+ffmpeg-video-renderer)"


@dataclass
class FetchedMedia:
    """Downloaded media body plus the headers we care about."""

    content: bytes
    content_type: Optional[str] = None
    content_length: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.content)


class MediaFetcher:
    """Downloads images and audio for a render job.

    One AsyncClient is shared by all downloads of a job. Pass a client in
    (e.g. with a MockTransport) to control transport.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: Optional[float] = None,
    ):
        timeout_s = timeout_s or get_settings().fetch_timeout_s
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=timeout_s,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def fetch(self, url: str) -> FetchedMedia:
        """
        Download a URL into memory.

        Raises:
            RetrievalError: On transport errors, non-2xx status or empty body
        """
        try:
            response = await self.client.get(url)
        except httpx.TimeoutException as e:
            raise RetrievalError(f"Timed out downloading {url}", url=url) from e
        except httpx.HTTPError as e:
            raise RetrievalError(f"Failed to download {url}: {e}", url=url) from e

        if not response.is_success:
            raise RetrievalError(
                f"Failed to download {url}: {response.status_code} {response.reason_phrase}",
                url=url,
                status=response.status_code,
            )

        content = response.content
        if not content:
            raise RetrievalError(f"Downloaded file is empty: {url}", url=url)

        content_length = response.headers.get("content-length")
        return FetchedMedia(
            content=content,
            content_type=response.headers.get("content-type"),
            content_length=int(content_length) if content_length and content_length.isdigit() else None,
        )

    async def download(self, url: str, dest: Path) -> FetchedMedia:
        """Fetch a URL and write it to dest."""
        media = await self.fetch(url)
        dest.write_bytes(media.content)
        logger.debug(f"[FETCH] {url} -> {dest.name} ({media.size} bytes)")
        return media
