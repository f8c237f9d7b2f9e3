"""Fetcher that downloads a binary over HTTP."""

import gzip
from typing import final

import httpx

from upshift.exceptions import FetchError

# Response headers that identify a version of the remote file
CHECK_HEADERS: tuple[str, ...] = ("etag", "last-modified", "content-length")


@final
class HTTPFetcher:
    """Fetch a binary from a URL when its validator headers change.

    Each fetch sends a HEAD request first and only downloads the body when
    one of CHECK_HEADERS differs from the previous response. URLs ending in
    ``.gz`` are decompressed.

    Attributes:
        url: The binary's URL.
        timeout: Request timeout in seconds.
    """

    __slots__ = ("_client", "_last_headers", "_transport", "timeout", "url")

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._last_headers: dict[str, str] | None = None

    async def init(self) -> None:
        if not self.url.startswith(("http://", "https://")):
            msg = f"unsupported URL: {self.url}"
            raise FetchError(msg)
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    def _version_headers(self, response: httpx.Response) -> dict[str, str]:
        return {
            name: response.headers[name]
            for name in CHECK_HEADERS
            if name in response.headers
        }

    async def fetch(self) -> bytes | None:
        if self._client is None:
            await self.init()
        assert self._client is not None  # noqa: S101

        try:
            head = await self._client.head(self.url)
            _ = head.raise_for_status()
            headers = self._version_headers(head)
            if headers and headers == self._last_headers:
                return None

            response = await self._client.get(self.url)
            _ = response.raise_for_status()
        except httpx.HTTPError as e:
            msg = f"failed to fetch {self.url}: {e}"
            raise FetchError(msg) from e

        self._last_headers = headers
        data = response.content
        if self.url.endswith(".gz"):
            try:
                data = gzip.decompress(data)
            except (OSError, EOFError) as e:
                msg = f"failed to decompress {self.url}: {e}"
                raise FetchError(msg) from e
        return data

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
