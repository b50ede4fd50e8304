"""
HTTP fetch adapter - Implements ResourceFetcher protocol over httpx.

Used for DNS-over-HTTPS TXT lookups, ``.well-known`` files, GitHub
organization profiles and social posts. Bodies are read as a stream and
cut at ``max_bytes``.
"""

import logging
from urllib.parse import urlsplit

import httpx

from trust_engine.domain.exceptions import ExternalFetchError, ExternalFetchTimeout
from trust_engine.domain.ports import FetchResponse

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "crosschain-registry-verifier/0.1"


class HttpxResourceFetcher:
    """
    Implements ResourceFetcher protocol via a shared httpx.Client.

    Uses structural subtyping - no explicit inheritance from Protocol.
    The client is thread-safe and reused by concurrent sweep workers.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        max_bytes: int = 1_000_000,
        client: httpx.Client | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.max_bytes = max_bytes
        self._client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        )

    def fetch_resource(self, url: str) -> FetchResponse:
        """
        GET ``url`` and return its status code and (truncated) text body.

        Raises:
            ExternalFetchTimeout: Connect or read timeout
            ExternalFetchError: Any other transport or protocol failure
        """
        host = urlsplit(url).hostname or url
        try:
            with self._client.stream("GET", url) as response:
                body = bytearray()
                for chunk in response.iter_bytes():
                    body.extend(chunk)
                    if len(body) >= self.max_bytes:
                        del body[self.max_bytes:]
                        break
                encoding = response.encoding or "utf-8"
                return FetchResponse(
                    status_code=response.status_code,
                    body=bytes(body).decode(encoding, errors="replace"),
                )
        except httpx.TimeoutException as exc:
            logger.warning("Fetch timed out: host=%s", host)
            raise ExternalFetchTimeout(f"Timed out fetching from {host}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Fetch failed: host=%s error=%s", host, exc.__class__.__name__)
            raise ExternalFetchError(f"Could not fetch from {host}") from exc

    def close(self) -> None:
        self._client.close()
