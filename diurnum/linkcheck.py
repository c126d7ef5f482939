"""Async HTTP link checker built on the link visitor.

WHY: Orbs outlive the pages they cite. Checking every external link in a
document one request at a time is slow; the link visitor already fans a
handler out concurrently, so checking is one handler away.

HOW: LinkChecker wraps httpx.AsyncClient as an async context manager.
check() sends HEAD (falling back to GET for servers that refuse HEAD)
and turns the outcome into a LinkStatus. check_links() runs check() for
every http(s) link in a tree through handle_links().

RULES:
- Always use the async context manager (async with LinkChecker() as c:)
- Only http and https links are checked; Orb references and relative
  paths are skipped
- Redirects are followed; any final status < 400 counts as ok
- Network errors never raise: they become ok=False with error set
- Timeout defaults to LINK_CHECK_TIMEOUT_S from config
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional
from urllib.parse import urlsplit

import httpx

from diurnum.config import LINK_CHECK_TIMEOUT_S
from diurnum.core.links import handle_links

logger = logging.getLogger(__name__)

_CHECKED_SCHEMES = frozenset({"http", "https"})
_HEAD_UNSUPPORTED = frozenset({405, 501})


@dataclass
class LinkStatus:
    """Outcome of checking one URL."""

    url: str
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class LinkChecker:
    """Checks whether URLs resolve, concurrently.

    The transport argument exists for tests (httpx.MockTransport); normal
    callers leave it unset.
    """

    def __init__(
        self,
        timeout_s: float = LINK_CHECK_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout_s = timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> LinkChecker:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout_s),
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "LinkChecker must be used as an async context manager: "
                "async with LinkChecker() as checker: ..."
            )
        return self._client

    async def check(self, url: str) -> LinkStatus:
        """Check a single URL."""
        client = self._ensure_client()
        try:
            resp = await client.head(url)
            if resp.status_code in _HEAD_UNSUPPORTED:
                resp = await client.get(url)
        except httpx.HTTPError as exc:
            logger.info("Link check failed for %s: %s", url, exc)
            return LinkStatus(url=url, ok=False, error=str(exc) or type(exc).__name__)
        return LinkStatus(url=url, ok=resp.status_code < 400, status_code=resp.status_code)

    async def check_links(self, tree: Any) -> List[LinkStatus]:
        """Check every http(s) link in a tree; statuses in link order."""

        async def handler(link: Any) -> Optional[LinkStatus]:
            if urlsplit(link.url or "").scheme not in _CHECKED_SCHEMES:
                return None
            return await self.check(link.url)

        results = await handle_links(tree, handler)
        return [status for status in results if status is not None]
