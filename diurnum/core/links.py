"""Link visitor: fan an async handler out over every inline link in a tree.

WHY: Callers need to resolve, check, or rewrite links (an Orb reference
written as ``diurnum://<id>`` becomes a relative path, an external URL
gets a reachability check). Those handlers may do I/O, so running them
one after another would make a long document as slow as the sum of its
links.

HOW: collect_links() gathers link nodes in pre-order. handle_links()
starts one handler call per link with asyncio.gather and
return_exceptions=True, so every call runs to completion, then raises a
LinkHandlerError carrying all failures if any call failed.

RULES:
- Links are collected once each, even when shared Orb content is reached
  through several occurrences
- Handlers run concurrently with no ordering guarantee
- Handlers may change a link's own fields (url, title) but must not
  reshape the tree
- Failures are reported after every handler has settled, all of them,
  in link order; the first is chained as the cause
- No timeout, cancellation, or concurrency limit — callers add those
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List
from urllib.parse import parse_qs, urlsplit

from diurnum.adapters.markdown_adapter import walk
from diurnum.config import DEFAULT_ORB_KIND, DIURNUM_PROTOCOL, VALID_REF_TYPES
from diurnum.core.errors import LinkHandlerError
from diurnum.core.ir import LocalOrb, Orb, RefType

logger = logging.getLogger(__name__)

LinkHandler = Callable[[Any], Awaitable[Any]]


def collect_links(tree: Any) -> List[Any]:
    """Return every inline link node in the tree, in pre-order."""
    return [node for node in walk(tree) if getattr(node, "type", None) == "link"]


async def handle_links(tree: Any, handler: LinkHandler) -> List[Any]:
    """Run handler on every link in the tree concurrently.

    Args:
        tree: Any node, Orb, or occurrence exposing ``children``.
        handler: Coroutine function called once per link node.

    Returns:
        Handler results in link order.

    Raises:
        LinkHandlerError: after all calls settle, if any call raised.
    """
    links = collect_links(tree)
    results = await asyncio.gather(
        *(handler(link) for link in links),
        return_exceptions=True,
    )
    errors = [result for result in results if isinstance(result, Exception)]
    if errors:
        logger.debug("%d of %d link handler(s) failed", len(errors), len(links))
        raise LinkHandlerError(errors) from errors[0]
    return list(results)


def orb_link_rewriter(target_format: Any, scheme: str = DIURNUM_PROTOCOL) -> LinkHandler:
    """Build a handler that points inline Orb links at a target format.

    ``[notes](diurnum://abc)`` inside body text becomes, with the relative
    format, ``[notes](../abc/orb.md)``. The ``type`` and ``ref`` query
    values carry over, so the protocol format keeps them. Links with any
    other scheme are left alone. The handler returns True when it
    rewrote the link.
    """
    prefix = "{}://".format(scheme)

    async def rewrite(link: Any) -> bool:
        if not (link.url or "").startswith(prefix):
            return False
        parts = urlsplit(link.url)
        if not parts.netloc:
            return False
        query = parse_qs(parts.query)
        kind = query.get("type", [DEFAULT_ORB_KIND])[0] or DEFAULT_ORB_KIND
        ref_value = query.get("ref", [RefType.EMBED.value])[0]
        ref_type = RefType(ref_value) if ref_value in VALID_REF_TYPES else RefType.EMBED
        stub = LocalOrb(Orb(id=parts.netloc, alias="", kind=kind), 1, ref_type)
        link.url = target_format.target(stub)
        return True

    return rewrite
