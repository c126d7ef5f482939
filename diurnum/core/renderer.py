"""Inverse transform: Orb occurrence → flat markdown text.

WHY: An Orb's content is stored with heading levels relative to the Orb
itself, so it can mount anywhere. Writing it back out means rebasing
every heading to where this particular occurrence sits, recursing into
nested occurrences, and honoring each occurrence's rendering mode.

HOW: The renderer registers a handler for the "orb" node type on its
MarkdownAdapter, so occurrences serialize like any other node. The
handler emits the occurrence heading (a cross-reference built by the
target format) and renders the body child by child: ordinary headings
are copied with their depth shifted, nested occurrences are re-wrapped at
their absolute depth and handled recursively, lists go through a fresh
adapter serialization, everything else through the shared context.

RULES:
- strip → "" (and the fragment is dropped, leaving no blank-line gap)
- link → one heading line: "#" * depth + " " + prefix + "[alias](target)"
- embed at depth 0 → body only; embed at depth N → heading, blank line,
  body
- Nested ordinary heading depth = enclosing depth + stored depth
- Nested occurrence depth = enclosing depth + stored relative depth
- Fragments that render empty are dropped; the rest are joined with one
  blank line
- Deterministic: identical input renders identical text
- An Orb reached again while it is still being rendered → PolicyError
- Heading levels beyond 6 are emitted as is and logged as a warning
"""

from __future__ import annotations

import dataclasses
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Set
from urllib.parse import urlencode

from diurnum.adapters.markdown_adapter import (
    LIST_TYPES,
    MarkdownAdapter,
    MdNode,
    SerializeState,
    escape_text,
)
from diurnum.config import (
    DEFAULT_ORB_KIND,
    DEFAULT_TARGET_FORMAT,
    DIURNUM_PROTOCOL,
    MAX_HEADING_DEPTH,
    ORB_FILENAME,
)
from diurnum.core.errors import PolicyError
from diurnum.core.ir import ORB_NODE_TYPE, LocalOrb, Orb, RefType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Cross-reference target formats
# ---------------------------------------------------------------------------


class TargetFormat(ABC):
    """How an occurrence heading points at its Orb.

    To add a new format:
    1. Subclass TargetFormat and implement target()
    2. Set link_prefix if link-only headings need a marker
    3. Register it in TARGET_FORMATS
    """

    link_prefix = ""

    @abstractmethod
    def target(self, occurrence: LocalOrb) -> str:
        """Return the link destination for this occurrence."""

    def cross_reference(self, occurrence: LocalOrb) -> str:
        return "[{}]({})".format(escape_text(occurrence.alias), self.target(occurrence))


class RelativePathFormat(TargetFormat):
    """``../<id>/orb.md`` — browsable when each Orb lives in its own folder.

    Link-only occurrences are prefixed with "> " so readers can tell a
    reference from an embedded section.
    """

    link_prefix = "> "

    def __init__(self, filename: str = ORB_FILENAME) -> None:
        self.filename = filename

    def target(self, occurrence: LocalOrb) -> str:
        return "../{}/{}".format(occurrence.id, self.filename)


class ProtocolFormat(TargetFormat):
    """``diurnum://<id>?type=..&ref=..`` — re-buildable marker headings.

    Only non-default query parameters are written, so a plain embedded
    Orb renders as ``diurnum://<id>``.
    """

    def __init__(self, scheme: str = DIURNUM_PROTOCOL) -> None:
        self.scheme = scheme

    def target(self, occurrence: LocalOrb) -> str:
        params = []
        if occurrence.kind != DEFAULT_ORB_KIND:
            params.append(("type", occurrence.kind))
        if occurrence.ref_type is not RefType.EMBED:
            params.append(("ref", occurrence.ref_type.value))
        url = "{}://{}".format(self.scheme, occurrence.id)
        return "{}?{}".format(url, urlencode(params)) if params else url


TARGET_FORMATS: Dict[str, type] = {
    "relative": RelativePathFormat,
    "protocol": ProtocolFormat,
}


def get_target_format(name: Optional[str] = None) -> TargetFormat:
    """Instantiate a registered target format by name.

    Raises:
        ValueError: if the name is not registered.
    """
    key = name or DEFAULT_TARGET_FORMAT
    if key not in TARGET_FORMATS:
        raise ValueError(
            "Unknown target format '{}'. Available formats: {}".format(
                key, ", ".join(sorted(TARGET_FORMATS)),
            )
        )
    return TARGET_FORMATS[key]()


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class OrbTreeRenderer:
    """Renders Orbs and their occurrences to markdown.

    RULES:
    - Each renderer owns its adapter registration; pass an adapter in to
      share parser configuration, not to share handlers
    - render() wraps the Orb in a transient occurrence; the Orb is never
      mutated
    """

    def __init__(
        self,
        target_format: Optional[TargetFormat] = None,
        adapter: Optional[MarkdownAdapter] = None,
    ) -> None:
        self.target_format = target_format or get_target_format()
        self._adapter = adapter or MarkdownAdapter()
        self._adapter.register_handler(ORB_NODE_TYPE, self._handle_occurrence)
        self._active: Set[str] = set()

    def render(self, orb: Orb, depth: int = 0, ref_type: RefType = RefType.EMBED) -> str:
        """Render an Orb as if it occurred at ``depth`` with ``ref_type``.

        depth 0 renders the standalone body with no heading.
        """
        return self.render_occurrence(LocalOrb(orb, depth, RefType(ref_type)))

    def render_occurrence(self, occurrence: LocalOrb) -> str:
        """Render one occurrence at its own (absolute) depth."""
        return self._adapter.serialize(occurrence)

    def _heading_marker(self, depth: int, alias: str) -> str:
        if depth > MAX_HEADING_DEPTH:
            logger.warning(
                "Heading level %d under '%s' exceeds markdown's maximum of %d",
                depth, alias, MAX_HEADING_DEPTH,
            )
        return "#" * depth

    def _handle_occurrence(self, node: LocalOrb, state: SerializeState) -> str:
        if node.ref_type is RefType.STRIP:
            return ""
        link = self.target_format.cross_reference(node)

        if node.ref_type is RefType.LINK:
            marker = self._heading_marker(node.depth or 1, node.alias)
            return "{} {}{}".format(marker, self.target_format.link_prefix, link)

        if node.id in self._active:
            raise PolicyError("Orb '{}' ({}) is transcluded inside itself".format(node.alias, node.id))
        self._active.add(node.id)
        try:
            body = self._render_body(node, state)
        finally:
            self._active.discard(node.id)

        if not node.depth:
            return body
        heading = "{} {}".format(self._heading_marker(node.depth, node.alias), link)
        return "{}\n\n{}".format(heading, body) if body else heading

    def _render_body(self, node: LocalOrb, state: SerializeState) -> str:
        depth = node.depth or 0
        fragments: List[str] = []
        for child in node.children:
            if child.type == "heading":
                rebased = dataclasses.replace(child, depth=depth + (child.depth or 1))
                if rebased.depth > MAX_HEADING_DEPTH:
                    logger.warning(
                        "Heading level %d in '%s' exceeds markdown's maximum of %d",
                        rebased.depth, node.alias, MAX_HEADING_DEPTH,
                    )
                fragments.append(self._adapter.handle(rebased, state))
            elif child.type == ORB_NODE_TYPE:
                if child.ref_type is RefType.STRIP:
                    continue
                nested = LocalOrb(child.orb, depth + (child.depth or 1), child.ref_type)
                fragments.append(self._adapter.handle(nested, state))
            elif child.type in LIST_TYPES:
                # Lists go through a standalone serialization rather than
                # the shared context so nesting never changes their layout.
                fragments.append(self._adapter.serialize(MdNode(type="root", children=[child])).strip())
            else:
                fragments.append(self._adapter.handle(child, state))
        return "\n\n".join(fragment for fragment in fragments if fragment)
