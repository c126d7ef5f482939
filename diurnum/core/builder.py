"""Forward transform: flat markdown tree → Orbs with nested occurrences.

WHY: A markdown document is a flat run of blocks; its structure lives only
in heading levels. Reference-marker headings (a heading whose only
content is a ``diurnum://`` link) declare where an Orb starts. Everything
under such a heading, down to the next heading at the same or a shallower
level, belongs to that Orb — including further marker headings, which
become nested occurrences.

HOW: A pushdown pass over the top-level nodes. The scope stack holds one
ScopeEntry per open occurrence, strictly increasing in absolute heading
depth. A heading first closes every scope at its level or deeper. A
marker heading then opens a new occurrence (attached to the enclosing Orb
if one is open); an ordinary heading is rebased relative to the
enclosing scope and appended to it. Any other node is appended to the
innermost open Orb.

RULES:
- Marker grammar: exactly one link child; the link's only child is a
  text node (the alias); the target starts with "<scheme>://"
- Host "new" → generated id; any other host is the id verbatim
- ``type`` query → Orb kind (default "plain")
- ``ref`` query ∈ {link, embed, strip}; default embed, or link when
  embeds are prohibited; ref=embed while prohibited → PolicyError
- depth = heading depth − enclosing scope's absolute depth (0 if none)
- Same id → same Orb; each Orb is listed once, at first appearance
- Content before the first marker heading belongs to no Orb and is
  dropped (logged at DEBUG)
- An Orb embedded inside its own open scope → PolicyError; link and
  strip references to it are allowed
- Failures abort the pass; no partial result is returned
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

from diurnum.config import (
    DEFAULT_ORB_KIND,
    DIURNUM_PROTOCOL,
    NEW_ORB_SENTINEL,
    VALID_REF_TYPES,
)
from diurnum.core.errors import DecodeError, PolicyError
from diurnum.core.ir import LocalOrb, Orb, RefType, ScopeEntry

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def is_reference_heading(node: Any, scheme: str = DIURNUM_PROTOCOL) -> bool:
    """Return True if node is a heading that matches the marker grammar."""
    if getattr(node, "type", None) != "heading":
        return False
    if len(node.children) != 1 or node.children[0].type != "link":
        return False
    link = node.children[0]
    if len(link.children) != 1 or link.children[0].type != "text":
        return False
    return (link.url or "").startswith("{}://".format(scheme))


def decode_reference_heading(
    node: Any,
    prohibit_embeds: bool = False,
    id_factory: Callable[[], str] = _new_id,
) -> Tuple[str, str, str, RefType]:
    """Decode a marker heading into (id, alias, kind, ref_type).

    The caller must have checked is_reference_heading() first.

    Raises:
        DecodeError: unparseable target, missing id, or unknown ref value.
        PolicyError: ``ref=embed`` while embeds are prohibited.
    """
    link = node.children[0]
    alias = link.children[0].value
    try:
        parts = urlsplit(link.url)
        query = parse_qs(parts.query)
    except ValueError as exc:
        raise DecodeError("Unparseable Orb reference '{}': {}".format(link.url, exc)) from exc

    host = parts.netloc
    if not host:
        raise DecodeError("Orb reference '{}' has no id".format(link.url))
    orb_id = id_factory() if host == NEW_ORB_SENTINEL else host

    kind = query.get("type", [DEFAULT_ORB_KIND])[0] or DEFAULT_ORB_KIND
    ref_value = query.get("ref", [None])[0]
    if ref_value is None:
        ref_value = RefType.LINK.value if prohibit_embeds else RefType.EMBED.value
    if ref_value not in VALID_REF_TYPES:
        raise DecodeError("Invalid ref type \"{}\" in '{}'".format(ref_value, link.url))
    ref_type = RefType(ref_value)
    if ref_type is RefType.EMBED and prohibit_embeds:
        raise PolicyError("Embeds are prohibited in this context ('{}')".format(link.url))
    return orb_id, alias, kind, ref_type


class OrbTreeBuilder:
    """Discovers Orbs in a parsed markdown tree.

    WHY: Building is stateful — scope stack, discovery list, the id→Orb
    map — and callers composing several documents want to share the id
    map between passes. A small class keeps that state explicit.

    HOW: build() runs one pass and returns the discovered Orbs. After a
    pass, ``roots`` holds the occurrences that were not nested inside
    another occurrence and ``occurrences`` every occurrence created, both
    in document order.

    RULES:
    - registry (id → Orb) may be shared across passes for cross-document
      transclusion; it is filled in as Orbs are created
    - The input tree is mutated: ordinary headings inside an Orb get
      their depth rewritten relative to the Orb
    - A continuation occurrence is resumed at absolute depth seed.depth
      and its Orb heads the discovery list
    """

    def __init__(
        self,
        prohibit_embeds: bool = False,
        registry: Optional[Dict[str, Orb]] = None,
        scheme: str = DIURNUM_PROTOCOL,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self.prohibit_embeds = prohibit_embeds
        self.registry = registry if registry is not None else {}
        self.scheme = scheme
        self.id_factory = id_factory
        self.roots: List[LocalOrb] = []
        self.occurrences: List[LocalOrb] = []

    def build(self, tree: Any, continuation: Optional[LocalOrb] = None) -> List[Orb]:
        """Run one build pass over the tree's top-level nodes.

        Args:
            tree: Root node from MarkdownAdapter.parse() (annotated or not).
            continuation: Occurrence to resume under, for documents that
                continue an Orb started elsewhere.

        Returns:
            Orbs in pre-order of first appearance.
        """
        orbs: List[Orb] = []
        listed: set = set()
        stack: List[ScopeEntry] = []
        roots: List[LocalOrb] = []
        occurrences: List[LocalOrb] = []
        created: Dict[str, Orb] = {}
        dropped = 0

        if continuation is not None:
            stack.append(ScopeEntry(continuation.depth, continuation))
            orbs.append(continuation.orb)
            listed.add(continuation.orb.id)
            if continuation.orb.id not in self.registry:
                created[continuation.orb.id] = continuation.orb

        for node in tree.children:
            if node.type != "heading":
                if stack:
                    stack[-1].occurrence.add_child(node)
                else:
                    dropped += 1
                continue

            heading_depth = node.depth or 1
            while stack and heading_depth <= stack[-1].absolute_depth:
                stack.pop()
            enclosing_depth = stack[-1].absolute_depth if stack else 0

            if not is_reference_heading(node, self.scheme):
                if stack:
                    node.depth = heading_depth - enclosing_depth
                    stack[-1].occurrence.add_child(node)
                else:
                    dropped += 1
                continue

            orb_id, alias, kind, ref_type = decode_reference_heading(
                node, self.prohibit_embeds, self.id_factory,
            )
            if ref_type is RefType.EMBED and any(entry.occurrence.id == orb_id for entry in stack):
                raise PolicyError("Orb '{}' ({}) cannot be transcluded inside itself".format(alias, orb_id))

            orb = created.get(orb_id) or self.registry.get(orb_id)
            if orb is None:
                orb = Orb(id=orb_id, alias=alias, kind=kind)
                created[orb_id] = orb
            if orb_id not in listed:
                listed.add(orb_id)
                orbs.append(orb)

            occurrence = LocalOrb(orb, heading_depth - enclosing_depth, ref_type)
            if stack:
                stack[-1].occurrence.add_child(occurrence)
            else:
                roots.append(occurrence)
            occurrences.append(occurrence)
            stack.append(ScopeEntry(heading_depth, occurrence))

        if dropped:
            logger.debug("Dropped %d node(s) outside any Orb", dropped)
        logger.debug("Built %d Orb(s) from %d occurrence(s)", len(orbs), len(occurrences))
        self.registry.update(created)
        self.roots = roots
        self.occurrences = occurrences
        return orbs


def parse_orbs_from_tree(
    tree: Any,
    continuation: Optional[LocalOrb] = None,
    prohibit_embeds: bool = False,
    registry: Optional[Dict[str, Orb]] = None,
) -> List[Orb]:
    """Find all Orbs in a parsed tree, in order of first appearance."""
    builder = OrbTreeBuilder(prohibit_embeds=prohibit_embeds, registry=registry)
    return builder.build(tree, continuation=continuation)
