"""Text-level entry points: markdown in, Orbs out, and back.

WHY: Most callers hold markdown text, not trees. These functions wire
the adapter, the annotation pass, the builder, and the renderer together
so a caller can go from a document to its Orbs (or from an Orb to text)
in one call.

HOW: markdown_to_tree = parse + annotate_yaml. markdown_to_orbs builds
on top of it. orb_to_markdown renders with a chosen target format.
render_roots re-assembles a whole document from a builder's root
occurrences.

RULES:
- YAML blocks are decoded before building, so a broken block fails the
  document before any Orb exists
- Functions are thin; options pass straight through to the classes
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from diurnum.adapters.markdown_adapter import MarkdownAdapter, MdNode
from diurnum.core.annotate import annotate_yaml
from diurnum.core.builder import OrbTreeBuilder
from diurnum.core.ir import LocalOrb, Orb, RefType
from diurnum.core.renderer import OrbTreeRenderer, TargetFormat


def markdown_to_tree(text: str, adapter: Optional[MarkdownAdapter] = None) -> MdNode:
    """Parse markdown and decode its YAML blocks."""
    tree = (adapter or MarkdownAdapter()).parse(text)
    return annotate_yaml(tree)


def tree_to_markdown(tree: Any, adapter: Optional[MarkdownAdapter] = None) -> str:
    """Serialize a tree that contains no Orb occurrences."""
    return (adapter or MarkdownAdapter()).serialize(tree)


def markdown_to_orbs(
    text: str,
    continuation: Optional[LocalOrb] = None,
    prohibit_embeds: bool = False,
    registry: Optional[Dict[str, Orb]] = None,
) -> List[Orb]:
    """Find every Orb in a markdown document, in order of first appearance."""
    builder = OrbTreeBuilder(prohibit_embeds=prohibit_embeds, registry=registry)
    return builder.build(markdown_to_tree(text), continuation=continuation)


def orb_to_markdown(
    orb: Orb,
    depth: int = 0,
    ref_type: RefType = RefType.EMBED,
    target_format: Optional[TargetFormat] = None,
) -> str:
    """Render one Orb as markdown at the given occurrence depth."""
    return OrbTreeRenderer(target_format=target_format).render(orb, depth, ref_type)


def render_roots(
    roots: List[LocalOrb],
    target_format: Optional[TargetFormat] = None,
) -> str:
    """Render top-level occurrences in order, as one document.

    Occurrences that render empty (stripped) leave no gap. The result
    ends with a newline unless it is empty.
    """
    renderer = OrbTreeRenderer(target_format=target_format)
    fragments = [renderer.render_occurrence(root) for root in roots]
    text = "\n\n".join(fragment for fragment in fragments if fragment)
    return text + "\n" if text else ""
