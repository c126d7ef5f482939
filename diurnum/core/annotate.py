"""Annotation pass: decode YAML-bearing blocks in a parsed tree.

WHY: Orbs carry structured metadata in front matter and fenced ```yaml
blocks. Decoding it once, right after parsing, lets every later consumer
read ``node.parsed_yaml`` instead of re-parsing text — and surfaces a
broken block before any Orb is built from the document.

HOW: Walks the tree in pre-order (explicit stack via the adapter's walk
helper). Front-matter nodes and fences tagged ``yaml`` are decoded with
yaml.safe_load and the result is attached to the node. Everything else
passes through untouched.

RULES:
- Only front_matter nodes and fence nodes with lang "yaml" are decoded
- Decoded data goes on node.parsed_yaml; node.value is left as is
- The first YAML failure aborts the walk with DecodeError naming the
  node type and its source line
- safe_load only: documents never construct arbitrary Python objects
"""

from __future__ import annotations

import logging
from typing import Any

import yaml

from diurnum.adapters.markdown_adapter import walk
from diurnum.core.errors import DecodeError

logger = logging.getLogger(__name__)

YAML_FENCE_LANG = "yaml"


def is_yaml_node(node: Any) -> bool:
    """Return True for front matter and ```yaml fenced blocks."""
    node_type = getattr(node, "type", None)
    if node_type == "front_matter":
        return True
    return node_type == "fence" and getattr(node, "lang", None) == YAML_FENCE_LANG


def annotate_yaml(tree: Any) -> Any:
    """Attach decoded YAML to every YAML-bearing node in the tree.

    Args:
        tree: Root node (or any subtree) from MarkdownAdapter.parse().

    Returns:
        The same tree, mutated in place, for call chaining.

    Raises:
        DecodeError: if any YAML block fails to decode.
    """
    decoded = 0
    for node in walk(tree):
        if not is_yaml_node(node):
            continue
        try:
            node.parsed_yaml = yaml.safe_load(node.value or "")
        except yaml.YAMLError as exc:
            raise DecodeError(
                "Invalid YAML in {} block at line {}: {}".format(
                    node.type, node.line if node.line is not None else "?", exc,
                )
            ) from exc
        decoded += 1
    logger.debug("Decoded %d YAML block(s)", decoded)
    return tree
