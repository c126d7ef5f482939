"""Adapter modules between diurnum's node tree and external libraries.

WHY: The transclusion passes work on a small mutable node tree; the
markdown parser (markdown-it-py) has its own token model. Adapters
bridge the two so each side can evolve independently.

HOW: markdown_adapter.py converts markdown-it-py's SyntaxTreeNode view
into MdNode dataclasses and writes MdNode trees back to markdown text.

RULES:
- Adapters never touch the filesystem or network
- Custom node kinds are registered on an adapter instance, not globally
"""

from diurnum.adapters.markdown_adapter import MarkdownAdapter, MdNode, walk

__all__ = ["MarkdownAdapter", "MdNode", "walk"]
