"""Adapter: markdown text <-> mutable mdast-like node tree.

WHY: The transclusion passes need a tree they can rewrite in place —
change a heading's depth, move a paragraph into an Orb, swap a link's
target — and then turn back into markdown text. markdown-it-py produces
a token stream and a read-only SyntaxTreeNode view but has no markdown
writer, so this adapter converts its tree into small mutable MdNode
dataclasses and serializes those back out.

HOW: parse() runs markdown-it-py (CommonMark plus the GFM pieces: tables,
strikethrough, bare-URL linkify, and the mdit-py-plugins front-matter
and task-list plugins), wraps the tokens in a
SyntaxTreeNode, and converts each node into an MdNode. Inline containers
are flattened, so a heading's children are its phrasing nodes (text,
link, emphasis, ...). serialize() walks an MdNode tree and writes
markdown. Custom node kinds (the renderer's "orb" occurrence) plug in
through register_handler().

RULES:
- Block siblings are joined by exactly one blank line
- A serialized root ends with a single newline; other nodes have none
- Text is escaped so the output re-parses to the same tree
- Bullet lists keep their source bullet character
- Task list items write their box back as "[ ]" or "[x]"
- Bare URLs stay bare unless a handler changed the target
- Thematic breaks are written as "***" so they never collide with front
  matter or setext underlines
- Unknown node types raise ValueError
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode
from mdit_py_plugins.front_matter import front_matter_plugin
from mdit_py_plugins.tasklists import tasklists_plugin

LIST_TYPES = frozenset({"bullet_list", "ordered_list"})

# Inline markup characters that must be escaped inside text nodes.
_ESCAPE_RE = re.compile(r"([\\`*~\[\]<])")
# Underscores only open/close emphasis at word boundaries.
_UNDERSCORE_RE = re.compile(r"(?<![A-Za-z0-9])_|_(?![A-Za-z0-9])")
# Line prefixes that would start a different block when re-parsed.
_BLOCK_START_RE = re.compile(r"^(#{1,6}(?=[ \t]|$)|[-+](?=[ \t]|$)|>|(?:-+|=+)[ \t]*$)")
_ORDERED_START_RE = re.compile(r"^(\d{1,9})([.)])(?=[ \t]|$)")
# Targets that can be written as an autolink.
_ABSOLUTE_URL_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]{1,31}:[^\s<>]*$")

_ALIGN_DELIMITERS = {None: "---", "left": ":--", "right": "--:", "center": ":-:"}


@dataclass(eq=False)
class MdNode:
    """One node of a parsed markdown document.

    Field usage follows mdast where it can: ``depth`` for headings,
    ``url``/``title`` for links and images, ``value`` for literal content
    (text, code, html, front matter, image alt), ``lang`` for fences.
    ``checked`` marks GFM task list items (None for ordinary items).
    ``parsed_yaml`` is filled in by the annotation pass.
    """

    type: str
    children: List[Any] = field(default_factory=list)
    value: Optional[str] = None
    depth: Optional[int] = None
    url: Optional[str] = None
    title: Optional[str] = None
    lang: Optional[str] = None
    info: Optional[str] = None
    markup: Optional[str] = None
    ordered: bool = False
    start: Optional[int] = None
    spread: bool = False
    checked: Optional[bool] = None
    align: Optional[str] = None
    line: Optional[int] = None
    parsed_yaml: Any = None


@dataclass
class SerializeState:
    """Shared serialization context: the stack of node types being written."""

    stack: List[str] = field(default_factory=list)

    def inside(self, *node_types: str) -> bool:
        return any(t in self.stack for t in node_types)


Handler = Callable[[Any, SerializeState], str]


def walk(node: Any) -> Iterator[Any]:
    """Yield node and every descendant in pre-order, each object once.

    Uses an explicit stack, so arbitrarily deep trees cannot exhaust the
    interpreter's recursion limit. Anything with a ``children`` list is
    descended into, including Orbs and their occurrences; content shared
    between occurrences is visited the first time it is reached.
    """
    seen = set()
    stack = [node]
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        children = getattr(current, "children", None) or []
        stack.extend(reversed(children))


def escape_text(value: str, state: Optional[SerializeState] = None) -> str:
    """Escape literal text so markdown will not read it as markup."""
    value = _ESCAPE_RE.sub(r"\\\1", value)
    value = _UNDERSCORE_RE.sub(r"\\_", value)
    if state is not None and state.inside("th", "td"):
        value = value.replace("|", "\\|")
    return value


def _escape_line_starts(text: str) -> str:
    lines = []
    for line in text.split("\n"):
        if _BLOCK_START_RE.match(line):
            line = "\\" + line
        else:
            line = _ORDERED_START_RE.sub(r"\1\\\2", line)
        lines.append(line)
    return "\n".join(lines)


def _format_destination(url: str) -> str:
    if not url or any(c in url for c in " ()<>"):
        return "<{}>".format(url.replace("<", "%3C").replace(">", "%3E"))
    return url


def _format_title(title: Optional[str]) -> str:
    if not title:
        return ""
    return ' "{}"'.format(title.replace('"', '\\"'))


class MarkdownAdapter:
    """Parses markdown into MdNode trees and serializes them back.

    WHY: One object owns the markdown-it parser configuration and the
    writer's handler table, so callers that register custom node kinds
    (the Orb renderer) do not leak them into other adapters.

    RULES:
    - parse() never returns partial trees; markdown-it does not fail on
      any input, so neither does this
    - handle() is the shared context: it tracks the node-type stack
    - serialize() starts a fresh context
    - Custom handlers take precedence over built-in ones
    """

    def __init__(self) -> None:
        self._md = (
            MarkdownIt("commonmark", {"linkify": True})
            .enable(["table", "strikethrough", "linkify"])
            .use(front_matter_plugin)
            .use(tasklists_plugin)
        )
        # Only scheme-qualified URLs and e-mail addresses; "notes.md" stays text.
        self._md.linkify.set({"fuzzy_link": False})
        self._custom: Dict[str, Handler] = {}
        self._builtin: Dict[str, Handler] = {
            "root": self._root,
            "paragraph": self._paragraph,
            "heading": self._heading,
            "blockquote": self._blockquote,
            "bullet_list": self._list,
            "ordered_list": self._list,
            "fence": self._fence,
            "code_block": self._code_block,
            "hr": lambda node, state: "***",
            "html_block": lambda node, state: (node.value or "").rstrip("\n"),
            "front_matter": self._front_matter,
            "table": self._table,
            "th": self._phrasing,
            "td": self._phrasing,
            "text": lambda node, state: escape_text(node.value or "", state),
            "softbreak": lambda node, state: "\n",
            "hardbreak": lambda node, state: "\\\n",
            "code_inline": self._code_inline,
            "em": self._wrapped,
            "strong": self._wrapped,
            "s": self._wrapped,
            "link": self._link,
            "image": self._image,
            "html_inline": lambda node, state: node.value or "",
        }

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, text: str) -> MdNode:
        """Parse markdown text into an MdNode root."""
        tokens = self._md.parse(text)
        return _convert(SyntaxTreeNode(tokens))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def register_handler(self, node_type: str, handler: Handler) -> None:
        """Register a writer for a custom node kind."""
        self._custom[node_type] = handler

    def serialize(self, node: Any) -> str:
        """Serialize a node with a fresh context."""
        return self.handle(node, SerializeState())

    def handle(self, node: Any, state: SerializeState) -> str:
        """Serialize a node within an existing context."""
        handler = self._custom.get(node.type) or self._builtin.get(node.type)
        if handler is None:
            raise ValueError("No markdown serializer for node type '{}'".format(node.type))
        state.stack.append(node.type)
        try:
            return handler(node, state)
        finally:
            state.stack.pop()

    def _blocks(self, nodes: List[Any], state: SerializeState, separator: str = "\n\n") -> str:
        parts = [self.handle(child, state) for child in nodes]
        return separator.join(part for part in parts if part)

    def _phrasing(self, node: MdNode, state: SerializeState) -> str:
        return "".join(self.handle(child, state) for child in node.children)

    def _root(self, node: MdNode, state: SerializeState) -> str:
        text = self._blocks(node.children, state)
        return text + "\n" if text else ""

    def _paragraph(self, node: MdNode, state: SerializeState) -> str:
        return _escape_line_starts(self._phrasing(node, state))

    def _heading(self, node: MdNode, state: SerializeState) -> str:
        marker = "#" * (node.depth or 1)
        content = self._phrasing(node, state)
        return "{} {}".format(marker, content) if content else marker

    def _blockquote(self, node: MdNode, state: SerializeState) -> str:
        body = self._blocks(node.children, state)
        return "\n".join("> " + line if line else ">" for line in body.split("\n"))

    def _list(self, node: MdNode, state: SerializeState) -> str:
        separator = "\n\n" if node.spread else "\n"
        number = node.start if node.start is not None else 1
        items = []
        for item in node.children:
            if node.ordered:
                marker = "{}{}".format(number, node.markup or ".")
                number += 1
            else:
                marker = node.markup or "-"
            state.stack.append(item.type)
            try:
                body = self._blocks(item.children, state, separator)
            finally:
                state.stack.pop()
            indent = " " * (len(marker) + 1)
            lines = body.split("\n")
            checked = getattr(item, "checked", None)
            if checked is not None:
                lines[0] = "{} {}".format("[x]" if checked else "[ ]", lines[0].lstrip(" "))
            first = "{} {}".format(marker, lines[0]) if lines[0] else marker
            rest = [indent + line if line else "" for line in lines[1:]]
            items.append("\n".join([first] + rest))
        return separator.join(items)

    def _fence(self, node: MdNode, state: SerializeState) -> str:
        fence = node.markup or "```"
        value = node.value or ""
        if value and not value.endswith("\n"):
            value += "\n"
        return "{}{}\n{}{}".format(fence, node.info or "", value, fence)

    def _code_block(self, node: MdNode, state: SerializeState) -> str:
        lines = (node.value or "").rstrip("\n").split("\n")
        return "\n".join("    " + line if line else "" for line in lines)

    def _front_matter(self, node: MdNode, state: SerializeState) -> str:
        return "---\n{}\n---".format((node.value or "").rstrip("\n"))

    def _table(self, node: MdNode, state: SerializeState) -> str:
        rows: List[List[str]] = []
        aligns: List[Optional[str]] = []
        for section in node.children:
            for row in section.children:
                rows.append([self.handle(cell, state) for cell in row.children])
                if section.type == "thead":
                    aligns = [cell.align for cell in row.children]
        lines = ["| {} |".format(" | ".join(cells)) for cells in rows]
        delimiter = "| {} |".format(" | ".join(_ALIGN_DELIMITERS.get(a, "---") for a in aligns))
        lines.insert(1, delimiter)
        return "\n".join(lines)

    def _code_inline(self, node: MdNode, state: SerializeState) -> str:
        fence = node.markup or "`"
        value = node.value or ""
        if value.startswith("`") or value.endswith("`"):
            value = " {} ".format(value)
        return "{}{}{}".format(fence, value, fence)

    def _wrapped(self, node: MdNode, state: SerializeState) -> str:
        marker = node.markup or {"em": "*", "strong": "**", "s": "~~"}[node.type]
        return "{}{}{}".format(marker, self._phrasing(node, state), marker)

    def _link(self, node: MdNode, state: SerializeState) -> str:
        url = node.url or ""
        if node.markup == "linkify":
            text = "".join(child.value or "" for child in node.children if child.type == "text")
            if url in (text, "mailto:" + text):
                return text
            if _ABSOLUTE_URL_RE.match(url):
                return "<{}>".format(url)
        elif node.markup == "autolink":
            return "<{}>".format(url)
        return "[{}]({}{})".format(
            self._phrasing(node, state),
            _format_destination(node.url or ""),
            _format_title(node.title),
        )

    def _image(self, node: MdNode, state: SerializeState) -> str:
        return "![{}]({}{})".format(
            escape_text(node.value or "", state),
            _format_destination(node.url or ""),
            _format_title(node.title),
        )


def _convert(node: SyntaxTreeNode) -> MdNode:
    """Convert a SyntaxTreeNode subtree into MdNode form.

    Iterative over an explicit work stack; inline wrapper nodes are
    replaced by their children. Task-list checkboxes are dropped; the
    list item carries ``checked`` instead.
    """
    root = _convert_one(node)
    pending = [(node, root)]
    while pending:
        source, target = pending.pop()
        for child in source.children:
            if child.type == "inline":
                grandchildren = [c for c in child.children if not _is_task_checkbox(c)]
            else:
                grandchildren = [child]
            for grandchild in grandchildren:
                converted = _convert_one(grandchild)
                target.children.append(converted)
                pending.append((grandchild, converted))
    return root


def _convert_one(node: SyntaxTreeNode) -> MdNode:
    node_type = node.type
    converted = MdNode(type=node_type)
    if node_type == "root":
        return converted
    if node.map:
        converted.line = node.map[0] + 1
    attrs = node.attrs

    if node_type == "heading":
        converted.depth = int(node.tag[1:])
    elif node_type == "fence":
        converted.value = node.content
        converted.info = node.info
        converted.markup = node.markup
        info = (node.info or "").strip()
        converted.lang = info.split()[0] if info else None
    elif node_type in ("code_block", "front_matter", "html_block", "html_inline", "text"):
        converted.value = node.content
    elif node_type == "code_inline":
        converted.value = node.content
        converted.markup = node.markup
    elif node_type == "link":
        converted.url = str(attrs.get("href", ""))
        title = attrs.get("title")
        converted.title = str(title) if title else None
        converted.markup = node.markup
    elif node_type == "image":
        converted.url = str(attrs.get("src", ""))
        title = attrs.get("title")
        converted.title = str(title) if title else None
        converted.value = node.content
    elif node_type in ("em", "strong", "s"):
        converted.markup = node.markup
    elif node_type in ("bullet_list", "ordered_list"):
        converted.ordered = node_type == "ordered_list"
        converted.markup = node.markup
        converted.start = int(attrs.get("start", 1)) if converted.ordered else None
        paragraphs = [
            block
            for item in node.children
            for block in item.children
            if block.type == "paragraph"
        ]
        converted.spread = bool(paragraphs) and not paragraphs[0].hidden
    elif node_type == "list_item":
        checkbox = _task_checkbox(node)
        if checkbox is not None:
            converted.checked = "checked=" in checkbox.content
    elif node_type in ("th", "td"):
        style = str(attrs.get("style", ""))
        if style.startswith("text-align:"):
            converted.align = style.split(":", 1)[1]
    return converted


def _is_task_checkbox(node: SyntaxTreeNode) -> bool:
    return node.type == "html_inline" and "task-list-item-checkbox" in node.content


def _task_checkbox(item: SyntaxTreeNode) -> Optional[SyntaxTreeNode]:
    """Return the checkbox the task-list plugin put at the start of an item."""
    if not item.children or item.children[0].type != "paragraph":
        return None
    paragraph = item.children[0]
    if not paragraph.children or paragraph.children[0].type != "inline":
        return None
    inline = paragraph.children[0].children
    if inline and _is_task_checkbox(inline[0]):
        return inline[0]
    return None
