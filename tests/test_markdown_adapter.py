"""Unit tests for the markdown adapter.

WHY: Every pass reads and writes through the adapter. If serialization
drifts from what the parser accepted, round-trips through the Orb
engine corrupt documents even when the engine itself is right.

HOW: Parse small documents, check the MdNode shape, and check that
serialize() writes back the canonical text. Mutation tests change node
fields and check the output follows.

RULES:
- Canonical inputs must serialize back unchanged
- Escaped text must re-parse to the same text value
"""

import pytest

from diurnum.adapters.markdown_adapter import MdNode, walk


class TestParse:
    """parse() produces mdast-like MdNode trees."""

    def test_reference_heading_shape(self, adapter):
        tree = adapter.parse("# [Intro](diurnum://new)\n")
        heading = tree.children[0]
        assert heading.type == "heading"
        assert heading.depth == 1
        assert len(heading.children) == 1
        link = heading.children[0]
        assert link.type == "link"
        assert link.url == "diurnum://new"
        assert link.children[0].type == "text"
        assert link.children[0].value == "Intro"

    def test_query_survives_parsing(self, adapter):
        tree = adapter.parse("## [Sub](diurnum://abc?ref=link)\n")
        assert tree.children[0].depth == 2
        assert tree.children[0].children[0].url == "diurnum://abc?ref=link"

    def test_fence_language(self, adapter):
        tree = adapter.parse("```yaml\nkey: value\n```\n")
        fence = tree.children[0]
        assert fence.type == "fence"
        assert fence.lang == "yaml"
        assert fence.value == "key: value\n"

    def test_front_matter_node(self, adapter):
        tree = adapter.parse("---\ntitle: Hello\n---\n\n# Heading\n")
        assert tree.children[0].type == "front_matter"
        assert tree.children[0].value.strip() == "title: Hello"
        assert tree.children[1].type == "heading"

    def test_source_line_recorded(self, adapter):
        tree = adapter.parse("para\n\n# Heading\n")
        assert tree.children[0].line == 1
        assert tree.children[1].line == 3


class TestSerializeCanonical:
    """Canonical markdown serializes back unchanged."""

    @pytest.mark.parametrize("text", [
        "# Title\n\nSome *emphasis* and **strong** text.\n\n- one\n- two\n",
        "1. first\n2. second\n",
        "3. three\n4. four\n",
        "- a\n\n- b\n",
        "- a\n  - b\n",
        "```python\nprint('hi')\n```\n",
        "---\ntitle: Hello\n---\n\n# Heading\n",
        "> quoted\n",
        "| a | b |\n| --- | :-: |\n| 1 | 2 |\n",
        "Use `code` and ~~strike~~.\n",
        "![alt text](image.png)\n",
        "a\n\n***\n\nb\n",
    ])
    def test_round_trip(self, adapter, text):
        assert adapter.serialize(adapter.parse(text)) == text

    def test_thematic_break_written_as_stars(self, adapter):
        assert adapter.serialize(adapter.parse("a\n\n---\n\nb\n")) == "a\n\n***\n\nb\n"

    def test_setext_heading_written_as_atx(self, adapter):
        assert adapter.serialize(adapter.parse("Title\n=====\n")) == "# Title\n"

    def test_empty_document(self, adapter):
        assert adapter.serialize(adapter.parse("")) == ""


class TestEscaping:
    """Literal text that looks like markup is escaped."""

    def test_escaped_stars_stay_literal(self, adapter):
        tree = adapter.parse("a \\*literal\\* star\n")
        assert tree.children[0].children[0].value == "a *literal* star"
        assert adapter.serialize(tree) == "a \\*literal\\* star\n"

    def test_escaped_output_reparses_to_same_text(self, adapter):
        tree = adapter.parse("\\# not a heading and \\[not a link\\]\n")
        text = adapter.serialize(tree)
        reparsed = adapter.parse(text)
        assert reparsed.children[0].type == "paragraph"
        assert reparsed.children[0].children[0].value == tree.children[0].children[0].value

    def test_intraword_underscore_not_escaped(self, adapter):
        assert adapter.serialize(adapter.parse("snake_case name\n")) == "snake_case name\n"


class TestMutation:
    """Serialization follows node mutations."""

    def test_link_target_rewrite(self, adapter):
        tree = adapter.parse("See [docs](https://example.com/a).\n")
        link = tree.children[0].children[1]
        assert link.type == "link"
        link.url = "https://example.com/b"
        assert adapter.serialize(tree) == "See [docs](https://example.com/b).\n"

    def test_heading_depth_rewrite(self, adapter):
        tree = adapter.parse("# Title\n")
        tree.children[0].depth = 3
        assert adapter.serialize(tree) == "### Title\n"


class TestCustomHandlers:
    """Custom node kinds plug in through register_handler()."""

    def test_registered_handler_is_used(self, adapter):
        adapter.register_handler("shout", lambda node, state: node.value.upper())
        tree = MdNode(type="root", children=[MdNode(type="shout", value="hi")])
        assert adapter.serialize(tree) == "HI\n"

    def test_empty_fragments_leave_no_gap(self, adapter):
        adapter.register_handler("nothing", lambda node, state: "")
        tree = adapter.parse("a\n\nb\n")
        tree.children.insert(1, MdNode(type="nothing"))
        assert adapter.serialize(tree) == "a\n\nb\n"

    def test_unknown_node_type_raises(self, adapter):
        with pytest.raises(ValueError, match="mystery"):
            adapter.serialize(MdNode(type="mystery"))


class TestWalk:
    """walk() is an iterative pre-order traversal."""

    def test_pre_order(self, adapter):
        tree = adapter.parse("# A\n\ntext\n")
        assert [node.type for node in walk(tree)] == ["root", "heading", "text", "paragraph", "text"]

    def test_shared_nodes_visited_once(self):
        shared = MdNode(type="text", value="x")
        tree = MdNode(type="root", children=[
            MdNode(type="paragraph", children=[shared]),
            MdNode(type="paragraph", children=[shared]),
        ])
        assert sum(1 for node in walk(tree) if node is shared) == 1

    def test_deep_tree_does_not_recurse(self):
        node = MdNode(type="blockquote")
        root = node
        for _ in range(5000):
            child = MdNode(type="blockquote")
            node.children.append(child)
            node = child
        assert sum(1 for _ in walk(root)) == 5001


class TestGfm:
    """GitHub-flavored extensions: bare URLs and task lists."""

    BARE = "See https://example.com/page for more.\n"

    def test_bare_url_is_link(self, adapter):
        paragraph = adapter.parse(self.BARE).children[0]
        assert [node.type for node in paragraph.children] == ["text", "link", "text"]
        assert paragraph.children[1].url == "https://example.com/page"

    def test_bare_url_stays_bare(self, adapter):
        assert adapter.serialize(adapter.parse(self.BARE)) == self.BARE

    def test_rewritten_bare_url_becomes_autolink(self, adapter):
        tree = adapter.parse(self.BARE)
        tree.children[0].children[1].url = "https://example.com/moved"
        assert adapter.serialize(tree) == "See <https://example.com/moved> for more.\n"

    def test_relative_target_becomes_inline_link(self, adapter):
        tree = adapter.parse(self.BARE)
        tree.children[0].children[1].url = "../page/orb.md"
        assert adapter.serialize(tree) == (
            "See [https://example.com/page](../page/orb.md) for more.\n"
        )

    def test_file_names_are_not_links(self, adapter):
        tree = adapter.parse("Read notes.md first.\n")
        assert [node.type for node in walk(tree)] == ["root", "paragraph", "text"]

    def test_task_list_items(self, adapter):
        tree = adapter.parse("- [ ] todo\n- [x] done\n- plain\n")
        items = tree.children[0].children
        assert [item.checked for item in items] == [False, True, None]
        assert not any(node.type == "html_inline" for node in walk(tree))

    def test_task_list_round_trip(self, adapter):
        text = "- [ ] todo\n- [x] done\n"
        assert adapter.serialize(adapter.parse(text)) == text


class TestKnownLossyCases:
    """Inputs that re-serialize differently but stay stable."""

    def test_toml_front_matter_is_plain_text(self, adapter):
        text = '+++\ntitle = "x"\n+++\n'
        tree = adapter.parse(text)
        assert tree.children[0].type == "paragraph"
        assert adapter.serialize(tree) == text

    def test_entities_are_decoded(self, adapter):
        tree = adapter.parse("Fish &amp; chips &lt;b&gt;\n")
        text = adapter.serialize(tree)
        assert text == "Fish & chips \\<b>\n"
        assert adapter.serialize(adapter.parse(text)) == text
