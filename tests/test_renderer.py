"""Unit tests for the Orb tree renderer and target formats.

WHY: Rendering is the inverse of building. Every heading has to come
back at the right level, link-only and stripped occurrences have to keep
their shape, and re-building rendered text has to give back the same
document, or edits made through Orbs corrupt the source.

HOW: Build small documents with the deterministic builder, render them,
and compare against exact expected text. Round-trip tests go text →
Orbs → text with the protocol format, whose headings re-build.

RULES:
- Expected strings are exact; no whitespace normalization
- Round-trips use ProtocolFormat; RelativePathFormat output is for
  reading, not re-building
"""

import logging

import pytest

from conftest import EXAMPLE_TEXT, make_id_factory
from diurnum.core.builder import OrbTreeBuilder
from diurnum.core.errors import PolicyError
from diurnum.core.ir import LocalOrb, Orb, RefType
from diurnum.core.renderer import (
    TARGET_FORMATS,
    OrbTreeRenderer,
    ProtocolFormat,
    RelativePathFormat,
    get_target_format,
)
from diurnum.core.transclusion import markdown_to_tree, render_roots


@pytest.fixture
def renderer():
    return OrbTreeRenderer(target_format=RelativePathFormat())


def _rebuild(text):
    builder = OrbTreeBuilder(id_factory=make_id_factory())
    builder.build(markdown_to_tree(text))
    return render_roots(builder.roots, ProtocolFormat())


class TestExample:
    """The reference example renders as documented."""

    def test_depth_one(self, build, renderer):
        intro, _ = build(EXAMPLE_TEXT)
        assert renderer.render(intro, 1) == (
            "# [Intro](../gen-1/orb.md)\n\nSome text\n\n## > [Sub](../abc/orb.md)"
        )

    def test_depth_zero_has_no_own_heading(self, build, renderer):
        intro, _ = build(EXAMPLE_TEXT)
        assert renderer.render(intro, 0) == "Some text\n\n# > [Sub](../abc/orb.md)"

    def test_protocol_format(self, build, builder):
        build(EXAMPLE_TEXT)
        assert render_roots(builder.roots, ProtocolFormat()) == (
            "# [Intro](diurnum://gen-1)\n\nSome text\n\n## [Sub](diurnum://abc?ref=link)\n"
        )

    def test_render_does_not_mutate(self, build, renderer):
        intro, _ = build(EXAMPLE_TEXT)
        before = [node.type for node in intro.content]
        first = renderer.render(intro, 3)
        assert renderer.render(intro, 3) == first
        assert [node.type for node in intro.content] == before


class TestRefTypes:
    """Each occurrence mode keeps its shape."""

    def test_strip_renders_nothing(self, build, renderer):
        (orb,) = build("# [S](diurnum://s)\n\nsecret\n")
        assert renderer.render(orb, 2, RefType.STRIP) == ""

    def test_strip_leaves_no_gap(self, build, renderer):
        a, _ = build(
            "# [A](diurnum://a)\n\nbefore\n\n"
            "## [S](diurnum://s?ref=strip)\n\nhidden\n\n"
            "## After\n\nafter\n"
        )
        text = renderer.render(a, 1)
        assert text == "# [A](../a/orb.md)\n\nbefore\n\n## After\n\nafter"
        assert "hidden" not in text
        assert "\n\n\n" not in text

    def test_link_accepts_string_ref(self, build, renderer):
        (orb,) = build("# [X](diurnum://x)\n\nbody\n")
        assert renderer.render(orb, 2, "link") == "## > [X](../x/orb.md)"

    def test_link_at_depth_zero_uses_level_one(self, build, renderer):
        (orb,) = build("# [X](diurnum://x)\n\nbody\n")
        assert renderer.render(orb, 0, RefType.LINK) == "# > [X](../x/orb.md)"

    def test_empty_embed_is_heading_only(self, renderer):
        orb = Orb(id="e", alias="E")
        assert renderer.render(orb, 2) == "## [E](../e/orb.md)"
        assert renderer.render(orb, 0) == ""


class TestRebasing:
    """Headings come back at enclosing depth plus stored depth."""

    def test_rebase_to_deeper_level(self, build, renderer):
        (a,) = build("# [A](diurnum://a)\n\n## Section\n\ntext\n")
        assert renderer.render(a, 3) == "### [A](../a/orb.md)\n\n#### Section\n\ntext"

    def test_nested_embed(self, build, renderer):
        p, _ = build(
            "# [P](diurnum://p)\n\nP text\n\n"
            "## [Q](diurnum://q)\n\nQ text\n\n"
            "### Q section\n\nmore\n"
        )
        assert renderer.render(p, 2) == (
            "## [P](../p/orb.md)\n\nP text\n\n"
            "### [Q](../q/orb.md)\n\nQ text\n\n"
            "#### Q section\n\nmore"
        )

    def test_list_layout(self, build, renderer):
        (orb,) = build("# [L](diurnum://l)\n\n* one\n* two\n")
        assert renderer.render(orb, 1) == "# [L](../l/orb.md)\n\n* one\n* two"

    def test_deep_heading_warns(self, renderer, caplog):
        orb = Orb(id="d", alias="D")
        tree = markdown_to_tree("###### Deep\n")
        orb.add_child(tree.children[0])
        with caplog.at_level(logging.WARNING, logger="diurnum.core.renderer"):
            text = renderer.render(orb, 2)
        assert text.endswith("######## Deep")
        assert "exceeds" in caplog.text


class TestCycles:
    def test_self_embed_raises(self, renderer):
        orb = Orb(id="a", alias="A")
        orb.add_child(LocalOrb(orb, 1))
        with pytest.raises(PolicyError, match="inside itself"):
            renderer.render(orb, 1)

    def test_self_link_is_fine(self, renderer):
        orb = Orb(id="a", alias="A")
        orb.add_child(LocalOrb(orb, 1, RefType.LINK))
        assert renderer.render(orb, 1) == "# [A](../a/orb.md)\n\n## > [A](../a/orb.md)"

    def test_shared_orb_renders_twice(self, build, renderer):
        parent, _ = build(
            "# [P](diurnum://p)\n\n"
            "## [X](diurnum://x)\n\nx body\n\n"
            "## [X](diurnum://x)\n"
        )
        assert renderer.render(parent, 1) == (
            "# [P](../p/orb.md)\n\n"
            "## [X](../x/orb.md)\n\nx body\n\n"
            "## [X](../x/orb.md)\n\nx body"
        )


class TestTargetFormats:
    def test_registry(self):
        assert set(TARGET_FORMATS) == {"relative", "protocol"}

    def test_default_is_relative(self):
        assert isinstance(get_target_format(), RelativePathFormat)

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="Unknown target format 'wiki'"):
            get_target_format("wiki")

    def test_protocol_writes_non_default_parameters(self):
        occurrence = LocalOrb(Orb(id="t", alias="T", kind="task"), 1, RefType.LINK)
        assert ProtocolFormat().target(occurrence) == "diurnum://t?type=task&ref=link"

    def test_alias_escaped(self):
        occurrence = LocalOrb(Orb(id="a", alias="[draft] notes"), 1)
        assert ProtocolFormat().cross_reference(occurrence) == "[\\[draft\\] notes](diurnum://a)"

    def test_custom_filename(self):
        occurrence = LocalOrb(Orb(id="a", alias="A"), 1)
        assert RelativePathFormat("index.md").target(occurrence) == "../a/index.md"


class TestRoundTrip:
    """Protocol-format output re-builds to the same document."""

    CANONICAL = (
        "# [A](diurnum://a)\n\nIntro text.\n\n"
        "## Details\n\nMore.\n\n"
        "## [B](diurnum://b)\n\nB body.\n\n"
        "# [C](diurnum://c?ref=link)\n"
    )

    def test_canonical_document_unchanged(self):
        assert _rebuild(self.CANONICAL) == self.CANONICAL

    @pytest.mark.parametrize(
        "text",
        [
            EXAMPLE_TEXT,
            "# [T](diurnum://t?type=task)\n\n-  one\n-  two\n\n### Deep\n\ntext\n",
            "## [A](diurnum://a)\n\n#### Far\n\n## [B](diurnum://b?ref=strip)\n\ngone\n",
            "preamble\n\n# [A](diurnum://a)\n\n1. first\n2. second\n",
        ],
    )
    def test_idempotent(self, text):
        once = _rebuild(text)
        assert _rebuild(once) == once


class TestSelfReferenceRoundTrip:
    @pytest.mark.parametrize(
        "text, expected",
        [
            (
                "# [A](diurnum://a)\n\n## [A](diurnum://a?ref=link)\n",
                "# [A](diurnum://a)\n\n## [A](diurnum://a?ref=link)\n",
            ),
            (
                "# [A](diurnum://a)\n\nbody\n\n## [A](diurnum://a?ref=strip)\n",
                "# [A](diurnum://a)\n\nbody\n",
            ),
        ],
    )
    def test_rebuilds(self, text, expected):
        assert _rebuild(text) == expected
        assert _rebuild(expected) == expected
