"""Shared test fixtures for the diurnum test suite.

WHY: Several test modules need the same worked example document and a
builder whose generated ids are predictable. Centralizing them here keeps
the expected strings in one place.

HOW: Pytest fixtures provide a fresh MarkdownAdapter, a deterministic id
factory, and the two-Orb example document.

RULES:
- Generated ids are "gen-1", "gen-2", ... in creation order
- EXAMPLE_TEXT is the reference example: one embedded Orb with a
  link-only child
"""

from typing import Callable, Iterator

import pytest

from diurnum.adapters.markdown_adapter import MarkdownAdapter
from diurnum.core.builder import OrbTreeBuilder

EXAMPLE_TEXT = "# [Intro](diurnum://new)\n\nSome text\n\n## [Sub](diurnum://abc?ref=link)"


def make_id_factory() -> Callable[[], str]:
    counter = iter(range(1, 1000))
    return lambda: "gen-{}".format(next(counter))


@pytest.fixture
def adapter() -> MarkdownAdapter:
    return MarkdownAdapter()


@pytest.fixture
def builder() -> OrbTreeBuilder:
    """Builder with deterministic generated ids."""
    return OrbTreeBuilder(id_factory=make_id_factory())


@pytest.fixture
def build(adapter, builder) -> Iterator:
    """Parse text and run one build pass; returns the Orb list."""

    def _build(text, **kwargs):
        return builder.build(adapter.parse(text), **kwargs)

    yield _build
