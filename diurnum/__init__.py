"""diurnum — bidirectional markdown transclusion engine.

WHY: Notes grow into long heading-delimited documents, but the sections
inside them are worth addressing on their own and reusing elsewhere.
This package splits a flat markdown document into named content units
("Orbs") and renders Orb hierarchies back into flat markdown, so the same
section can be embedded, linked, or hidden wherever it is referenced.

HOW: Three-stage pipeline — parse (markdown adapter + YAML annotation),
build (heading-depth scope stack → Orbs), render (depth-rebasing writer).
Each stage is independently testable.

RULES:
- The Orb IR is the stable contract between building and rendering
- The core never touches the filesystem or network
- Cross-reference target formats are pluggable
"""

__version__ = "0.1.0"
