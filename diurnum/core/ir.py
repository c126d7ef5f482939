"""Intermediate representation dataclasses for Orbs and their occurrences.

WHY: A flat markdown document has no notion of "this section is its own
unit". The builder needs somewhere to collect each unit's content, and
the renderer needs to know, for every place a unit is referenced, how
deep it mounts and whether to embed, link, or hide it. Keeping the unit
(Orb) separate from its placements (LocalOrb) is what makes transclusion
work: many placements, one shared content list.

HOW: Three dataclasses and one enum:
  RefType     — rendering mode of an occurrence (embed, link, strip)
  Orb         — the uniquely identified content unit
  LocalOrb    — one occurrence of an Orb: relative depth + rendering mode
  ScopeEntry  — one open scope on the builder's pushdown stack

RULES:
- Orb content only grows during a build pass; nothing is removed
- Two references to the same id share one Orb instance
- LocalOrb never owns its Orb; it is positional metadata only
- LocalOrb looks like a tree node (type "orb", children) so generic
  walkers and the markdown adapter can handle it
- Scope stack entries strictly increase in absolute heading depth
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, List

from diurnum.config import DEFAULT_ORB_KIND

ORB_NODE_TYPE = "orb"
"""Node type tag the markdown adapter dispatches occurrences on."""


class RefType(str, enum.Enum):
    """Rendering mode of a single Orb occurrence.

    HOW: Inherits from str so values compare and serialize as plain
    strings ("embed", "link", "strip").

    RULES:
    - embed: render the Orb's full content inline
    - link: render a heading-level cross-reference only, no body
    - strip: render nothing, including descendants
    """

    EMBED = "embed"
    LINK = "link"
    STRIP = "strip"


@dataclass(eq=False)
class Orb:
    """A uniquely identified, transcludable content unit.

    RULES:
    - id: globally unique string (a UUID when generated)
    - alias: display name, taken from the reference marker's link text
    - kind: free-form tag from the ``type`` query parameter
    - content: ordered document nodes; may contain LocalOrb occurrences
    - Identity comparison only (eq=False): two Orbs with equal fields are
      still different units
    """

    id: str
    alias: str
    kind: str = DEFAULT_ORB_KIND
    content: List[Any] = field(default_factory=list)

    @property
    def children(self) -> List[Any]:
        return self.content

    def add_child(self, node: Any) -> None:
        self.content.append(node)


@dataclass(eq=False)
class LocalOrb:
    """One occurrence of an Orb at a position in a document.

    WHY: The same Orb may mount at level 2 in one place and level 4 in
    another, embedded here and only linked there. Those facts belong to
    the placement, not to the Orb.

    RULES:
    - depth: heading level relative to the enclosing occurrence (>= 1 for
      occurrences that came from a heading; 0 only for a standalone root
      render)
    - ref_type: RefType of this placement
    - children is the Orb's content, so walking an occurrence walks the
      transcluded content
    """

    orb: Orb
    depth: int
    ref_type: RefType = RefType.EMBED

    type = ORB_NODE_TYPE

    @property
    def id(self) -> str:
        return self.orb.id

    @property
    def alias(self) -> str:
        return self.orb.alias

    @property
    def kind(self) -> str:
        return self.orb.kind

    @property
    def children(self) -> List[Any]:
        return self.orb.content

    def add_child(self, node: Any) -> None:
        self.orb.add_child(node)


@dataclass
class ScopeEntry:
    """An open occurrence on the builder's scope stack.

    absolute_depth is the source heading level that opened the scope;
    occurrence is the LocalOrb whose Orb receives content while the
    scope stays open.
    """

    absolute_depth: int
    occurrence: LocalOrb
