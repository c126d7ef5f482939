"""Typed exceptions raised by the transclusion passes.

WHY: Callers (CLI, batch importers) decide how to recover — skip a
document, prompt a user — so they need to tell a malformed document from
an operation the current context forbids.

HOW: A small hierarchy rooted at DiurnumError. DecodeError also derives
from ValueError so generic "bad input" handlers still catch it.

RULES:
- DecodeError: malformed reference marker or malformed YAML block
- PolicyError: operation forbidden in the current context (embeds
  prohibited, an Orb transcluded inside itself)
- LinkHandlerError: one or more concurrent link handlers failed; raised
  only after every handler has settled
"""

from __future__ import annotations

from typing import List


class DiurnumError(Exception):
    """Base class for every error raised by diurnum."""


class DecodeError(DiurnumError, ValueError):
    """Raised when a reference marker or YAML block cannot be decoded."""


class PolicyError(DiurnumError):
    """Raised when the build or render context forbids an operation."""


class LinkHandlerError(DiurnumError):
    """Raised when at least one link handler failed.

    WHY: Link handlers run concurrently; failing fast would leave the
    remaining handlers running unobserved. The visitor waits for all of
    them and then reports every failure at once.

    RULES:
    - errors holds every handler exception, in link order
    - The first error is also chained as __cause__ by the raiser
    """

    def __init__(self, errors: List[BaseException]) -> None:
        self.errors = list(errors)
        super().__init__(
            "{} link handler(s) failed; first error: {!r}".format(
                len(self.errors), self.errors[0] if self.errors else None,
            )
        )
