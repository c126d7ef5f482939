"""Configuration constants, reference-marker vocabulary, and .env loading.

WHY: The transclusion engine, the CLI, and the link checker all need the
same handful of settings: which URL scheme marks an Orb reference, which
host means "assign a new id", what file name a cross-reference points at.
Keeping them in one module makes them easy to find and override.

HOW: python-dotenv loads the .env file on import. Constants are plain
module-level values; anything a user may reasonably want to change can be
overridden through an environment variable.

RULES:
- DIURNUM_PROTOCOL is the scheme without "://" (e.g. "diurnum")
- NEW_ORB_SENTINEL is the host that requests a freshly generated id
- VALID_REF_TYPES lists every accepted ``ref=`` query value
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Reference-marker vocabulary
# ---------------------------------------------------------------------------

DIURNUM_PROTOCOL = os.getenv("DIURNUM_PROTOCOL", "diurnum")
"""URL scheme that marks a heading link as an Orb reference."""

NEW_ORB_SENTINEL = "new"
"""Host value meaning "generate a new unique id for this Orb"."""

DEFAULT_ORB_KIND = "plain"

VALID_REF_TYPES = ("link", "embed", "strip")

# ---------------------------------------------------------------------------
# Rendering defaults
# ---------------------------------------------------------------------------

ORB_FILENAME = os.getenv("DIURNUM_ORB_FILENAME", "orb.md")
"""File name cross-references point at: ``../<id>/<ORB_FILENAME>``."""

DEFAULT_TARGET_FORMAT = os.getenv("DIURNUM_TARGET_FORMAT", "relative")

MAX_HEADING_DEPTH = 6
"""Deepest heading level markdown can express."""

# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------

LINK_CHECK_TIMEOUT_S = float(os.getenv("DIURNUM_LINK_TIMEOUT", "10"))
LOG_LEVEL = os.getenv("DIURNUM_LOG_LEVEL", "WARNING").upper()


def describe_config() -> dict[str, str]:
    """Return the effective settings as display strings.

    Used by ``diurnum test`` so users can check what the .env file and
    environment resolved to.
    """
    return {
        "protocol": "{}://".format(DIURNUM_PROTOCOL),
        "new_orb_sentinel": NEW_ORB_SENTINEL,
        "default_orb_kind": DEFAULT_ORB_KIND,
        "orb_filename": ORB_FILENAME,
        "target_format": DEFAULT_TARGET_FORMAT,
        "link_check_timeout_s": "{:g}".format(LINK_CHECK_TIMEOUT_S),
        "log_level": LOG_LEVEL,
    }
