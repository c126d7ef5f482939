"""Core transclusion modules.

WHY: The core package is the stable heart of diurnum — the Orb IR, the
forward transform (flat tree → Orbs) and the inverse transform (Orb →
flat markdown). Everything else (CLI, link checker) sits on top of it.

HOW: ir.py defines the data structures, builder.py discovers Orbs from a
parsed tree, renderer.py writes them back out, annotate.py decodes YAML
blocks, links.py fans an async handler out over inline links, and
transclusion.py wires the adapter and the passes together for text-level
callers.

RULES:
- No filesystem, network, or process access anywhere in this package
- Build and render passes are synchronous and fail fast
- Errors are the typed exceptions from errors.py
"""
