"""Command-line interface for diurnum.

WHY: Users need a quick way to split a markdown document into Orbs,
preview how it re-renders, and audit its links from the terminal. The
CLI wires the parse → build → render pipeline and the link checker
behind a handful of subcommands.

HOW: argparse with one subparser per command. Each command reads its
input file, runs the core passes, and writes results to stdout (render,
links, test) or to an output directory (split). Status messages go to
stderr so stdout can be piped.

RULES:
- test: print effective configuration
- split FILE: write every Orb to <output-dir>/<id>/<ORB_FILENAME> with
  YAML front matter (id, alias, kind) followed by the depth-0 body;
  inline diurnum:// links are rewritten to the chosen target format
- render FILE: rebuild the document from its root occurrences
- links FILE: list links; --check verifies http(s) links, exit 1 if any
  is broken
- Decode/policy/config/file errors print "Error: ..." and exit 1
- Logging level comes from DIURNUM_LOG_LEVEL (or --verbose for DEBUG)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from diurnum import __version__
from diurnum.config import DEFAULT_TARGET_FORMAT, LOG_LEVEL, ORB_FILENAME, describe_config
from diurnum.core.builder import OrbTreeBuilder
from diurnum.core.errors import DiurnumError
from diurnum.core.ir import Orb
from diurnum.core.links import collect_links, handle_links, orb_link_rewriter
from diurnum.core.renderer import TARGET_FORMATS, OrbTreeRenderer, get_target_format
from diurnum.core.transclusion import markdown_to_tree, render_roots
from diurnum.linkcheck import LinkChecker

logger = logging.getLogger(__name__)


def _status(msg: str) -> None:
    """Print a status message to stderr.

    Status output must not pollute stdout so the CLI can be piped.
    """
    print(msg, file=sys.stderr, flush=True)


def _read_document(path_arg: str) -> tuple:
    """Read the input file, returning (resolved path, text)."""
    input_path = Path(path_arg).resolve()
    if not input_path.is_file():
        raise FileNotFoundError("File not found: {}".format(input_path))
    return input_path, input_path.read_text(encoding="utf-8")


def _orb_document(orb: Orb, body: str) -> str:
    """Render the on-disk form of an Orb: YAML front matter, then body."""
    front = yaml.safe_dump(
        {"id": orb.id, "alias": orb.alias, "kind": orb.kind},
        sort_keys=False,
        allow_unicode=True,
    ).rstrip("\n")
    if body:
        return "---\n{}\n---\n\n{}\n".format(front, body)
    return "---\n{}\n---\n".format(front)


def _cmd_test(args: argparse.Namespace) -> int:
    print("diurnum {}".format(__version__))
    for key, value in describe_config().items():
        print("  {}: {}".format(key, value))
    return 0


def _cmd_split(args: argparse.Namespace) -> int:
    input_path, text = _read_document(args.input_file)
    output_dir = Path(args.output_dir).resolve() if args.output_dir else input_path.parent
    target_format = get_target_format(args.format)

    builder = OrbTreeBuilder(prohibit_embeds=args.prohibit_embeds)
    orbs = builder.build(markdown_to_tree(text))
    _status("Found {} Orb(s) in {}".format(len(orbs), input_path.name))

    rewriter = orb_link_rewriter(target_format)
    renderer = OrbTreeRenderer(target_format=target_format)
    for orb in orbs:
        asyncio.run(handle_links(orb, rewriter))
        path = output_dir / orb.id / ORB_FILENAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(_orb_document(orb, renderer.render(orb)), encoding="utf-8")
        _status("  Saved: {} ({})".format(path, orb.alias))
    return 0


def _cmd_render(args: argparse.Namespace) -> int:
    _, text = _read_document(args.input_file)
    builder = OrbTreeBuilder(prohibit_embeds=args.prohibit_embeds)
    builder.build(markdown_to_tree(text))
    sys.stdout.write(render_roots(builder.roots, get_target_format(args.format)))
    return 0


def _cmd_links(args: argparse.Namespace) -> int:
    _, text = _read_document(args.input_file)
    tree = markdown_to_tree(text)
    if not args.check:
        for link in collect_links(tree):
            print(link.url)
        return 0

    async def _check() -> list:
        async with LinkChecker() as checker:
            return await checker.check_links(tree)

    statuses = asyncio.run(_check())
    broken = 0
    for status in statuses:
        if status.ok:
            print("OK      {} {}".format(status.status_code, status.url))
        else:
            broken += 1
            detail = status.status_code if status.status_code is not None else status.error
            print("BROKEN  {} {}".format(detail, status.url))
    _status("Checked {} link(s), {} broken".format(len(statuses), broken))
    return 1 if broken else 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    Separate from main() so tests can inspect it without running commands.
    """
    parser = argparse.ArgumentParser(
        prog="diurnum",
        description="CLI to edit diurnum items: split markdown into Orbs, "
                    "re-render them, and check their links.",
    )
    parser.add_argument("--version", action="version", version="%(prog)s {}".format(__version__))
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log at DEBUG level (default level: %s)." % LOG_LEVEL,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    test = subparsers.add_parser("test", help="Print configuration information.")
    test.set_defaults(func=_cmd_test)

    format_help = "Cross-reference format. Available: {}. Default: %(default)s.".format(
        ", ".join(sorted(TARGET_FORMATS)),
    )

    split = subparsers.add_parser("split", help="Write every Orb in a document to its own file.")
    split.add_argument("input_file", help="Markdown document to split.")
    split.add_argument(
        "--output-dir",
        default=None,
        help="Directory to write Orb folders into (default: next to the input file).",
    )
    split.add_argument("--format", default=DEFAULT_TARGET_FORMAT, help=format_help)
    split.add_argument(
        "--prohibit-embeds",
        action="store_true",
        help="Treat unmarked references as links and reject ref=embed.",
    )
    split.set_defaults(func=_cmd_split)

    render = subparsers.add_parser("render", help="Rebuild a document from its Orbs.")
    render.add_argument("input_file", help="Markdown document to render.")
    render.add_argument("--format", default=DEFAULT_TARGET_FORMAT, help=format_help)
    render.add_argument(
        "--prohibit-embeds",
        action="store_true",
        help="Treat unmarked references as links and reject ref=embed.",
    )
    render.set_defaults(func=_cmd_render)

    links = subparsers.add_parser("links", help="List (and optionally check) links.")
    links.add_argument("input_file", help="Markdown document to scan.")
    links.add_argument("--check", action="store_true", help="Check http(s) links concurrently.")
    links.set_defaults(func=_cmd_links)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    argv=None means use sys.argv; explicit argv is for testing.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else LOG_LEVEL,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        code = args.func(args)
    except (DiurnumError, ValueError, OSError) as e:
        print("Error: {}".format(e), file=sys.stderr)
        sys.exit(1)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
