"""Command-line entry point.

Usage:
    mpwbuild [options] [compiler args...] [-- compiler args...]

Arguments the CLI does not recognise, and everything after ``--``, are passed
verbatim to every compile and link invocation (e.g. ``mpwbuild -DDEBUG``).
"""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Sequence

import structlog

from mpwbuild.config import load_config
from mpwbuild.driver import BuildDriver
from mpwbuild.errors import BuildError
from mpwbuild.observability import setup_logging

log = structlog.get_logger("mpwbuild.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mpwbuild",
        description="Fetch, verify and build dependencies, then compile and link targets.",
        allow_abbrev=False,
    )
    parser.add_argument(
        "--target",
        dest="targets",
        action="append",
        metavar="NAME",
        help="Target to build (repeatable). Defaults to $targets or the built-in list.",
    )
    parser.add_argument("--enable", action="append", default=[], metavar="FEATURE")
    parser.add_argument("--disable", action="append", default=[], metavar="FEATURE")
    parser.add_argument("--root", default=".", help="Project root containing sources and lib/")
    parser.add_argument("--offline", action="store_true", help="Never touch the network")
    parser.add_argument(
        "--allow-missing-digest",
        action="store_true",
        help="Accept archive sources that have no expected sha256",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at debug level")
    parser.add_argument("--log-format", choices=("console", "json"))
    return parser


def split_passthrough(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split *argv* at the first ``--`` into (options, passthrough)."""
    items = list(argv)
    if "--" in items:
        index = items.index("--")
        return items[:index], items[index + 1 :]
    return items, []


def main(argv: Sequence[str] | None = None) -> int:
    options, passthrough = split_passthrough(sys.argv[1:] if argv is None else argv)
    args, unknown = build_parser().parse_known_args(options)
    setup_logging(level="DEBUG" if args.verbose else None, log_format=args.log_format)

    features = {name: True for name in args.enable}
    features.update({name: False for name in args.disable})
    try:
        config = load_config(
            root=args.root,
            environ=os.environ,
            targets=args.targets,
            feature_overrides=features,
            extra_args=[*unknown, *passthrough],
            offline=args.offline,
            allow_missing_digest=args.allow_missing_digest,
        )
        BuildDriver(config).run()
    except BuildError as exc:
        log.error("build.failed", **exc.to_dict())
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
