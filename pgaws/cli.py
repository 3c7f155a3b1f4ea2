"""Command line helper for inspecting and testing driver URLs."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from .driver import Driver
from .errors import DriverError
from .url import resolve, set_accept_aws_protocol_only

MASKED = {"password"}


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pgaws", description="Resolve a pgaws URL and optionally connect.")
    parser.add_argument("url", help="postgresql:// or postgresql:aws:// URL")
    parser.add_argument(
        "-s",
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Connection property override (repeatable)",
    )
    parser.add_argument("--strict", action="store_true", help="Only accept postgresql:aws: URLs")
    parser.add_argument("--connect", action="store_true", help="Open a connection and run --query")
    parser.add_argument("--query", default="SELECT version()", help="Statement to run with --connect")
    return parser.parse_args(list(argv))


def _overrides(pairs: Sequence[str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got '{pair}'")
        overrides[key] = value
    return overrides


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    if args.strict:
        set_accept_aws_protocol_only(True)
    try:
        overrides = _overrides(args.overrides)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 2

    driver = Driver()
    try:
        props = resolve(args.url, overrides, driver.load_default_properties())
    except DriverError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    if props is None:
        print(f"not a pgaws URL: {args.url}", file=sys.stderr)
        return 2

    for key in sorted(props):
        value = "****" if key in MASKED else props[key]
        print(f"{key} = {value}")

    if not args.connect:
        return 0
    try:
        connection = driver.connect(args.url, overrides)
        if connection is None:
            print("driver declined the URL", file=sys.stderr)
            return 2
        try:
            print(connection.fetchval(args.query))
        finally:
            connection.close()
    except DriverError as exc:
        print(f"error [{exc.sqlstate}]: {exc}", file=sys.stderr)
        return 1
    return 0


__all__ = ["main", "parse_args"]
