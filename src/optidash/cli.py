"""Command line front end for one-off Optidash requests."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from optidash.client import Optidash
from optidash.models import OPERATION_MODELS


def _parse_operation(value: str) -> tuple[str, dict[str, Any]]:
    name, sep, raw = value.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected NAME=JSON, got {value!r}")
    if name not in OPERATION_MODELS:
        raise argparse.ArgumentTypeError(f"unknown operation {name!r}")
    try:
        params = json.loads(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid JSON for {name}: {exc}") from exc
    if not isinstance(params, dict):
        raise argparse.ArgumentTypeError(f"parameters for {name} must be a JSON object")
    return name, params


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="optidash", description="Send an image to the Optidash API.")
    parser.add_argument("--key", required=True, help="Optidash API key")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--upload", metavar="PATH", help="local image to upload")
    source.add_argument("--fetch", metavar="URL", help="URL of a hosted image")
    parser.add_argument(
        "--op",
        action="append",
        default=[],
        type=_parse_operation,
        metavar="NAME=JSON",
        help='operation and its parameters, e.g. resize=\'{"width": 100}\'',
    )
    parser.add_argument("--output", metavar="PATH", help="write the binary result here instead of printing JSON")
    parser.add_argument("--proxy", help="HTTP proxy URL")
    parser.add_argument("--base-url", help="override the API base URL")
    parser.add_argument("--insecure", action="store_true", help="disable TLS certificate verification")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def _main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    client = Optidash(args.key, base_url=args.base_url, verify_ssl=not args.insecure)
    if args.upload is not None:
        client.upload(args.upload)
    else:
        client.fetch(args.fetch)
    if args.proxy:
        client.proxy(args.proxy)
    for name, params in args.op:
        getattr(client, name)(params)

    if args.output:
        result = client.to_file(args.output)
    else:
        result = client.to_json()

    if result.error is not None:
        print(f"error: {result.error}", file=sys.stderr)
        if result.metadata:
            print(json.dumps(result.metadata, indent=2), file=sys.stderr)
        return 1

    print(json.dumps(result.metadata, indent=2))
    return 0


def main() -> None:
    raise SystemExit(_main())
