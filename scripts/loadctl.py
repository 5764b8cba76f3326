#!/usr/bin/env python
"""
Drive a running load generator through its HTTP control surface.

Examples:
  python scripts/loadctl.py status
  python scripts/loadctl.py stop queue-and-move
  python scripts/loadctl.py update move 0.5
  python scripts/loadctl.py update-all 2 6 4
  python scripts/loadctl.py delete
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Sequence

import requests

DEFAULT_BASE = "http://127.0.0.1:3001"


def build_path(args: argparse.Namespace) -> str:
    if args.command in ("start", "stop"):
        return f"/{args.command}/{args.routines}" if args.routines else f"/{args.command}"
    if args.command == "update":
        return f"/update/{args.routine}/{args.seconds}"
    if args.command == "update-all":
        return f"/update/{args.queue}/{args.move}/{args.get}"
    return f"/{args.command}"


def call(base: str, path: str, timeout: float) -> requests.Response:
    return requests.get(base.rstrip("/") + path, timeout=timeout)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Control a running washload instance")
    parser.add_argument("--base", default=DEFAULT_BASE, help=f"control surface base URL (default: {DEFAULT_BASE})")
    parser.add_argument("--timeout", type=float, default=30.0, help="HTTP timeout in seconds")
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("start", "stop"):
        cmd = sub.add_parser(name, help=f"{name} routines (all when omitted)")
        cmd.add_argument("routines", nargs="?", help="queue, get, move, queue-and-move or a comma list")

    update = sub.add_parser("update", help="change one routine's interval")
    update.add_argument("routine", choices=["queue", "get", "move"])
    update.add_argument("seconds")

    update_all = sub.add_parser("update-all", help="change all three intervals")
    update_all.add_argument("queue")
    update_all.add_argument("move")
    update_all.add_argument("get")

    sub.add_parser("delete", help="delete washes queued by the load routines")
    sub.add_parser("status", help="show routine and process status")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    path = build_path(args)
    try:
        resp = call(args.base, path, args.timeout)
    except requests.RequestException as exc:
        print(f"request to {args.base}{path} failed: {exc}", file=sys.stderr)
        return 2

    try:
        print(json.dumps(resp.json(), ensure_ascii=False, indent=2))
    except ValueError:
        print(resp.text)
    return 0 if resp.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
