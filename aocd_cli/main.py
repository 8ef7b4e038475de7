from __future__ import annotations

import argparse
import asyncio
import shlex
import sys
from typing import Sequence

from aocd_runner.day_tests import run_day_tests
from aocd_sandbox.coordinator import SafeRunOptions, safe_run
from aocd_source.direct import DirectSource
from aocd_source.errors import AocdError
from aocd_source.log import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aocd",
        description="Helper tool for solving Advent of Code: fetches and caches inputs, submits answers.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("set-cookie", help="Set the Advent of Code session cookie for later calls")
    p.add_argument("value")

    sub.add_parser("clear-data", help="Forget the session cookie and cached inputs")

    p = sub.add_parser("get-input", help="Print the input for a specific day's challenge")
    p.add_argument("year", type=int)
    p.add_argument("day", type=int)

    p = sub.add_parser("safe-run", help="Run a solution script in a sandboxed child process")
    p.add_argument("--sandbox-flags", default="", help='Extra sandbox flags, e.g. "--allow-net=example.com"')
    p.add_argument("-s", "--submit", action="store_true", help="Allow the script to submit answers")
    p.add_argument("--time", action="store_true", help="Print how long each solver took")
    p.add_argument("script")

    p = sub.add_parser("test", help="Run pytest over every day_<N>.py in the current directory")
    p.add_argument("pytest_args", nargs=argparse.REMAINDER)
    return parser


async def _dispatch(args: argparse.Namespace) -> int:
    if args.command == "set-cookie":
        await DirectSource().set_session_cookie(args.value)
        return 0
    if args.command == "clear-data":
        await DirectSource().clear_data()
        return 0
    if args.command == "get-input":
        text = await DirectSource().get_input(args.year, args.day)
        sys.stdout.write(text)
        sys.stdout.flush()
        return 0
    if args.command == "safe-run":
        options = SafeRunOptions(
            script=args.script,
            sandbox_flags=tuple(shlex.split(args.sandbox_flags or "")),
            submit=bool(args.submit),
            time=bool(args.time),
        )
        return await safe_run(DirectSource(), options)
    raise AssertionError(f"unhandled command {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv[:1] == ["test"]:
        # Everything after `test` belongs to pytest, including its flags.
        configure_logging()
        sys.exit(run_day_tests(".", argv[1:]))

    args = build_parser().parse_args(argv)
    configure_logging()

    try:
        code = asyncio.run(_dispatch(args))
    except AocdError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
