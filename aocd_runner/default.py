"""Per-process default runner for solution scripts.

Scripts normally call `run_day(2021, 7, part1, part2)`; the runner behind it
is built on first use from the script's own argv: `--aocd-api-addr` (passed
by `aocd safe-run`) selects the loopback proxy, anything else uses the
direct source. Tests should build a `PartRunner` explicitly instead.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import structlog

from aocd_runner.runner import PartRunner, RunOptions
from aocd_source.direct import DirectSource
from aocd_source.errors import AocdError
from aocd_source.log import configure_logging
from aocd_source.proxy import ProxySource
from aocd_source.types import PartResult, Solver, SourceProvider


logger = structlog.get_logger(__name__)

_runner: PartRunner | None = None
_config: dict[str, Any] | None = None


@dataclass(frozen=True)
class ScriptArgs:
    submit: bool = False
    time: bool = False
    api_addr: str | None = None


def parse_script_args(argv: Sequence[str] | None = None) -> ScriptArgs:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("-s", "--submit", action="store_true")
    parser.add_argument("--time", action="store_true")
    parser.add_argument("--aocd-api-addr", default=None)
    args, _unknown = parser.parse_known_args(list(sys.argv[1:] if argv is None else argv))
    api_addr = str(args.aocd_api_addr or "").strip() or None
    return ScriptArgs(submit=bool(args.submit), time=bool(args.time), api_addr=api_addr)


def configure(
    *,
    options: RunOptions | Mapping[str, Any] | None = None,
    source: SourceProvider | None = None,
) -> None:
    """
    Preconfigure the default runner before it is first used. Options may use
    the legacy camelCase keys. Raises if aocd is already configured.
    """
    global _config
    if _config is not None or _runner is not None:
        raise RuntimeError("configure() may not be called when aocd is already configured")
    _config = {"options": options, "source": source}


def get_runner(argv: Sequence[str] | None = None) -> PartRunner:
    global _runner
    if _runner is not None:
        return _runner

    configure_logging()
    args = parse_script_args(argv)
    cfg = _config or {}
    source: SourceProvider | None = cfg.get("source")
    if source is None:
        source = ProxySource(args.api_addr) if args.api_addr else DirectSource()
    flags = {name: True for name in ("submit", "time") if getattr(args, name)}
    _runner = PartRunner(source, RunOptions.merge(cfg.get("options"), flags))
    logger.debug("Default runner created", source=type(source).__name__, submit=_runner.options.submit)
    return _runner


def get_runner_if_set() -> PartRunner | None:
    return _runner


def set_runner(runner: PartRunner) -> None:
    global _runner
    if _runner is not None:
        raise RuntimeError("aocd runner is already set")
    _runner = runner


def get_direct_source() -> DirectSource:
    source = get_runner().source
    if isinstance(source, DirectSource):
        return source
    if isinstance(source, ProxySource):
        raise AocdError("get_direct_source() is disallowed inside safe-run")
    raise AocdError("The aocd runner is not using a DirectSource")


def run_part(year: int, day: int, part: int, solver: Solver) -> asyncio.Task[PartResult]:
    return get_runner().run_part(year, day, part, solver)


def run_day(year: int, day: int, *solvers: Solver | None) -> list[PartResult]:
    """
    Run the given parts (part 1 first) to completion from synchronous code.
    All parts finish reporting before the first failure, if any, is raised.
    """

    async def _main() -> list[PartResult]:
        runner = get_runner()
        tasks = [runner.run_part(year, day, part, solver) for part, solver in enumerate(solvers, start=1) if solver]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for r in results:
            if isinstance(r, BaseException):
                raise r
        return list(results)

    return asyncio.run(_main())
