from __future__ import annotations

import pytest

from aocd_runner import default as default_runner
from aocd_runner.default import (
    configure,
    get_direct_source,
    get_runner,
    get_runner_if_set,
    parse_script_args,
    run_day,
    set_runner,
)
from aocd_runner.runner import PartRunner
from aocd_source.direct import DirectSource
from aocd_source.errors import AocdError
from aocd_source.proxy import ProxySource


class _StaticSource:
    async def get_input(self, year: int, day: int) -> str:
        return "3\n4\n"

    async def submit(self, year: int, day: int, part: int, answer) -> bool:
        return True


def test_parse_script_args_ignores_unknown_flags() -> None:
    args = parse_script_args(["-s", "--verbose", "--aocd-api-addr=http://sandbox:pw@127.0.0.1:1", "extra"])
    assert args.submit is True
    assert args.time is False
    assert args.api_addr == "http://sandbox:pw@127.0.0.1:1"
    assert parse_script_args([]).api_addr is None


def test_get_runner_picks_direct_source_and_is_cached() -> None:
    runner = get_runner([])
    assert isinstance(runner.source, DirectSource)
    assert get_runner(["--submit"]) is runner
    assert get_runner_if_set() is runner
    assert get_direct_source() is runner.source


def test_get_runner_uses_proxy_when_api_addr_given() -> None:
    runner = get_runner(["--aocd-api-addr=http://sandbox:pw@127.0.0.1:4567", "--submit", "--time"])
    assert isinstance(runner.source, ProxySource)
    assert runner.source.base_url == "http://127.0.0.1:4567"
    assert runner.options.submit is True
    assert runner.options.time is True
    with pytest.raises(AocdError):
        get_direct_source()


def test_configure_layers_under_script_flags() -> None:
    source = _StaticSource()
    configure(options={"resultsInOrder": False, "submit": False, "concurrency": True}, source=source)
    with pytest.raises(RuntimeError):
        configure(options={})

    runner = get_runner(["-s"])
    assert runner.source is source
    assert runner.options.submit is True
    assert runner.options.results_in_order is False
    assert runner.options.concurrency is True

    with pytest.raises(RuntimeError):
        configure()
    with pytest.raises(RuntimeError):
        set_runner(PartRunner(source))


def test_set_runner_then_run_day(capsys: pytest.CaptureFixture[str]) -> None:
    set_runner(PartRunner(_StaticSource()))

    results = run_day(2022, 1, lambda text: len(text.split()), None)

    assert [r.answer for r in results] == [2]
    assert capsys.readouterr().out.splitlines() == ["2022 Day 1 Part 1: 2"]


def test_run_day_raises_first_failure_after_all_parts_report(capsys: pytest.CaptureFixture[str]) -> None:
    set_runner(PartRunner(_StaticSource()))

    def broken(text: str) -> int:
        raise KeyError("part1")

    with pytest.raises(KeyError):
        run_day(2022, 1, broken, lambda text: "ok")
    assert capsys.readouterr().out.splitlines() == ["2022 Day 1 Part 2: ok"]
    assert default_runner.get_runner_if_set() is not None


def test_run_day_can_be_called_repeatedly(capsys: pytest.CaptureFixture[str]) -> None:
    set_runner(PartRunner(_StaticSource()))
    run_day(2022, 1, lambda text: 1)
    run_day(2022, 2, lambda text: 2)
    assert capsys.readouterr().out.splitlines() == ["2022 Day 1 Part 1: 1", "2022 Day 2 Part 1: 2"]
