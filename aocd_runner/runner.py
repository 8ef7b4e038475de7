from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Callable, Mapping

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from aocd_source.types import Answer, MaybeAnswer, PartKey, PartResult, PuzzleKey, Solver, SourceProvider


logger = structlog.get_logger(__name__)


class RunOptions(BaseModel):
    """Options for a PartRunner. Accepts snake_case and legacy camelCase keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel, extra="ignore")

    submit: bool = False
    # Let solver tasks overlap. Only useful for async solvers.
    concurrency: bool = False
    print_results: bool = True
    results_in_order: bool = True
    # Append the solver's wall time to the printed answer line.
    time: bool = False

    @classmethod
    def merge(cls, *layers: RunOptions | Mapping[str, Any] | None) -> RunOptions:
        """Later layers override earlier ones; only explicitly given keys count."""
        data: dict[str, Any] = {}
        for layer in layers:
            if layer is None:
                continue
            opts = layer if isinstance(layer, RunOptions) else cls.model_validate(dict(layer))
            data.update(opts.model_dump(exclude_unset=True))
        return cls(**data)


Reporter = Callable[[], PartResult]


class PartRunner:
    """
    Runs solvers against puzzle inputs.

    Every call to `run_part` is placed on one chain so that result lines are
    printed in call order. With `concurrency` the solver work may overlap;
    with `concurrency` and not `results_in_order` the chain is bypassed.
    """

    def __init__(self, source: SourceProvider, options: RunOptions | Mapping[str, Any] | None = None) -> None:
        self.source = source
        self.options = RunOptions.merge(options)
        self._tasks_complete: asyncio.Future[Any] | None = None

    def run_part(self, year: int, day: int, part: int, solver: Solver) -> asyncio.Task[PartResult]:
        """Schedule one part. Must be called while an event loop is running."""
        key = PartKey(PuzzleKey(int(year), int(day)), int(part))
        opts = self.options

        input_task = asyncio.ensure_future(self.get_input(key.puzzle.year, key.puzzle.day))

        async def compute() -> Reporter:
            text = await input_task
            started = time.perf_counter()
            answer = solver(text)
            if inspect.isawaitable(answer):
                answer = await answer
            elapsed_ms = (time.perf_counter() - started) * 1000.0

            correct: bool | None = None
            if opts.submit and answer is not None:
                correct = await self.submit(key.puzzle.year, key.puzzle.day, key.part, answer)
            return lambda: self._report(key, answer, correct, elapsed_ms)

        if opts.concurrency and not opts.results_in_order:
            async def run_unordered() -> PartResult:
                report = await compute()
                return report()

            return asyncio.ensure_future(run_unordered())

        if opts.concurrency:
            # Work starts now; only the reporting waits for its turn.
            computing = asyncio.ensure_future(compute())

            async def get_reporter() -> Reporter:
                return await computing
        else:
            get_reporter = compute

        previous = self._tasks_complete

        async def run_in_turn() -> PartResult:
            if previous is not None and not previous.done():
                # asyncio.wait never raises, so an earlier failure cannot stall the chain.
                await asyncio.wait([previous])
            report = await get_reporter()
            return report()

        task = asyncio.ensure_future(run_in_turn())
        self._tasks_complete = task
        return task

    async def get_input(self, year: int, day: int) -> str:
        return await self.source.get_input(year, day)

    async def submit(self, year: int, day: int, part: int, answer: Answer) -> bool:
        return await self.source.submit(year, day, part, answer)

    def _report(self, key: PartKey, answer: MaybeAnswer, correct: bool | None, elapsed_ms: float) -> PartResult:
        if self.options.print_results:
            if answer is None:
                line = f"{key} finished executing with no answer returned."
            else:
                line = f"{key}: {answer}"
            if self.options.time:
                line += f" ({elapsed_ms:.2f} ms)"
            print(line, flush=True)
            if correct is not None:
                print(f"The answer has been submitted and it is {'correct!' if correct else 'wrong.'}", flush=True)
        logger.debug("Part finished", part=str(key), answered=answer is not None, correct=correct)
        return PartResult(answer=answer, correct=correct)
