from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, Union, runtime_checkable


Answer = Union[int, float, str]
MaybeAnswer = Union[Answer, None]
Solver = Callable[[str], Union[MaybeAnswer, Awaitable[MaybeAnswer]]]


@dataclass(frozen=True)
class PuzzleKey:
    year: int
    day: int

    def __str__(self) -> str:
        return f"{self.year} Day {self.day}"


@dataclass(frozen=True)
class PartKey:
    puzzle: PuzzleKey
    part: int

    def __post_init__(self) -> None:
        if self.part not in (1, 2):
            raise ValueError(f"part must be 1 or 2, got {self.part!r}")

    def __str__(self) -> str:
        return f"{self.puzzle} Part {self.part}"


@dataclass(frozen=True)
class PartResult:
    answer: MaybeAnswer
    # None when the answer was not submitted.
    correct: bool | None = None


@runtime_checkable
class SourceProvider(Protocol):
    async def get_input(self, year: int, day: int) -> str: ...

    async def submit(self, year: int, day: int, part: int, answer: Answer) -> bool: ...


def is_answer(value: object) -> bool:
    return isinstance(value, (int, float, str)) and not isinstance(value, bool)


def canonical_answer(answer: Answer) -> str:
    """
    String form used for submission and for the sent-solutions cache.
    Integral floats are written as integers so 42 and 42.0 compare equal.
    """
    if not is_answer(answer):
        raise TypeError(f"answer must be a number or string, got {type(answer).__name__}")
    if isinstance(answer, float) and answer.is_integer():
        return str(int(answer))
    return str(answer)


def answers_match(answer: Answer, text: str) -> bool:
    """
    Compare an answer with its stored or published text form. Integers are
    compared exactly; other numbers by their canonical form.
    """
    if isinstance(answer, str):
        return answer == str(text)
    stripped = str(text).strip()
    if isinstance(answer, int):
        try:
            return int(stripped) == answer
        except ValueError:
            pass
    return canonical_answer(answer) == stripped
