"""Puzzle input and answer providers.

`DirectSource` talks to adventofcode.com and keeps the local cache;
`ProxySource` forwards the same two operations to the loopback service run by
`aocd safe-run`.
"""

from .direct import DirectSource
from .errors import (
    AocdError,
    InvalidSessionError,
    ResponseParseError,
    SandboxError,
    SessionNotFoundError,
    UpstreamStatusError,
)
from .proxy import ProxySource
from .settings import AocdSettings
from .types import Answer, MaybeAnswer, PartKey, PartResult, PuzzleKey, Solver, SourceProvider

__all__ = [
    "AocdError",
    "AocdSettings",
    "Answer",
    "DirectSource",
    "InvalidSessionError",
    "MaybeAnswer",
    "PartKey",
    "PartResult",
    "ProxySource",
    "PuzzleKey",
    "ResponseParseError",
    "SandboxError",
    "SessionNotFoundError",
    "Solver",
    "SourceProvider",
    "UpstreamStatusError",
]
