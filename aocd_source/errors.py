from __future__ import annotations


class AocdError(Exception):
    """Base class for errors surfaced to aocd users."""


class SessionNotFoundError(AocdError):
    def __init__(self) -> None:
        super().__init__(
            "Could not find Advent of Code session cookie. "
            "Set the AOC_SESSION environment variable or run `aocd set-cookie COOKIE` first."
        )


class InvalidSessionError(AocdError):
    def __init__(self) -> None:
        super().__init__("Session cookie is invalid. Set it with `aocd set-cookie COOKIE`.")


class UpstreamStatusError(AocdError):
    def __init__(self, status_code: int, *, url: str | None = None) -> None:
        self.status_code = int(status_code)
        self.url = url
        super().__init__(f"Bad response: {self.status_code}")


class ResponseParseError(AocdError):
    pass


class SandboxError(AocdError):
    pass
