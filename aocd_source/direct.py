from __future__ import annotations

import json
import re
from pathlib import Path

import httpx
import structlog

from aocd_source import db as dbm
from aocd_source.errors import InvalidSessionError, ResponseParseError, SessionNotFoundError, UpstreamStatusError
from aocd_source.once import AsyncMemo
from aocd_source.settings import AocdSettings
from aocd_source.types import Answer, answers_match, canonical_answer


logger = structlog.get_logger(__name__)

RIGHT_ANSWER = "That's the right answer!"
WRONG_ANSWER = "That's not the right answer"
WRONG_LEVEL = "You don't seem to be solving the right level."
NOT_LOGGED_IN = "To play, please identify yourself"

_MAIN_RE = re.compile(r"<main\b[^>]*>(.*)</main>", re.S)
_PUZZLE_ANSWER_RE = re.compile(r"Your puzzle answer was <code>([^<]+)</code>")


def main_element_html(full_html: str) -> str:
    m = _MAIN_RE.search(full_html or "")
    if not m:
        raise ResponseParseError("Could not find main element in response")
    return m.group(1)


def extract_part_answer(problem_html: str, part: int) -> str | None:
    """
    The puzzle page has one <article> per unlocked part; the answer to part N
    follows the Nth closing </article> tag.
    """
    segments = problem_html.split("</article>")
    if part < 1 or part >= len(segments):
        return None
    segment = segments[part].split("<article")[0]
    m = _PUZZLE_ANSWER_RE.search(segment)
    return m.group(1) if m else None


class DirectSource:
    """
    Source provider that talks to the puzzle site and the local cache store.
    """

    def __init__(
        self,
        settings: AocdSettings | None = None,
        *,
        input_file: str | Path | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or AocdSettings()
        self._input_file = Path(input_file) if input_file is not None else None
        self._transport = transport

        self._session = AsyncMemo(self._load_session)
        self._inputs = AsyncMemo(self._load_input)
        self._problems = AsyncMemo(self._fetch_problem)
        self._submissions = AsyncMemo(
            self._submit,
            key=lambda year, day, part, answer: (year, day, part, canonical_answer(answer)),
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.base_url,
            headers={"User-Agent": self.settings.user_agent},
            timeout=self.settings.http_timeout_seconds,
            transport=self._transport,
        )

    async def _load_session(self) -> str:
        if self.settings.session:
            return self.settings.session
        stored = dbm.get_session(self.settings)
        if stored:
            return stored
        raise SessionNotFoundError()

    async def session_cookie(self) -> str:
        return await self._session()

    async def set_session_cookie(self, session: str) -> None:
        dbm.set_session(self.settings, session.strip())
        self._session.clear()

    async def clear_data(self) -> None:
        dbm.clear_data(self.settings)
        self._session.clear()
        self._inputs.clear()
        self._problems.clear()
        self._submissions.clear()

    async def get_input(self, year: int, day: int) -> str:
        return await self._inputs(int(year), int(day))

    async def _load_input(self, year: int, day: int) -> str:
        if self._input_file is not None:
            return self._input_file.read_text(encoding="utf-8")

        cached = dbm.get_cached_input(self.settings, year=year, day=day)
        if cached is not None:
            return cached

        text = await self._fetch_input(year, day)
        dbm.put_input(self.settings, year=year, day=day, text=text)
        return text

    async def _get(self, path: str) -> str:
        session = await self.session_cookie()
        async with self._client() as client:
            resp = await client.get(path, headers={"Cookie": f"session={session}"})
        if not resp.is_success:
            self._log_response_error(resp)
            raise UpstreamStatusError(resp.status_code, url=str(resp.url))
        return resp.text

    async def _fetch_input(self, year: int, day: int) -> str:
        path = f"/{year}/day/{day}/input"
        logger.warning("Fetching input", url=f"{self.settings.base_url}{path}")
        return await self._get(path)

    async def _fetch_problem(self, year: int, day: int) -> str:
        return main_element_html(await self._get(f"/{year}/day/{day}"))

    async def submit(self, year: int, day: int, part: int, answer: Answer) -> bool:
        return await self._submissions(int(year), int(day), int(part), answer)

    async def _submit(self, year: int, day: int, part: int, answer: Answer) -> bool:
        previous = dbm.sent_solutions(self.settings, year=year, day=day, part=part)
        for sent in previous:
            if answers_match(answer, sent.solution):
                return sent.correct
        if any(sent.correct for sent in previous):
            # Once a part is solved every other value is known to be wrong.
            return False

        correct = await self._submit_to_server(year, day, part, answer)
        dbm.record_solution(
            self.settings,
            year=year,
            day=day,
            part=part,
            solution=canonical_answer(answer),
            correct=correct,
        )
        return correct

    async def _submit_to_server(self, year: int, day: int, part: int, answer: Answer) -> bool:
        path = f"/{year}/day/{day}/answer"
        logger.warning("Submitting answer", url=f"{self.settings.base_url}{path}", part=part)
        session = await self.session_cookie()
        async with self._client() as client:
            resp = await client.post(
                path,
                headers={"Cookie": f"session={session}"},
                data={"level": str(part), "answer": canonical_answer(answer)},
            )
        if not resp.is_success:
            self._log_response_error(resp)
            raise UpstreamStatusError(resp.status_code, url=str(resp.url))

        main_html = main_element_html(resp.text)

        if RIGHT_ANSWER in main_html:
            return True
        if WRONG_ANSWER in main_html:
            return False
        if WRONG_LEVEL in main_html:
            problem = await self._problems(year, day)
            expected = extract_part_answer(problem, part)
            if expected is None:
                logger.error("Could not find correct answer in page", response=json.dumps(main_html))
                raise ResponseParseError("Could not find correct answer in page")
            return answers_match(answer, expected)
        if NOT_LOGGED_IN in main_html:
            raise InvalidSessionError()

        logger.error("Could not parse submission response", response=json.dumps(main_html))
        raise ResponseParseError("Could not parse response")

    def _log_response_error(self, resp: httpx.Response) -> None:
        text = resp.text
        if resp.status_code == 500:
            logger.error(
                "Unknown server error. Is the session cookie correct? Try setting it with `aocd set-cookie COOKIE`.",
                url=str(resp.url),
            )
        elif resp.status_code == 400 and "Please log in" in text:
            logger.error("Session cookie is invalid. Set it with `aocd set-cookie COOKIE`.", url=str(resp.url))
        else:
            logger.error("Bad response", status=resp.status_code, url=str(resp.url), response=json.dumps(text))
