from __future__ import annotations

from urllib.parse import unquote, urlsplit, urlunsplit

import httpx

from aocd_source.errors import ResponseParseError, UpstreamStatusError
from aocd_source.types import Answer


def split_api_addr(api_addr: str) -> tuple[str, tuple[str, str] | None]:
    """
    "http://user:pw@host:port" -> ("http://host:port", ("user", "pw")).
    """
    parts = urlsplit(str(api_addr or "").strip())
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"Invalid api address: {api_addr!r}")
    auth = None
    if parts.username is not None or parts.password is not None:
        auth = (unquote(parts.username or ""), unquote(parts.password or ""))
    netloc = parts.hostname if parts.port is None else f"{parts.hostname}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path.rstrip("/"), "", "")), auth


class ProxySource:
    """
    Source provider used inside `aocd safe-run`: both operations are forwarded
    to the parent's loopback service, which owns caching.
    """

    def __init__(self, api_addr: str, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url, self._auth = split_api_addr(api_addr)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=self._auth,
            timeout=None,
            trust_env=False,
            transport=self._transport,
        )

    async def get_input(self, year: int, day: int) -> str:
        async with self._client() as client:
            resp = await client.get("/getInput", params={"year": str(year), "day": str(day)})
        if not resp.is_success:
            raise UpstreamStatusError(resp.status_code, url=str(resp.url))
        return resp.text

    async def submit(self, year: int, day: int, part: int, answer: Answer) -> bool:
        payload = {"year": year, "day": day, "part": part, "solution": answer}
        async with self._client() as client:
            resp = await client.post("/submit", json=payload)
        if not resp.is_success:
            raise UpstreamStatusError(resp.status_code, url=str(resp.url))
        data = resp.json()
        correct = data.get("correct") if isinstance(data, dict) else None
        if not isinstance(correct, bool):
            raise ResponseParseError(f"Unexpected submit response: {data!r}")
        return correct
