from __future__ import annotations

import asyncio
import os
import sys
import textwrap
from pathlib import Path

import httpx
import pytest

from aocd_sandbox import coordinator
from aocd_sandbox.app import create_app
from aocd_sandbox.coordinator import (
    SafeRunOptions,
    SandboxSession,
    build_child_command,
    build_sandbox_env,
    exit_code_from_returncode,
    merge_net_flags,
    safe_run,
)
from aocd_source.direct import DirectSource
from aocd_source.errors import SandboxError
from aocd_source.settings import AocdSettings


REPO_ROOT = Path(__file__).resolve().parents[1]


def test_merge_net_flags() -> None:
    api = "127.0.0.1:4567"
    assert merge_net_flags([], api) == ["--allow-net=127.0.0.1:4567"]
    assert merge_net_flags(["--deny-read=/x"], api) == ["--deny-read=/x", "--allow-net=127.0.0.1:4567"]
    assert merge_net_flags(["--allow-net"], api) == ["--allow-net"]
    assert merge_net_flags(["--allow-net=example.com"], api) == ["--allow-net=127.0.0.1:4567,example.com"]


def test_build_child_command() -> None:
    opts = SafeRunOptions(script="day_7.py", sandbox_flags=("--allow-net=example.com",), submit=True, python="py")
    cmd = build_child_command(
        opts,
        api_addr="http://sandbox:pw@127.0.0.1:4567",
        api_domain="127.0.0.1:4567",
        deny_read=("/data", "/cache"),
    )
    assert cmd == [
        "py",
        "-m",
        "aocd_sandbox.guard",
        "--allow-net=127.0.0.1:4567,example.com",
        "--deny-read=/data,/cache",
        "day_7.py",
        "--aocd-api-addr=http://sandbox:pw@127.0.0.1:4567",
        "--submit",
    ]

    plain = build_child_command(SafeRunOptions(script="s.py", time=True, python="py"), api_addr="A", api_domain="D")
    assert plain == ["py", "-m", "aocd_sandbox.guard", "--allow-net=D", "s.py", "--aocd-api-addr=A", "--time"]


def test_sandbox_env_drops_session(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AOC_SESSION", "secret")
    monkeypatch.setenv("SOME_OTHER", "kept")
    env = build_sandbox_env({"EXTRA": "1"})
    assert "AOC_SESSION" not in env
    assert env["SOME_OTHER"] == "kept"
    assert env["EXTRA"] == "1"


def test_exit_code_from_returncode() -> None:
    assert exit_code_from_returncode(0) == 0
    assert exit_code_from_returncode(3) == 3
    assert exit_code_from_returncode(-15) == 143


_CHILD_SCRIPT = """
import asyncio
import ctypes
import os
import socket
import subprocess
import sys

from aocd_runner.default import get_runner, parse_script_args
from aocd_source.errors import UpstreamStatusError
from aocd_source.proxy import ProxySource


async def main() -> int:
    args = parse_script_args()
    if not args.api_addr or args.submit:
        return 10
    if "AOC_SESSION" in os.environ:
        return 11
    if not isinstance(get_runner().source, ProxySource):
        return 12

    source = ProxySource(args.api_addr)
    if await source.get_input(2021, 7) != "16,1,2,0,4,2,7,1,2,14\\n":
        return 13
    try:
        await source.submit(2021, 7, 1, 37)
    except UpstreamStatusError as exc:
        if exc.status_code != 403:
            return 14
    else:
        return 15

    try:
        socket.create_connection(("10.255.255.1", 9), timeout=0.5)
    except PermissionError:
        pass
    else:
        return 16

    try:
        open({cache_db!r}, "rb")
    except PermissionError:
        pass
    else:
        return 17

    try:
        subprocess.run([sys.executable, "-c", "pass"])
    except PermissionError:
        pass
    else:
        return 18

    try:
        ctypes.CDLL(None)
    except PermissionError:
        pass
    else:
        return 19
    return 7


sys.exit(asyncio.run(main()))
"""


@pytest.mark.asyncio
async def test_safe_run_end_to_end(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AOC_SESSION", "must-not-leak")
    monkeypatch.setenv("PYTHONPATH", os.pathsep.join(p for p in (str(REPO_ROOT), os.getenv("PYTHONPATH")) if p))

    site_requests: list[httpx.Request] = []

    def site(request: httpx.Request) -> httpx.Response:
        site_requests.append(request)
        return httpx.Response(200, text="16,1,2,0,4,2,7,1,2,14\n")

    settings = AocdSettings(
        data_dir=str(tmp_path / "data"),
        cache_dir=str(tmp_path / "cache"),
        session="parent-session",
        base_url="https://aoc.example",
    )
    source = DirectSource(settings, transport=httpx.MockTransport(site))

    script = tmp_path / "day_7.py"
    script.write_text(textwrap.dedent(_CHILD_SCRIPT.format(cache_db=settings.cache_db_path)), encoding="utf-8")

    code = await safe_run(source, SafeRunOptions(script=str(script), python=sys.executable))

    assert code == 7
    assert [r.url.path for r in site_requests] == ["/2021/day/7/input"]
    assert site_requests[0].headers["cookie"] == "session=parent-session"


class _IdleSource:
    async def get_input(self, year: int, day: int) -> str:
        return ""

    async def submit(self, year: int, day: int, part: int, answer) -> bool:
        return False


@pytest.mark.asyncio
async def test_sandbox_session_close_is_idempotent() -> None:
    session = SandboxSession(lambda password: create_app(_IdleSource(), password=password, submit_enabled=False))
    await session.start()
    assert session.listening

    async with httpx.AsyncClient(trust_env=False) as client:
        resp = await client.get(f"http://{session.api_domain}/getInput", params={"year": 2021, "day": 1})
    assert resp.status_code == 401

    await session.close()
    await session.close()

    assert not session.listening
    assert session.serve_task is not None and session.serve_task.done()


@pytest.mark.asyncio
async def test_safe_run_raises_when_service_stops_first(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PYTHONPATH", os.pathsep.join(p for p in (str(REPO_ROOT), os.getenv("PYTHONPATH")) if p))

    sessions: list[SandboxSession] = []
    children: list[asyncio.subprocess.Process] = []

    class _ShortLivedSession(SandboxSession):
        async def start(self) -> None:
            await super().start()
            sessions.append(self)
            asyncio.get_running_loop().call_later(0.5, setattr, self._server, "should_exit", True)

    spawn = asyncio.create_subprocess_exec

    async def recording_spawn(*cmd, **kwargs):
        proc = await spawn(*cmd, **kwargs)
        children.append(proc)
        return proc

    monkeypatch.setattr(coordinator, "SandboxSession", _ShortLivedSession)
    monkeypatch.setattr(coordinator.asyncio, "create_subprocess_exec", recording_spawn)

    script = tmp_path / "day_1.py"
    script.write_text("import time\ntime.sleep(60)\n", encoding="utf-8")
    source = DirectSource(AocdSettings(data_dir=str(tmp_path / "data"), cache_dir=str(tmp_path / "cache"), session="s"))

    try:
        with pytest.raises(SandboxError):
            await safe_run(source, SafeRunOptions(script=str(script), python=sys.executable))

        assert len(sessions) == 1
        assert not sessions[0].listening
        assert len(children) == 1
        assert children[0].returncode is None
    finally:
        for proc in children:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
