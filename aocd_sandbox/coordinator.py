from __future__ import annotations

import asyncio
import os
import socket
import sys
import uuid
from dataclasses import dataclass, field
from typing import Sequence

import structlog
import uvicorn

from aocd_sandbox.app import create_app
from aocd_sandbox.auth import SANDBOX_USERNAME
from aocd_source.direct import DirectSource
from aocd_source.errors import SandboxError


logger = structlog.get_logger(__name__)

LOOPBACK_HOST = "127.0.0.1"
_SECRET_ENV_KEYS = {"AOC_SESSION"}


@dataclass(frozen=True)
class SafeRunOptions:
    script: str
    # Flags for aocd_sandbox.guard, e.g. ["--allow-net=example.com"].
    sandbox_flags: Sequence[str] = field(default_factory=tuple)
    submit: bool = False
    time: bool = False
    python: str = field(default_factory=lambda: sys.executable)


def merge_net_flags(flags: Sequence[str], api_domain: str) -> list[str]:
    """
    Make sure the child may reach `api_domain`: a bare --allow-net is left
    alone, an existing host list gets the domain prepended, otherwise a new
    --allow-net=<api_domain> is appended.
    """
    out = list(flags)
    for i, flag in enumerate(out):
        if flag == "--allow-net":
            return out
        if flag.startswith("--allow-net="):
            out[i] = flag.replace("--allow-net=", f"--allow-net={api_domain},", 1)
            return out
    out.append(f"--allow-net={api_domain}")
    return out


def build_child_command(
    options: SafeRunOptions,
    *,
    api_addr: str,
    api_domain: str,
    deny_read: Sequence[str] = (),
) -> list[str]:
    flags = merge_net_flags(options.sandbox_flags, api_domain)
    if deny_read:
        flags.append("--deny-read=" + ",".join(str(p) for p in deny_read))
    cmd = [
        options.python,
        "-m",
        "aocd_sandbox.guard",
        *flags,
        options.script,
        f"--aocd-api-addr={api_addr}",
    ]
    if options.submit:
        cmd.append("--submit")
    if options.time:
        cmd.append("--time")
    return cmd


def build_sandbox_env(extra: dict[str, str] | None = None) -> dict[str, str]:
    """The parent's environment minus the session secret."""
    env = {str(k): str(v) for k, v in os.environ.items() if k not in _SECRET_ENV_KEYS}
    if extra:
        for k, v in extra.items():
            env[str(k)] = str(v)
    return env


def exit_code_from_returncode(returncode: int) -> int:
    # asyncio reports death-by-signal as -signum.
    return 128 - returncode if returncode < 0 else returncode


class SandboxSession:
    """
    The loopback service for one safe-run: a fresh password, a listening
    socket on an ephemeral port, and the uvicorn server serving it.
    """

    def __init__(self, app_factory, *, host: str = LOOPBACK_HOST, username: str = SANDBOX_USERNAME) -> None:
        self.host = host
        self.username = username
        self.password = str(uuid.uuid4())
        self._app_factory = app_factory
        self._sock: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self.serve_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def port(self) -> int:
        if self._sock is None:
            raise SandboxError("sandbox service is not started")
        return int(self._sock.getsockname()[1])

    @property
    def api_domain(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def api_addr(self) -> str:
        return f"http://{self.username}:{self.password}@{self.api_domain}"

    @property
    def listening(self) -> bool:
        return self._sock is not None and self._sock.fileno() != -1

    async def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.host, 0))
        sock.listen(128)
        self._sock = sock

        config = uvicorn.Config(
            self._app_factory(self.password),
            log_level="warning",
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=1,
        )
        self._server = uvicorn.Server(config)
        self.serve_task = asyncio.ensure_future(self._server.serve(sockets=[sock]))
        while not self._server.started:
            if self.serve_task.done():
                self.serve_task.result()
                raise SandboxError("sandbox service stopped during startup")
            await asyncio.sleep(0.01)
        logger.debug("Sandbox service listening", api_domain=self.api_domain)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._server is not None:
            self._server.should_exit = True
        task = self.serve_task
        if task is not None:
            if not task.done():
                _done, pending = await asyncio.wait({task}, timeout=5.0)
                if pending:
                    task.cancel()
                    await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                logger.warning("Sandbox service exited with error", error=repr(task.exception()))
        if self._sock is not None:
            self._sock.close()


async def safe_run(source: DirectSource, options: SafeRunOptions) -> int:
    """
    Run `options.script` in a child process whose only network access is the
    loopback service proxying `source`. Returns the child's exit code.
    """
    session = SandboxSession(
        lambda password: create_app(source, password=password, submit_enabled=options.submit),
    )
    child_wait: asyncio.Future[int] | None = None
    try:
        await session.start()
        cmd = build_child_command(
            options,
            api_addr=session.api_addr,
            api_domain=session.api_domain,
            deny_read=(source.settings.data_dir, source.settings.cache_dir),
        )
        logger.info("Starting sandboxed script", script=options.script, api_domain=session.api_domain)
        proc = await asyncio.create_subprocess_exec(*cmd, env=build_sandbox_env())
        child_wait = asyncio.ensure_future(proc.wait())

        serve_task = session.serve_task
        if serve_task is None:
            raise SandboxError("sandbox service is not running")
        done, _pending = await asyncio.wait({child_wait, serve_task}, return_when=asyncio.FIRST_COMPLETED)
        if child_wait in done:
            code = exit_code_from_returncode(child_wait.result())
            logger.debug("Sandboxed script exited", code=code)
            return code

        # The service stopped while the child is still running. The child is
        # left alone; its proxy calls will fail from here on.
        serve_task.result()
        raise SandboxError("sandbox service stopped before the script exited")
    finally:
        if child_wait is not None and not child_wait.done():
            child_wait.cancel()
        await session.close()
