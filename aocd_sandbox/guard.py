"""Child-side entry point for `aocd safe-run`.

    python -m aocd_sandbox.guard [--allow-net[=HOSTS]] [--deny-read=PATHS] [--allow-run] SCRIPT [ARGS...]

Installs an audit hook (PEP 578) that enforces the given permissions for the
rest of the process lifetime, then runs SCRIPT as `__main__`. Without
`--allow-net` no outbound connection is permitted; `--allow-net=a,b:8080`
permits the listed hosts (optionally pinned to a port); a bare `--allow-net`
lifts the restriction. Starting processes and loading native code through
ctypes are refused unless `--allow-run` is given, since a new process would
run without the hook. Audit hooks cannot be removed once installed.
"""

from __future__ import annotations

import ipaddress
import os
import runpy
import socket
import sys
from dataclasses import dataclass, field
from typing import Any, Sequence


_LOOPBACK_ALIASES = {"localhost": ("127.0.0.1", "::1")}

_RUN_EVENTS = frozenset(
    {
        "subprocess.Popen",
        "os.system",
        "os.exec",
        "os.posix_spawn",
        "os.spawn",
        "os.fork",
        "os.forkpty",
        "os.startfile",
        "pty.spawn",
        "ctypes.dlopen",
        "ctypes.dlsym",
        "ctypes.cdata",
    }
)


def parse_net_entries(value: str) -> tuple[tuple[str, int | None], ...]:
    out: list[tuple[str, int | None]] = []
    for raw in str(value or "").split(","):
        item = raw.strip().lower()
        if not item:
            continue
        if item.startswith("["):
            host, _, rest = item[1:].partition("]")
            port = rest[1:] if rest.startswith(":") else ""
            out.append((host, int(port) if port.isdigit() else None))
            continue
        if item.count(":") > 1:
            out.append((item, None))
            continue
        host, sep, port = item.rpartition(":")
        if sep and host and port.isdigit():
            out.append((host, int(port)))
        else:
            out.append((item, None))
    return tuple(out)


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def _as_port(value: Any) -> int | None:
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="replace")
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class NetGuard:
    unrestricted: bool = False
    entries: tuple[tuple[str, int | None], ...] = ()
    _resolved_ips: set[tuple[str, int | None]] = field(default_factory=set)
    _resolving: set[str] = field(default_factory=set)

    def _matches(self, host: str, port: int | None) -> tuple[str, int | None] | None:
        host = host.lower()
        for entry_host, entry_port in self.entries:
            names = (entry_host, *_LOOPBACK_ALIASES.get(entry_host, ()))
            if host in names and (entry_port is None or port is None or entry_port == port):
                return entry_host, entry_port
        for ip, entry_port in self._resolved_ips:
            if host == ip and (entry_port is None or port is None or entry_port == port):
                return ip, entry_port
        return None

    def check(self, host: Any, port: Any) -> None:
        if self.unrestricted:
            return
        if isinstance(host, bytes):
            host = host.decode("idna", errors="replace")
        h = str(host or "").strip().strip("[]").lower()
        p = _as_port(port)
        entry = self._matches(h, p)
        if entry is None:
            raise PermissionError(f"Network access to {h}:{port} denied by aocd sandbox")
        if not _is_ip(h) and h not in self._resolving:
            self._remember_addresses(h, entry[1])

    def _remember_addresses(self, host: str, port: int | None) -> None:
        # Connections go to the resolved address, so allowed hostnames are
        # resolved once here and their addresses allowed with the same port.
        self._resolving.add(host)
        try:
            infos = socket.getaddrinfo(host, None)
        except OSError:
            return
        for info in infos:
            self._resolved_ips.add((str(info[4][0]).lower(), port))

    def check_address(self, address: Any) -> None:
        if self.unrestricted:
            return
        if isinstance(address, tuple) and len(address) >= 2:
            self.check(address[0], address[1])
            return
        raise PermissionError(f"Network access to {address!r} denied by aocd sandbox")


@dataclass(frozen=True)
class ReadGuard:
    denied: tuple[str, ...] = ()

    def check(self, path: Any) -> None:
        if not self.denied or isinstance(path, int) or path is None:
            return
        try:
            real = os.path.realpath(os.fsdecode(path))
        except (TypeError, ValueError):
            return
        for d in self.denied:
            if real == d or real.startswith(d.rstrip(os.sep) + os.sep):
                raise PermissionError(f"Read access to {real} denied by aocd sandbox")


def install_guard(net: NetGuard, reads: ReadGuard, *, allow_run: bool = False) -> None:
    def _hook(event: str, args: tuple[Any, ...]) -> None:
        if event in _RUN_EVENTS and not allow_run:
            raise PermissionError(f"{event} denied by aocd sandbox; pass --allow-run to permit it")
        if event == "socket.getaddrinfo":
            net.check(args[0], args[1])
        elif event in ("socket.connect", "socket.sendto"):
            net.check_address(args[1])
        elif event in ("open", "sqlite3.connect"):
            reads.check(args[0] if args else None)

    sys.addaudithook(_hook)


@dataclass(frozen=True)
class GuardArgs:
    net: NetGuard
    reads: ReadGuard
    allow_run: bool
    script: str
    script_args: tuple[str, ...]


def parse_guard_args(argv: Sequence[str]) -> GuardArgs:
    unrestricted = False
    allow_run = False
    entries: list[tuple[str, int | None]] = []
    denied: list[str] = []
    args = list(argv)
    i = 0
    while i < len(args) and args[i].startswith("--"):
        flag = args[i]
        if flag == "--allow-net":
            unrestricted = True
        elif flag.startswith("--allow-net="):
            entries.extend(parse_net_entries(flag.split("=", 1)[1]))
        elif flag == "--allow-run":
            allow_run = True
        elif flag.startswith("--deny-read="):
            denied.extend(os.path.realpath(p) for p in flag.split("=", 1)[1].split(",") if p.strip())
        else:
            raise SystemExit(f"aocd sandbox: unknown flag {flag}")
        i += 1
    if i >= len(args):
        raise SystemExit("aocd sandbox: missing script argument")
    return GuardArgs(
        net=NetGuard(unrestricted=unrestricted, entries=tuple(entries)),
        reads=ReadGuard(denied=tuple(denied)),
        allow_run=allow_run,
        script=args[i],
        script_args=tuple(args[i + 1 :]),
    )


def main(argv: Sequence[str] | None = None) -> None:
    parsed = parse_guard_args(sys.argv[1:] if argv is None else argv)
    script = os.path.abspath(parsed.script)
    sys.argv = [parsed.script, *parsed.script_args]
    sys.path.insert(0, os.path.dirname(script))
    if not parsed.allow_run:
        # ctypes loads the interpreter library on import; do that while it is still allowed.
        try:
            import ctypes  # noqa: F401
        except ImportError:
            pass
    install_guard(parsed.net, parsed.reads, allow_run=parsed.allow_run)
    runpy.run_path(script, run_name="__main__")


if __name__ == "__main__":
    main()
