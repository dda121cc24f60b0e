"""
Shared fakes for the avdkit suite.

`FakeEmulators` stands in for everything outside the process: the adb
server (through a fake ``adbutils`` client), host-side ``adb`` verbs and
``avdmanager``/``sdkmanager`` runs (through ``_tools._run``) and emulator
launches (through ``_tools._spawn_detached``). No Android SDK is needed.
"""
from __future__ import annotations

import functools
import subprocess
from collections import namedtuple
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import adbutils
import pytest

from avdkit import _tools, adb, packages
from avdkit.errors import ExternalToolError

Info = namedtuple("Info", "serial state")
ShellReturn = namedtuple("ShellReturn", "command returncode output")


class _Emu:
    def __init__(self, avd_id: Optional[str], writable: bool, path: Optional[Path]) -> None:
        self.avd_id = avd_id
        self.writable = writable
        self.path = path
        self.verification = "enabled"
        self.verity = "enabled"
        self.files: Dict[str, str] = {}
        self.packages: List[str] = []


class FakeDevice:
    def __init__(self, world: "FakeEmulators", serial: str) -> None:
        self.world = world
        self.serial = serial

    def _emu(self) -> _Emu:
        port = adb.port_from_serial(self.serial)
        if port not in self.world.running:
            raise adbutils.AdbError(f"device '{self.serial}' not found")
        return self.world.running[port]

    def _execute(self, cmd) -> ShellReturn:
        argv = cmd.split() if isinstance(cmd, str) else list(cmd)
        self.world.shell_calls.append((self.serial, argv))
        emu = self._emu()
        for predicate, output in self.world.shell_failures:
            if predicate(argv):
                return ShellReturn(argv, 1, output)
        if argv == ["getprop", "sys.boot_completed"]:
            return ShellReturn(argv, 0, "1" if self.world.boots_complete else "")
        if argv[:2] == ["avbctl", "get-verification"]:
            return ShellReturn(argv, 0, f"verification is {emu.verification}")
        if argv[:2] == ["avbctl", "get-verity"]:
            return ShellReturn(argv, 0, f"verity is {emu.verity}")
        if argv[:2] == ["avbctl", "disable-verification"]:
            emu.verification = "disabled"
        if argv[:3] == ["pm", "list", "packages"]:
            listing = "\n".join(f"package:{p}" for p in emu.packages if argv[3] in p)
            return ShellReturn(argv, 0, listing)
        if argv[:1] == ["ls"]:
            prefix = argv[1].rstrip("/") + "/"
            if not any(f.startswith(prefix) for f in emu.files):
                return ShellReturn(argv, 1, f"ls: {argv[1]}: No such file or directory")
            listing = "\n".join(f[len(prefix):] for f in emu.files if f.startswith(prefix))
            return ShellReturn(argv, 0, listing)
        return ShellReturn(argv, 0, "")

    # adbutils: shell() hands back the output whatever the exit status
    def shell(self, cmd):
        return self._execute(cmd).output

    def shell2(self, cmd):
        return self._execute(cmd)

    def push(self, local: str, remote: str) -> None:
        self._emu().files[remote] = Path(local).read_text()


class FakeClient:
    def __init__(self, world: "FakeEmulators") -> None:
        self.world = world

    def list(self):
        return [Info(adb.serial_for(port), "device") for port in self.world.running] + [
            Info(serial, "device") for serial in self.world.other_serials
        ]

    def device(self, serial: str) -> FakeDevice:
        return FakeDevice(self.world, serial)


class FakeEmulators:
    """
    In-memory emulator fleet plus a command router for ``_tools._run``.

    `responses` maps a predicate over argv to stdout (or an exception) for
    commands the fleet itself does not understand (sdkmanager, avdmanager).
    """

    def __init__(self) -> None:
        self.running: Dict[int, _Emu] = {}
        self.other_serials: List[str] = []
        self.boots_complete = True
        self.commands: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self.launches: List[List[str]] = []
        self.shell_calls: List[Tuple[str, List[str]]] = []
        self.responses: List[Tuple[Callable[[List[str]], bool], object]] = []
        self.shell_failures: List[Tuple[Callable[[List[str]], bool], str]] = []
        self.console_broken: set = set()
        self.launch_dirs: Dict[str, Path] = {}
        self.disks: Dict[str, _Emu] = {}

    # ---------------------------------------------------------------- setup
    def start(self, avd_id: Optional[str], port: int, *, writable: bool = False) -> _Emu:
        # an AVD keeps its disk (files, packages, verity state) across launches
        emu = self.disks.get(avd_id) if avd_id else None
        if emu is None:
            emu = _Emu(avd_id, writable, self.launch_dirs.get(avd_id or ""))
            if avd_id:
                self.disks[avd_id] = emu
        emu.writable = writable
        if emu.path is not None:
            flags = " -writable-system" if writable else ""
            (emu.path / "emu-launch-params.txt").write_text(f"emulator @{avd_id}{flags}\n")
        self.running[port] = emu
        return emu

    def respond(self, predicate: Callable[[List[str]], bool], result: object) -> None:
        self.responses.append((predicate, result))

    def fail_shell(self, predicate: Callable[[List[str]], bool], output: str) -> None:
        self.shell_failures.append((predicate, output))

    def ran(self, *argv: str) -> bool:
        return any(cmd[: len(argv)] == list(argv) for cmd in self.commands)

    # ---------------------------------------------------------------- fakes
    def run(self, cmd, *, timeout=None, input=None):
        cmd = list(cmd)
        self.commands.append(cmd)
        self.inputs.append(input)
        for predicate, result in self.responses:
            if predicate(cmd):
                if isinstance(result, BaseException):
                    raise result
                return subprocess.CompletedProcess(cmd, 0, result, "")
        if cmd[0] == "adb" and cmd[1] == "-s":
            return subprocess.CompletedProcess(cmd, 0, self._adb(cmd[2], cmd[3:]), "")
        return subprocess.CompletedProcess(cmd, 0, "", "")

    def _adb(self, serial: str, args: List[str]) -> str:
        port = adb.port_from_serial(serial)
        emu = self.running.get(port)
        if emu is None:
            raise ExternalToolError(["adb", "-s", serial, *args], returncode=1,
                                    stderr=f"error: device '{serial}' not found")
        if args[0] == "emu":
            if port in self.console_broken:
                raise ExternalToolError(["adb", "-s", serial, *args], returncode=1,
                                        stderr="error: could not connect to TCP port")
            if args[1:] == ["avd", "name"]:
                return f"{emu.avd_id}\r\nOK\r\n"
            if args[1:] == ["avd", "path"]:
                return f"{emu.path or ''}\r\nOK\r\n"
            if args[1:] == ["kill"]:
                del self.running[port]
                return "OK: killing emulator, bye bye\r\n"
        if args == ["disable-verity"]:
            emu.verity = "disabled"
        if args[0] == "install":
            emu.packages.append(Path(args[-1]).stem)
        return ""

    def spawn(self, cmd):
        cmd = list(cmd)
        self.launches.append(cmd)
        avd_id = cmd[1].lstrip("@")
        port = int(cmd[cmd.index("-port") + 1])
        self.start(avd_id, port, writable="-writable-system" in cmd)
        return None


@pytest.fixture
def emulators(monkeypatch):
    world = FakeEmulators()
    monkeypatch.setattr(_tools, "tool_path", functools.lru_cache(maxsize=None)(lambda tool: tool))
    monkeypatch.setattr(_tools, "_run", world.run)
    monkeypatch.setattr(_tools, "_spawn_detached", world.spawn)
    monkeypatch.setattr(_tools, "_adb_client", lambda: FakeClient(world))
    monkeypatch.setattr(adb.time, "sleep", lambda *_: None)
    return world


@pytest.fixture(autouse=True)
def _fresh_package_cache():
    packages.clear_caches()
    yield
    packages.clear_caches()
