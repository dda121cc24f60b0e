# SPDX-License-Identifier: MIT
"""
Thin helpers around adb and the emulator binary for one emulator instance,
addressed by its console port (serial ``emulator-<port>``).

Device-side traffic (listing, shell, push) goes through ``adbutils``; the
host-side verbs it has no API for (``root``, ``remount``, ``emu ...``) are
run through the adb executable.
"""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Sequence, Union

import adbutils

from . import _tools
from .errors import BootTimeoutError, ExternalToolError

logger = logging.getLogger(__name__)

SERIAL_PREFIX = "emulator-"


def serial_for(port: int) -> str:
    return f"{SERIAL_PREFIX}{port}"


def port_from_serial(serial: str) -> int | None:
    if not serial.startswith(SERIAL_PREFIX):
        return None
    digits = serial[len(SERIAL_PREFIX):]
    return int(digits) if digits.isdigit() else None


def attached_serials() -> List[str]:
    try:
        return [info.serial for info in _tools._adb_client().list()]
    except adbutils.AdbError as exc:
        raise ExternalToolError(["adb", "devices"], cause=exc) from exc


###############################################################################
# Commands
###############################################################################
def adb_command(port: int, *args: str, timeout: float | None = None) -> str:
    cmd = [_tools.tool_path("adb"), "-s", serial_for(port), *args]
    return _tools._run(cmd, timeout=timeout).stdout


def console(port: int, *args: str) -> str:
    """Emulator console query; the console appends an ``OK`` line we drop."""
    return _tools.first_line(adb_command(port, "emu", *args))


def _shell_argv(serial: str, cmd: Union[str, Sequence[str]]) -> List[str]:
    argv = [cmd] if isinstance(cmd, str) else list(cmd)
    return ["adb", "-s", serial, "shell", *argv]


def shell(port: int, cmd: Union[str, Sequence[str]]) -> str:
    """Output of *cmd*; the exit status is not looked at. Use for queries."""
    serial = serial_for(port)
    logger.debug("$ adb -s %s shell %s", serial, cmd)
    try:
        return _tools._adb_client().device(serial).shell(cmd)
    except adbutils.AdbError as exc:
        raise ExternalToolError(_shell_argv(serial, cmd), cause=exc) from exc


def check_shell(port: int, cmd: Union[str, Sequence[str]]) -> str:
    """
    Like :func:`shell`, but a non-zero exit status raises
    :class:`ExternalToolError` carrying the command output.
    """
    serial = serial_for(port)
    logger.debug("$ adb -s %s shell %s", serial, cmd)
    try:
        result = _tools._adb_client().device(serial).shell2(cmd)
    except adbutils.AdbError as exc:
        raise ExternalToolError(_shell_argv(serial, cmd), cause=exc) from exc
    if result.returncode != 0:
        raise ExternalToolError(
            _shell_argv(serial, cmd), returncode=result.returncode, stderr=result.output
        )
    return result.output


def push(port: int, local: Union[str, Path], remote: str) -> None:
    serial = serial_for(port)
    logger.debug("$ adb -s %s push %s %s", serial, local, remote)
    try:
        _tools._adb_client().device(serial).push(str(local), remote)
    except adbutils.AdbError as exc:
        raise ExternalToolError(["adb", "-s", serial, "push", str(local), remote], cause=exc) from exc


def launch_emulator(
    avd_id: str, port: int, *, writable: bool = False, cold_boot: bool = False
) -> None:
    cmd = [_tools.tool_path("emulator"), f"@{avd_id}", "-port", str(port)]
    if writable:
        cmd.append("-writable-system")
    if cold_boot:
        cmd.append("-no-snapshot-load")
    logger.info("Starting emulator %s on port %d", avd_id, port)
    _tools._spawn_detached(cmd)


###############################################################################
# Polling
###############################################################################
def wait_until_ready(port: int, timeout: float, interval: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while True:
        try:
            if shell(port, ["getprop", "sys.boot_completed"]).strip() == "1":
                logger.info("Boot completed for %s", serial_for(port))
                return
        except ExternalToolError:
            # not attached yet / adbd restarting
            pass
        if time.monotonic() >= deadline:
            break
        time.sleep(interval)

    raise BootTimeoutError(f"Timeout waiting for {serial_for(port)} to boot ({timeout:g}s).")


def wait_until_powered_off(port: int, timeout: float, interval: float = 2.0) -> None:
    serial = serial_for(port)
    deadline = time.monotonic() + timeout
    while True:
        try:
            if serial not in attached_serials():
                return
        except ExternalToolError:
            pass
        if time.monotonic() >= deadline:
            break
        time.sleep(interval)

    raise BootTimeoutError(f"Timeout waiting for {serial} to power off ({timeout:g}s).")


def is_system_writable(port: int) -> bool:
    """
    Whether the instance on *port* was launched with ``-writable-system``,
    judged from the launch parameters the emulator records in its AVD folder.
    """
    try:
        avd_path = console(port, "avd", "path")
        if not avd_path:
            return False
        params = Path(avd_path) / "emu-launch-params.txt"
        return "-writable-system" in params.read_text(encoding="utf-8", errors="replace")
    except (ExternalToolError, OSError) as exc:
        logger.debug("Cannot determine writable state of %s: %s", serial_for(port), exc)
        return False
