# SPDX-License-Identifier: MIT
"""
Process plumbing shared by every module: tool lookup, command execution and
the adb client.
"""
from __future__ import annotations

###############################################################################
# Standard library
###############################################################################
import functools
import logging
import os
import shlex
import subprocess
import sys
from pathlib import Path
from typing import List, Optional, Sequence

###############################################################################
# Third-party
###############################################################################
import adbutils  # pip install adbutils

from android_sdk_utils._android_sdk_utils import find_android_tool

from .errors import AndroidToolNotFound, ExternalToolError

###############################################################################
# Logging
###############################################################################
logger = logging.getLogger(__name__)

_pkg_logger = logging.getLogger("avdkit")
if not _pkg_logger.handlers or all(
    isinstance(h, logging.NullHandler) for h in _pkg_logger.handlers
):
    _h = logging.StreamHandler(sys.stdout)
    _h.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s – %(message)s")
    )
    _pkg_logger.addHandler(_h)
_pkg_logger.setLevel(os.getenv("AVDKIT_LOG_LEVEL", "INFO").upper())


###############################################################################
# Tool lookup
###############################################################################
@functools.lru_cache(maxsize=None)
def tool_path(tool: str) -> str:
    try:
        return str(find_android_tool(tool))
    except FileNotFoundError as exc:
        raise AndroidToolNotFound(str(exc)) from exc


def clear_tool_cache() -> None:
    tool_path.cache_clear()


###############################################################################
# Command execution
###############################################################################
def _windows_shim(cmd: List[str]) -> List[str]:
    # On Windows, any on-disk file without .exe/.com gets launched via cmd.exe
    if sys.platform.startswith("win") and cmd:
        exe_path = Path(cmd[0])
        if exe_path.is_file() and exe_path.suffix.lower() not in {".exe", ".com"}:
            return ["cmd", "/c", *cmd]
    return cmd


def _run(
    cmd: Sequence[str],
    *,
    timeout: float | None = None,
    input: str | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run *cmd* to completion, raising ExternalToolError on any failure."""
    cmd = _windows_shim(list(cmd))
    logger.debug("$ %s", " ".join(map(shlex.quote, cmd)))
    try:
        return subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            input=input,
            text=True,
            check=True,
            timeout=timeout,
        )
    except subprocess.CalledProcessError as e:
        raise ExternalToolError(
            cmd, returncode=e.returncode, stderr=e.stderr or e.stdout or ""
        ) from e
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ExternalToolError(cmd, cause=e) from e


def _spawn_detached(cmd: Sequence[str]) -> subprocess.Popen[bytes]:
    """
    Fire-and-forget launch. The emulator writes plenty of non-errors to
    stderr, so stdio is discarded and readiness is polled separately.
    """
    cmd = _windows_shim(list(cmd))
    logger.debug("$ %s &", " ".join(map(shlex.quote, cmd)))
    kwargs: dict = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
    }
    if sys.platform.startswith("win"):
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True
    try:
        return subprocess.Popen(cmd, **kwargs)
    except OSError as e:
        raise ExternalToolError(cmd, cause=e) from e


def _adb_client() -> adbutils.AdbClient:
    return adbutils.AdbClient(host="127.0.0.1", port=5037)


def first_line(output: Optional[str]) -> str:
    for line in (output or "").splitlines():
        if line.strip():
            return line.strip()
    return ""
