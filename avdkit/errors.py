# SPDX-License-Identifier: MIT
"""Exception types raised by :mod:`avdkit`."""
from __future__ import annotations

import shlex
from typing import Sequence


class AndroidToolNotFound(RuntimeError):
    """Raised when Android tool discovery ultimately fails."""


class BootTimeoutError(TimeoutError):
    """Raised when an AVD fails to reach the expected state within the timeout."""


class ExternalToolError(RuntimeError):
    """An external command (adb, emulator, avdmanager, ...) failed."""

    def __init__(
        self,
        cmd: Sequence[str],
        *,
        returncode: int | None = None,
        stderr: str = "",
        cause: BaseException | None = None,
    ) -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        self.cause = cause
        detail = stderr.strip() or (str(cause) if cause else "")
        msg = f"Command failed: {' '.join(map(shlex.quote, self.cmd))}"
        if returncode is not None:
            msg += f" (exit {returncode})"
        if detail:
            msg += f"\n{detail}"
        super().__init__(msg)


class IncompatibleDeviceError(RuntimeError):
    """The requested operation is not possible for this kind of device."""


class VersionComparisonError(ValueError):
    """Two distinct codenames cannot be ordered."""


class NoMatchingPackageError(LookupError):
    """No installed SDK package satisfies the requested constraints."""


class DeviceNotRunningError(RuntimeError):
    """A device operation needs a running emulator but none is attached."""
