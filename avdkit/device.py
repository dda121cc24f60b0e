# SPDX-License-Identifier: MIT
"""
Handle for one Android Virtual Device.

A handle moves through ``Shutdown -> Booting -> Booted -> Shutdown``. The
console port it runs on is the only state it owns; it is set when a boot
succeeds and reset to :data:`UNSET_PORT` on shutdown.
"""
from __future__ import annotations

import enum
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, NamedTuple, Optional, Protocol, Sequence, Union

from . import _tools, adb
from .config import AndroidConfig
from .errors import (
    BootTimeoutError,
    DeviceNotRunningError,
    ExternalToolError,
    IncompatibleDeviceError,
)
from .ports import PortAllocator
from .version import VersionLike

logger = logging.getLogger(__name__)

UNSET_PORT = -1
CERTS_DIR = "/data/misc/user/0/cacerts-added"


###############################################################################
# Types
###############################################################################
class DeviceType(str, enum.Enum):
    # phones and tablets cannot be told apart from AVD metadata
    MOBILE = "mobile"
    WATCH = "watch"
    TV = "tv"
    VR = "vr"
    AUTOMOTIVE = "automotive"
    UNKNOWN = "unknown"


class AndroidOSType(str, enum.Enum):
    GOOGLE_APIS = "google apis"
    GOOGLE_PLAY_STORE = "google apis playstore"
    ANDROID_DESKTOP = "android desktop"
    GOOGLE_TV = "google tv"
    ANDROID_WEAR = "android wear"
    ANDROID_AUTOMOTIVE = "android automotive"


class DeviceState(str, enum.Enum):
    BOOTING = "Booting"
    BOOTED = "Booted"
    SHUTDOWN = "Shutdown"


class BootMode(str, enum.Enum):
    NORMAL = "normal"
    SYSTEM_WRITABLE_PREFERRED = "systemWritablePreferred"
    SYSTEM_WRITABLE_MANDATORY = "systemWritableMandatory"


class LaunchArgument(NamedTuple):
    name: str
    value: str


@dataclass(frozen=True)
class CertificateData:
    pem_certificate: str
    subject_hash: Optional[str] = None


class BaseDevice(Protocol):
    """Capabilities shared by every kind of virtual device."""

    id: str
    name: str
    device_type: DeviceType
    os_type: str
    os_version: VersionLike

    @property
    def state(self) -> DeviceState: ...

    def boot(self, wait_for_boot: bool = True) -> None: ...

    def reboot(self, wait_for_boot: bool = True) -> None: ...

    def shutdown(self) -> None: ...

    def open_url(self, url: str) -> None: ...

    def has_app(self, target: str) -> bool: ...

    def install_app(self, app_bundle_path: Union[str, Path]) -> None: ...

    def launch_app(
        self,
        target: str,
        app_bundle_path: Union[str, Path, None] = None,
        launch_arguments: Sequence[LaunchArgument] = (),
    ) -> None: ...

    def is_cert_installed(self, cert: CertificateData) -> bool: ...

    def install_cert(self, cert: CertificateData) -> None: ...


def _subject_hash(cert: CertificateData) -> str:
    """Old-style (pre OpenSSL 1.0) subject hash, which Android uses to name CA files."""
    if cert.subject_hash:
        return cert.subject_hash
    out = _tools._run(
        ["openssl", "x509", "-subject_hash_old", "-noout"], input=cert.pem_certificate
    ).stdout
    return _tools.first_line(out)


###############################################################################
# AndroidDevice
###############################################################################
class AndroidDevice:
    __slots__ = (
        "id",
        "name",
        "device_type",
        "os_type",
        "os_version",
        "is_play_store",
        "allocator",
        "_port",
        "_state",
        "_boot_mode",
    )

    def __init__(
        self,
        id: str,
        name: str,
        device_type: DeviceType,
        os_type: str,
        os_version: VersionLike,
        is_play_store: bool = False,
        *,
        allocator: PortAllocator | None = None,
        config: AndroidConfig | None = None,
    ) -> None:
        self.id = id
        self.name = name
        self.device_type = device_type
        self.os_type = os_type
        self.os_version = os_version
        self.is_play_store = is_play_store
        self.allocator = allocator or PortAllocator(config)
        self._port = UNSET_PORT
        self._state = DeviceState.SHUTDOWN
        self._boot_mode = BootMode.NORMAL

    # ---------------------------------------------------------------- misc
    def __repr__(self) -> str:  # pragma: no cover
        return f"<AndroidDevice {self.id!r}>"

    def __str__(self) -> str:
        return f"{self.name}, {self.os_type} {self.os_version}"

    @property
    def state(self) -> DeviceState:
        return self._state

    def emulator_port(self) -> int:
        return self._port

    def _active_port(self) -> int:
        if self._port == UNSET_PORT:
            port = self.allocator.emulator_port(self.id)
            if port is None:
                raise DeviceNotRunningError(f"{self.id} is not running; boot it first.")
            self._port = port
            self._state = DeviceState.BOOTED
        elif self._state is DeviceState.BOOTING:
            # launched with wait_for_boot=False
            config = self.allocator.config
            adb.wait_until_ready(
                self._port, config.device_readiness_wait_time, config.boot_poll_interval
            )
            self._state = DeviceState.BOOTED
        return self._port

    # ---------------------------------------------------------------- lifecycle
    def boot(
        self,
        wait_for_boot: bool = True,
        boot_mode: BootMode = BootMode.NORMAL,
        cold_boot: bool = False,
    ) -> None:
        """
        Launch the emulator, or adopt an instance that is already running.

        With *wait_for_boot* False the handle stays BOOTING; the next app, URL
        or certificate call waits for boot completion and moves it to BOOTED.

        Raises:
            IncompatibleDeviceError: a writable system is mandatory but this
                is a Play Store image.
        """
        if self.is_play_store:
            if boot_mode is BootMode.SYSTEM_WRITABLE_MANDATORY:
                raise IncompatibleDeviceError(
                    f"{self.id} is a Play Store image and cannot boot with a writable system."
                )
            if boot_mode is BootMode.SYSTEM_WRITABLE_PREFERRED:
                logger.warning(
                    "%s is a Play Store image; booting without a writable system.", self.id
                )
                boot_mode = BootMode.NORMAL

        self._state = DeviceState.BOOTING
        try:
            port = self.allocator.ensure_running(
                self.id,
                writable=boot_mode is not BootMode.NORMAL,
                writable_mandatory=boot_mode is BootMode.SYSTEM_WRITABLE_MANDATORY,
                cold_boot=cold_boot,
                wait_for_boot=wait_for_boot,
            )
        except Exception:
            self._state = DeviceState.SHUTDOWN
            raise
        self._port = port
        self._boot_mode = boot_mode
        self._state = DeviceState.BOOTED if wait_for_boot else DeviceState.BOOTING

    def reboot(self, wait_for_boot: bool = True) -> None:
        """Power the emulator off and boot it again in the mode it last booted in."""
        boot_mode = self._boot_mode
        self.shutdown()
        self.boot(wait_for_boot, boot_mode)

    def shutdown(self) -> None:
        port = self._port
        if port == UNSET_PORT:
            port = self.allocator.emulator_port(self.id)
        if port is None:
            logger.debug("%s is not running", self.id)
        else:
            logger.info("Shutting down %s", self.id)
            adb.adb_command(port, "emu", "kill")
            config = self.allocator.config
            adb.wait_until_powered_off(port, config.power_off_wait_time, config.boot_poll_interval)
        self._port = UNSET_PORT
        self._state = DeviceState.SHUTDOWN

    # ---------------------------------------------------------------- apps
    def open_url(self, url: str) -> None:
        port = self._active_port()
        logger.info("Opening browser with url %s", url)
        adb.check_shell(port, ["am", "start", "-a", "android.intent.action.VIEW", "-d", url])

    def has_app(self, target: str) -> bool:
        """*target* may be a bare package id or ``package/activity``."""
        package = target.split("/", 1)[0]
        try:
            out = adb.shell(self._active_port(), ["pm", "list", "packages", package])
        except ExternalToolError as exc:
            logger.debug("Package query failed: %s", exc)
            return False
        return f"package:{package}" in (line.strip() for line in out.splitlines())

    def install_app(self, app_bundle_path: Union[str, Path]) -> None:
        app_bundle_path = str(app_bundle_path).strip()
        logger.info("Installing app %s to emulator", app_bundle_path)
        adb.adb_command(self._active_port(), "install", "-r", "-t", app_bundle_path)

    def launch_app(
        self,
        target: str,
        app_bundle_path: Union[str, Path, None] = None,
        launch_arguments: Sequence[LaunchArgument] = (),
    ) -> None:
        """
        Start ``package/activity``, installing *app_bundle_path* first when the
        package is missing. Each launch argument becomes an ``--es`` string
        extra on the launch intent.
        """
        port = self._active_port()
        if app_bundle_path and str(app_bundle_path).strip() and not self.has_app(target):
            self.install_app(app_bundle_path)

        cmd: List[str] = [
            "am", "start", "-S", "-n", target,
            "-a", "android.intent.action.MAIN",
            "-c", "android.intent.category.LAUNCHER",
        ]
        for arg in launch_arguments:
            cmd += ["--es", arg.name, arg.value]

        logger.info("Launching app %s in emulator", target)
        adb.check_shell(port, cmd)

    # ---------------------------------------------------------------- certificates
    def is_cert_installed(self, cert: CertificateData) -> bool:
        """Best effort; any failure along the way reads as "not installed"."""
        try:
            file_name = f"{_subject_hash(cert)}.0"
            port = self._active_port()
            adb.adb_command(port, "root")
            listing = adb.check_shell(port, ["ls", CERTS_DIR])
        except (ExternalToolError, DeviceNotRunningError, BootTimeoutError) as exc:
            logger.warning(exc)
            return False
        return file_name in listing.split()

    def install_cert(self, cert: CertificateData) -> None:
        """
        Push *cert* into the user CA store under its subject-hash name and
        reboot. The emulator is relaunched with a writable system first if
        needed.
        """
        file_name = f"{_subject_hash(cert)}.0"
        remote = f"{CERTS_DIR}/{file_name}"

        port = self.mount_as_root_writable_system()
        with tempfile.TemporaryDirectory() as tmp:
            local = Path(tmp) / file_name
            local.write_text(cert.pem_certificate, encoding="utf-8")
            logger.info("Installing certificate %s", file_name)
            adb.check_shell(port, ["mkdir", "-p", CERTS_DIR])
            adb.push(port, local, remote)
        adb.check_shell(port, ["su", "0", "chmod", "644", remote])
        adb.check_shell(port, ["su", "0", "chown", "root:root", remote])

        logger.info("Rebooting %s for the changes to take effect", self.id)
        self.reboot()

    def mount_as_root_writable_system(self) -> int:
        """
        Root adbd and remount the system partition writable, relaunching the
        emulator with ``-writable-system`` when it runs without it.
        """
        self._state = DeviceState.BOOTING
        try:
            port = self.allocator.mount_writable_system(
                self.id, os_version=self.os_version, is_play_store=self.is_play_store
            )
        except Exception:
            self._state = DeviceState.BOOTED if self._port != UNSET_PORT else DeviceState.SHUTDOWN
            raise
        self._port = port
        self._boot_mode = BootMode.SYSTEM_WRITABLE_MANDATORY
        self._state = DeviceState.BOOTED
        return port
