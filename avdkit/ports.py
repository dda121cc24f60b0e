# SPDX-License-Identifier: MIT
"""
Running-emulator discovery and console port allocation.

Each emulator instance takes a console port and the next one for adb, so
candidate ports advance in steps of two from the configured base port.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from . import adb
from .config import AndroidConfig
from .errors import ExternalToolError, IncompatibleDeviceError
from .version import Version, VersionLike

logger = logging.getLogger(__name__)

PORT_STEP = 2


@dataclass(frozen=True, slots=True)
class RunningEmulator:
    port: int
    avd_id: Optional[str]


class PortAllocator:
    def __init__(self, config: AndroidConfig | None = None) -> None:
        self.config = config or AndroidConfig()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ---------------------------------------------------------------- discovery
    def list_running_emulators(self) -> List[RunningEmulator]:
        """
        Emulators attached to adb, with the AVD id each console reports.
        An instance whose console does not answer keeps its port with no id.
        """
        running: List[RunningEmulator] = []
        for serial in adb.attached_serials():
            port = adb.port_from_serial(serial)
            if port is None:
                continue
            try:
                avd_id = adb.console(port, "avd", "name") or None
            except ExternalToolError as exc:
                logger.debug("Console of %s did not answer: %s", serial, exc)
                avd_id = None
            running.append(RunningEmulator(port, avd_id))
        return running

    def emulator_port(self, avd_id: str) -> Optional[int]:
        for emu in self.list_running_emulators():
            if emu.avd_id == avd_id:
                return emu.port
        return None

    def allocate_port(self, avd_id: str) -> int:
        """Port of the running *avd_id* instance, else the first free port."""
        running = self.list_running_emulators()
        for emu in running:
            if emu.avd_id == avd_id:
                return emu.port

        in_use = {emu.port for emu in running}
        port = self.config.default_adb_port
        while port in in_use:
            port += PORT_STEP
        return port

    def lock_for(self, avd_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(avd_id, threading.Lock())

    # ---------------------------------------------------------------- lifecycle
    def ensure_running(
        self,
        avd_id: str,
        *,
        writable: bool = False,
        writable_mandatory: bool = False,
        cold_boot: bool = False,
        wait_for_boot: bool = True,
    ) -> int:
        """
        Make sure *avd_id* runs and return its port. A running instance is
        reused unless a writable system is mandatory and it lacks one, in
        which case it is powered off and relaunched.
        """
        with self.lock_for(avd_id):
            existing = self.emulator_port(avd_id)
            if existing is not None:
                if not writable_mandatory or adb.is_system_writable(existing):
                    return existing
                logger.info(
                    "%s is running without a writable system; shutting it down to relaunch",
                    avd_id,
                )
                adb.adb_command(existing, "emu", "kill")
                adb.wait_until_powered_off(
                    existing, self.config.power_off_wait_time, self.config.boot_poll_interval
                )

            port = self.allocate_port(avd_id)
            adb.launch_emulator(
                avd_id, port, writable=writable or writable_mandatory, cold_boot=cold_boot
            )
            if wait_for_boot:
                logger.info("Waiting for %s to boot", avd_id)
                adb.wait_until_ready(
                    port, self.config.device_readiness_wait_time, self.config.boot_poll_interval
                )
            return port

    def mount_writable_system(
        self,
        avd_id: str,
        *,
        os_version: VersionLike,
        is_play_store: bool = False,
    ) -> int:
        """
        Boot *avd_id* with a writable system, root adbd and remount /system
        read-write. Returns the emulator port.

        Raises:
            IncompatibleDeviceError: Play Store images cannot be remounted.
        """
        if is_play_store:
            raise IncompatibleDeviceError(
                f"{avd_id} is a Play Store image; its system partition cannot be made writable."
            )

        port = self.ensure_running(avd_id, writable_mandatory=True)
        adb.adb_command(port, "root")

        # API 29+ boots with verified boot and dm-verity, both must be off before remount
        if Version.same_or_newer(os_version, self.config.avb_remount_min_api):
            verification_disabled = "disabled" in adb.shell(port, "avbctl get-verification")
            verity_disabled = "disabled" in adb.shell(port, "avbctl get-verity")

            if not verification_disabled:
                logger.info("Disabling Android Verified Boot on %s", avd_id)
                adb.check_shell(port, "avbctl disable-verification")
            if not verity_disabled:
                logger.info("Disabling verity on %s", avd_id)
                adb.adb_command(port, "disable-verity")

            if not (verification_disabled and verity_disabled):
                self._reboot(port)
                adb.adb_command(port, "root")

        logger.info("Remounting system partition of %s as writable", avd_id)
        adb.adb_command(port, "remount")
        return port

    def _reboot(self, port: int) -> None:
        try:
            adb.adb_command(port, "shell", "reboot")
        except ExternalToolError as exc:
            # `adb shell reboot` sometimes errors out although the reboot went
            # through; the readiness poll below is the real check.
            logger.warning(exc)
        adb.wait_until_ready(
            port, self.config.device_readiness_wait_time, self.config.boot_poll_interval
        )
