# SPDX-License-Identifier: MIT
from __future__ import annotations

import os
import platform
from dataclasses import dataclass, field, replace
from typing import Tuple


def _host_architectures() -> Tuple[str, ...]:
    # Apple Silicon / ARM Linux hosts can only run arm64 images at full speed
    if platform.machine().lower() in {"arm64", "aarch64"}:
        return ("arm64-v8a",)
    return ("x86_64", "x86")


@dataclass(frozen=True, slots=True)
class AndroidConfig:
    """Tunables for device discovery, image selection and emulator lifecycle."""

    min_supported_runtime: str = "23"
    supported_images: Tuple[str, ...] = ("google_apis", "default", "google_apis_playstore")
    supported_architectures: Tuple[str, ...] = field(default_factory=_host_architectures)
    supported_device_types: Tuple[str, ...] = ("pixel", "pixel_xl", "pixel_c")
    default_emulator_name: str = "AvdkitEmulator"
    default_adb_port: int = 5572
    device_readiness_wait_time: float = 120.0
    power_off_wait_time: float = 60.0
    boot_poll_interval: float = 2.0
    avb_remount_min_api: str = "29"

    @classmethod
    def from_env(cls) -> "AndroidConfig":
        """
        Defaults overridden by AVDKIT_MIN_API, AVDKIT_ABIS (comma separated),
        AVDKIT_BASE_PORT and AVDKIT_BOOT_TIMEOUT (seconds).
        """
        cfg = cls()
        overrides: dict = {}
        if min_api := os.getenv("AVDKIT_MIN_API", "").strip():
            overrides["min_supported_runtime"] = min_api
        if abis := os.getenv("AVDKIT_ABIS", "").strip():
            overrides["supported_architectures"] = tuple(
                a.strip() for a in abis.split(",") if a.strip()
            )
        if base_port := os.getenv("AVDKIT_BASE_PORT", "").strip():
            overrides["default_adb_port"] = int(base_port)
        if timeout := os.getenv("AVDKIT_BOOT_TIMEOUT", "").strip():
            overrides["device_readiness_wait_time"] = float(timeout)
        return replace(cfg, **overrides) if overrides else cfg
