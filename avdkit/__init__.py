# SPDX-License-Identifier: MIT
"""
avdkit
======

Discovery, configuration and lifecycle of Android emulators, driven through
the installed SDK tools (``sdkmanager``, ``avdmanager``, ``emulator``,
``adb``).

Usage
-----
>>> from avdkit import AndroidDeviceManager
>>> device = AndroidDeviceManager().get_device("Pixel_5_API_31")
>>> device.boot()
>>> device.open_url("https://example.com")
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Re-export public API
# ---------------------------------------------------------------------------
from .avd import AvdDefinition, parse_enumeration
from .config import AndroidConfig
from .config_writer import SKIN_TABLE, EmulatorConfigWriter, SkinDescriptor
from .device import (
    AndroidDevice,
    AndroidOSType,
    BaseDevice,
    BootMode,
    CertificateData,
    DeviceState,
    DeviceType,
    LaunchArgument,
)
from .errors import (
    AndroidToolNotFound,
    BootTimeoutError,
    DeviceNotRunningError,
    ExternalToolError,
    IncompatibleDeviceError,
    NoMatchingPackageError,
    VersionComparisonError,
)
from .manager import AndroidDeviceManager, OSFilter
from .packages import (
    AndroidPackage,
    AndroidPackages,
    PackageCache,
    clear_caches,
    fetch_installed_packages,
)
from .ports import PortAllocator, RunningEmulator
from .version import Version

__all__: list[str] = [
    # high-level
    "AndroidDeviceManager",
    "AndroidDevice",
    "OSFilter",
    "BaseDevice",
    "BootMode",
    "DeviceState",
    "DeviceType",
    "AndroidOSType",
    "LaunchArgument",
    "CertificateData",
    # building blocks
    "AndroidConfig",
    "AndroidPackage",
    "AndroidPackages",
    "PackageCache",
    "fetch_installed_packages",
    "clear_caches",
    "AvdDefinition",
    "parse_enumeration",
    "PortAllocator",
    "RunningEmulator",
    "EmulatorConfigWriter",
    "SkinDescriptor",
    "SKIN_TABLE",
    "Version",
    # exceptions
    "AndroidToolNotFound",
    "BootTimeoutError",
    "DeviceNotRunningError",
    "ExternalToolError",
    "IncompatibleDeviceError",
    "NoMatchingPackageError",
    "VersionComparisonError",
]

# ---------------------------------------------------------------------------
# Version & logging niceties
# ---------------------------------------------------------------------------
from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version(__name__)
except PackageNotFoundError:  # running from a checkout
    __version__ = "0.0.0.dev0"

import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())
