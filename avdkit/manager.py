# SPDX-License-Identifier: MIT
"""
Discovery and creation of AVDs as :class:`~avdkit.device.AndroidDevice`
handles. Nothing is cached here: every call re-runs ``avdmanager list avd``.
"""
from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional, Sequence

from android_sdk_utils._android_sdk_utils import android_avd_home

from . import _tools
from .avd import AvdDefinition, normalize_target_type, parse_enumeration
from .config import AndroidConfig
from .config_writer import EmulatorConfigWriter
from .device import AndroidDevice, AndroidOSType, DeviceType
from .errors import AndroidToolNotFound, ExternalToolError, VersionComparisonError
from .packages import PackageCache, default_cache
from .ports import PortAllocator
from .version import Version, VersionLike

logger = logging.getLogger(__name__)


class OSFilter(NamedTuple):
    os_type: str
    min_os_version: VersionLike


_DEVICE_TYPES = {
    AndroidOSType.GOOGLE_APIS.value: DeviceType.MOBILE,
    AndroidOSType.GOOGLE_PLAY_STORE.value: DeviceType.MOBILE,
    AndroidOSType.GOOGLE_TV.value: DeviceType.TV,
    AndroidOSType.ANDROID_WEAR.value: DeviceType.WATCH,
    AndroidOSType.ANDROID_AUTOMOTIVE.value: DeviceType.AUTOMOTIVE,
}

_DEFAULT_FILTERS = object()


def device_type_for(os_type: str) -> DeviceType:
    return _DEVICE_TYPES.get(os_type, DeviceType.UNKNOWN)


def _matches(device: AndroidDevice, os_filters: Sequence[OSFilter]) -> bool:
    for f in os_filters:
        if f.os_type != device.os_type:
            continue
        try:
            return Version.same_or_newer(device.os_version, f.min_os_version)
        except VersionComparisonError:
            return False
    return False


class AndroidDeviceManager:
    def __init__(
        self,
        config: AndroidConfig | None = None,
        *,
        allocator: PortAllocator | None = None,
        package_cache: PackageCache | None = None,
        config_writer: EmulatorConfigWriter | None = None,
    ) -> None:
        self.config = config or AndroidConfig()
        self.allocator = allocator or PortAllocator(self.config)
        self.package_cache = package_cache or default_cache()
        self.config_writer = config_writer or EmulatorConfigWriter()

    def default_os_filters(self) -> List[OSFilter]:
        return [OSFilter(AndroidOSType.GOOGLE_APIS.value, self.config.min_supported_runtime)]

    # ---------------------------------------------------------------- queries
    def enumerate_devices(self, os_filters=_DEFAULT_FILTERS) -> List[AndroidDevice]:
        """
        Devices known to ``avdmanager``.

        By default only Google APIs images at or above the configured minimum
        API level are returned. Pass ``None`` (or an empty list) to get every
        parsed device, or a list of :class:`OSFilter` to choose the OS types
        and minimum versions yourself; a device matches when its OS type has
        a filter and its version is the same or newer.
        """
        if os_filters is _DEFAULT_FILTERS:
            os_filters = self.default_os_filters()

        devices = [self._to_device(d) for d in self._fetch_definitions()]
        if os_filters:
            devices = [d for d in devices if _matches(d, os_filters)]
        return devices

    def get_device(self, id_or_name: str) -> Optional[AndroidDevice]:
        """Match on id first, then on display name; None when nothing matches."""
        devices = self.enumerate_devices(None)
        for device in devices:
            if device.id == id_or_name:
                return device
        for device in devices:
            if device.name == id_or_name:
                return device
        return None

    def _fetch_definitions(self) -> List[AvdDefinition]:
        try:
            out = _tools._run([_tools.tool_path("avdmanager"), "list", "avd"]).stdout
        except (ExternalToolError, AndroidToolNotFound) as exc:
            logger.warning(exc)
            return []
        return parse_enumeration(out)

    def _to_device(self, definition: AvdDefinition) -> AndroidDevice:
        return AndroidDevice(
            definition.id,
            definition.display_name,
            device_type_for(definition.target_type),
            definition.target_type,
            definition.target_api_level,
            definition.is_play_store_enabled,
            allocator=self.allocator,
        )

    # ---------------------------------------------------------------- creation
    def create_device(
        self,
        name: str | None = None,
        device_profile: str | None = None,
        api_level: VersionLike | None = None,
    ) -> AndroidDevice:
        """
        Create an AVD from the best installed system image and return its
        handle. *name* defaults to ``config.default_emulator_name`` and
        *device_profile* to the first of ``config.supported_device_types``.
        Blanks in *name* become ``_`` in the AVD id, as the Android
        Studio AVD manager does.

        Raises:
            NoMatchingPackageError: no installed image qualifies.
            ExternalToolError: ``avdmanager create avd`` failed.
        """
        image = self.package_cache.get().find_best_match(
            api_level, self.config.supported_architectures, config=self.config
        )
        name = name or self.config.default_emulator_name
        device_profile = device_profile or self.config.supported_device_types[0]
        if device_profile not in self.config.supported_device_types:
            logger.warning("Device profile %s is not one of %s", device_profile,
                           ", ".join(self.config.supported_device_types))
        avd_id = name.replace(" ", "_")
        cmd = [
            _tools.tool_path("avdmanager"),
            "create", "avd",
            "-n", avd_id,
            "--force",
            "-k", image.path,
            "--device", device_profile,
            "--abi", f"{image.tag}/{image.abi}",
        ]
        logger.info("Creating AVD %s from %s", avd_id, image.path)
        # decline the "custom hardware profile" prompt
        _tools._run(cmd, input="no\n")

        config_path = android_avd_home() / f"{avd_id}.avd" / "config.ini"
        self.config_writer.apply_skin(config_path, device_profile)

        os_type = normalize_target_type(image.tag) or ""
        return AndroidDevice(
            avd_id,
            name,
            device_type_for(os_type),
            os_type,
            image.api_level,
            os_type == AndroidOSType.GOOGLE_PLAY_STORE.value,
            allocator=self.allocator,
        )
