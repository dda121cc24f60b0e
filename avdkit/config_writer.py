# SPDX-License-Identifier: MIT
"""
Post-creation tuning of an AVD's ``config.ini``: hardware acceleration,
keyboard input and, for known device profiles, a device skin.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping, NamedTuple, Optional, Union

from android_sdk_utils._android_sdk_utils import android_sdk_root

logger = logging.getLogger(__name__)

HARDWARE_SETTINGS = (
    ("hw.keyboard", "yes"),
    ("hw.gpu.mode", "auto"),
    ("hw.gpu.enabled", "yes"),
)

# Mixed-case values here make the AVD unlaunchable from the AVD manager
_LOWERCASE_KEYS = ("runtime.network.latency", "runtime.network.speed")


class SkinDescriptor(NamedTuple):
    name: str

    def path(self, sdk_root: str) -> str:
        return f"{sdk_root}/skins/{self.name}"


SKIN_TABLE: Mapping[str, SkinDescriptor] = {
    # the first Pixel generation ships its skins under the legacy *_silver names
    "pixel": SkinDescriptor("pixel_silver"),
    "pixel_xl": SkinDescriptor("pixel_xl_silver"),
    "pixel_3": SkinDescriptor("pixel_3"),
}


def _read_config(path: Path) -> Dict[str, str]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Unable to read emulator config at: %s (%s)", path, exc)
        return {}
    config: Dict[str, str] = {}
    for line in text.splitlines():
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        config[key] = value
    return config


def _write_config(path: Path, config: Mapping[str, str]) -> bool:
    text = "".join(f"{key}={value}\n" for key, value in config.items())
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        logger.warning("Unable to write emulator config at: %s (%s)", path, exc)
        return False
    return True


class EmulatorConfigWriter:
    """
    Rewrites ``config.ini`` in place.

    The file is parsed into ordered ``key=value`` pairs, updated, and written
    back whole. A missing, unreadable or empty file is left untouched: the
    emulator still works without the tuning, only less comfortably.
    """

    def __init__(
        self,
        sdk_root: Optional[str] = None,
        skins: Mapping[str, SkinDescriptor] = SKIN_TABLE,
    ) -> None:
        self._sdk_root = sdk_root
        self.skins = skins

    @property
    def sdk_root(self) -> str:
        if self._sdk_root is None:
            root = android_sdk_root()
            return str(root.path) if root else ""
        return self._sdk_root

    def skin_for(self, device_profile_name: Optional[str]) -> Optional[SkinDescriptor]:
        if not device_profile_name:
            return None
        return self.skins.get(device_profile_name)

    def apply_skin(
        self,
        config_path: Union[str, Path],
        device_profile_name: Optional[str] = None,
    ) -> bool:
        """
        Returns True when the file was rewritten. Without
        *device_profile_name* the profile recorded in ``hw.device.name`` is
        used.
        """
        config_path = Path(config_path)
        config = _read_config(config_path)
        if not config:
            return False

        for key in _LOWERCASE_KEYS:
            if config.get(key):
                config[key] = config[key].strip().lower()

        for key, value in HARDWARE_SETTINGS:
            config[key] = value

        profile = device_profile_name or config.get("hw.device.name")
        skin = self.skin_for(profile)
        if skin is not None:
            config["skin.name"] = skin.name
            config["skin.path"] = skin.path(self.sdk_root)
            config["skin.dynamic"] = "yes"
            config["showDeviceFrame"] = "yes"
        else:
            logger.debug("No skin known for device profile %r", profile)

        return _write_config(config_path, config)
