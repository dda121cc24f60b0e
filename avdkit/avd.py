# SPDX-License-Identifier: MIT
"""
Parser for ``avdmanager list avd``.

The tool prints loosely formatted blocks separated by dash-only lines::

    Available Android Virtual Devices:
        Name: Pixel_5_API_31
      Device: pixel_5 (Google)
        Path: /home/me/.android/avd/Pixel_5_API_31.avd
      Target: Google APIs (Google Inc.)
              Based on: Android 12.0 (S) Tag/ABI: google_apis/x86_64
    ---------
        Name: ...

    The following Android Virtual Devices could not be loaded:
        Name: Broken
        Path: ...
       Error: ...

The printed values are coarse, so each block is enriched from the AVD's own
``config.ini`` (and, for the API level, the sibling ``<id>.ini``) whenever
those files can be read.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Final, Iterator, List, Optional

from .version import Version, VersionLike

logger = logging.getLogger(__name__)

_FAILED_SECTION: Final = "\n\nThe following Android Virtual Devices could not be loaded:"
_SEPARATOR_RE: Final = re.compile(r"^-+$")
_PARENTHESIZED_RE: Final = re.compile(r"\([^)]*\)")
_SYSDIR_API_RE: Final = re.compile(r"android-([^/\\;]+)", re.IGNORECASE)


class _IniMap(Dict[str, str]):
    """Case-insensitive ``key<sep>value`` lines; first occurrence wins."""

    @classmethod
    def from_text(cls, text: str, sep: str) -> "_IniMap":
        result = cls()
        for raw in text.splitlines():
            if sep not in raw:
                continue
            key, value = (s.strip() for s in raw.split(sep, 1))
            if key and key.lower() not in result:
                result[key.lower()] = value
        return result

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:  # type: ignore[override]
        value = super().get(key.lower())
        return value if value else default


@dataclass(frozen=True, slots=True)
class AvdDefinition:
    id: str
    display_name: str
    target_type: str
    target_api_level: VersionLike
    is_play_store_enabled: bool
    config_path: Optional[Path]
    path: Optional[Path] = None
    device_profile: Optional[str] = None
    abi: Optional[str] = None


###############################################################################
# Chunking
###############################################################################
def _chunks(raw: str) -> Iterator[_IniMap]:
    # Failed entries are folded into the same divider stream; they lack the
    # fields we need and fall out later.
    text = raw.replace(_FAILED_SECTION, "\n---------")
    lines = text.strip().splitlines()[1:]  # "Available Android Virtual Devices:"
    current: List[str] = []
    for line in lines:
        if _SEPARATOR_RE.match(line.strip()):
            if any(s.strip() for s in current):
                yield _chunk_map(current)
            current = []
        else:
            current.append(line)
    if any(s.strip() for s in current):
        yield _chunk_map(current)


def _chunk_map(lines: List[str]) -> _IniMap:
    # "Based on: Android 12.0 (S) Tag/ABI: google_apis/x86_64" holds two fields
    text = "\n".join(lines).replace("Tag/ABI:", "\nTag/ABI:")
    return _IniMap.from_text(text, ":")


def _read_ini(path: Optional[Path]) -> Optional[_IniMap]:
    if path is None or not path.is_file():
        return None
    try:
        return _IniMap.from_text(path.read_text(encoding="utf-8", errors="replace"), "=")
    except OSError as exc:
        logger.debug("Cannot read %s: %s", path, exc)
        return None


###############################################################################
# Field resolution
###############################################################################
def normalize_target_type(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = _PARENTHESIZED_RE.sub("", value)
    value = re.sub(r"[_-]", " ", value).lower().strip()
    return value or None


def _api_from_sysdir(sysdir: Optional[str]) -> Optional[str]:
    # image.sysdir.1=system-images/android-34/android-wear/arm64-v8a/
    if not sysdir:
        return None
    m = _SYSDIR_API_RE.search(sysdir)
    return m.group(1) if m else None


def _resolve(chunk: _IniMap) -> Optional[AvdDefinition]:
    avd_path_text = chunk.get("path")
    avd_path = Path(avd_path_text) if avd_path_text else None
    config_path = avd_path / "config.ini" if avd_path else None
    config = _read_ini(config_path) or _IniMap()

    avd_id = (config.get("AvdId") or chunk.get("name") or "").strip()
    name = (config.get("avd.ini.displayname") or re.sub(r"[_-]", " ", avd_id)).strip()
    play_store = (config.get("PlayStore.enabled") or "false").strip().lower() == "true"
    target_type = normalize_target_type(config.get("tag.id") or chunk.get("target"))

    target_api = _api_from_sysdir(config.get("image.sysdir.1"))
    if not target_api and avd_id and avd_path is not None:
        avd_ini = _read_ini(avd_path.parent / f"{avd_id}.ini")
        if avd_ini is not None:
            target_api = avd_ini.get("target")
    if target_api:
        target_api = re.sub(r"(?i)android-", "", target_api).strip()

    if not (avd_id and name and target_type and target_api):
        logger.debug("Skipping incomplete AVD entry %r", avd_id or chunk)
        return None

    device = config.get("hw.device.name")
    if not device and chunk.get("device"):
        device = chunk.get("device").split()[0]  # "pixel_5 (Google)"
    abi = config.get("abi.type") or chunk.get("tag/abi")

    api_level: VersionLike = Version.parse(target_api) or target_api
    return AvdDefinition(
        id=avd_id,
        display_name=name,
        target_type=target_type,
        target_api_level=api_level,
        is_play_store_enabled=play_store,
        config_path=config_path,
        path=avd_path,
        device_profile=device,
        abi=abi,
    )


def parse_enumeration(raw: str) -> List[AvdDefinition]:
    """
    Parse ``avdmanager list avd`` output into AVD definitions sorted by
    display name, newest API level first among equal names. Entries missing
    an id, name, target type or API level are dropped.
    """
    definitions = [d for d in map(_resolve, _chunks(raw or "")) if d is not None]
    definitions.sort(key=lambda d: Version.sort_key(d.target_api_level), reverse=True)
    definitions.sort(key=lambda d: d.display_name)
    return definitions
