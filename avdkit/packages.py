# SPDX-License-Identifier: MIT
"""
Installed SDK packages as reported by ``sdkmanager --list``.

Only the *Installed packages* table matters here::

    Installed packages:
      Path                                        | Version | Description                    | Location
      -------                                     | ------- | -------                        | -------
      platforms;android-30                        | 3       | Android SDK Platform 30        | platforms/android-30/
      system-images;android-30;google_apis;x86_64 | 9       | Google APIs Intel x86_64 Atom  | system-images/android-30/google_apis/x86_64/
    Available Packages:
      ...
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Final, List, Optional, Sequence

from . import _tools
from .config import AndroidConfig
from .errors import NoMatchingPackageError, VersionComparisonError
from .version import Version, VersionLike

logger = logging.getLogger(__name__)

PLATFORM_PREFIX: Final = "platforms;android-"
SYSTEM_IMAGE_PREFIX: Final = "system-images;android-"
_EXTENSION_RE: Final = re.compile(r"-ext\d+$")


@dataclass(frozen=True, slots=True)
class AndroidPackage:
    path: str
    api_level: VersionLike
    description: str
    location: str = ""

    @property
    def _tokens(self) -> List[str]:
        return self.path.split(";")

    @property
    def platform_api(self) -> str:
        """``android-30`` for both platforms and system images."""
        tokens = self._tokens
        return tokens[1] if len(tokens) > 1 else ""

    @property
    def tag(self) -> Optional[str]:
        """System image flavour, e.g. ``google_apis`` (None for platforms)."""
        tokens = self._tokens
        return tokens[2] if len(tokens) > 2 else None

    @property
    def abi(self) -> Optional[str]:
        tokens = self._tokens
        return tokens[3] if len(tokens) > 3 else None

    @property
    def is_system_image(self) -> bool:
        return self.path.startswith(SYSTEM_IMAGE_PREFIX)

    def __str__(self) -> str:
        return (
            f"path: {self.path}, version: {self.api_level}, "
            f"description: {self.description}, location: {self.location}"
        )


@dataclass(slots=True)
class AndroidPackages:
    platforms: List[AndroidPackage] = field(default_factory=list)
    system_images: List[AndroidPackage] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.platforms and not self.system_images

    def __str__(self) -> str:
        lines = ["platforms:", *map(str, self.platforms)]
        lines += ["system images:", *map(str, self.system_images)]
        return "\n".join(lines)

    # ---------------------------------------------------------------- parsing
    @classmethod
    def parse_raw_listing(cls, text: str) -> "AndroidPackages":
        """
        Build a catalog from ``sdkmanager --list`` output. Rows that are not
        platforms/system images, or that lack columns, are skipped; input
        without a recognisable table yields an empty catalog.
        """
        packages = cls()
        lowered = text.lower()
        start = lowered.find("installed packages:")
        start = max(start, 0)
        end = lowered.find("available packages:", start)
        section = text[start:end] if end != -1 else text[start:]

        lines = section.splitlines()
        for i, line in enumerate(lines):
            if "path" in line.lower() and "|" in line:
                break
        else:
            return packages

        # skip the header and its "-------" row
        for line in lines[i + 2 :]:
            pkg = _parse_row(line)
            if pkg is None:
                continue
            if pkg.path.startswith(PLATFORM_PREFIX):
                packages.platforms.append(pkg)
            else:
                packages.system_images.append(pkg)
        return packages

    # ---------------------------------------------------------------- queries
    def supported_platforms(self, min_api_level: VersionLike) -> List[AndroidPackage]:
        """Platform packages at or above *min_api_level*, newest first."""
        result = [p for p in self.platforms if _same_or_newer(p.api_level, min_api_level)]
        result.sort(key=lambda p: Version.sort_key(p.api_level), reverse=True)
        return result

    def find_best_match(
        self,
        desired_api_level: VersionLike | None = None,
        abi_preference: Sequence[str] = (),
        *,
        config: AndroidConfig | None = None,
    ) -> AndroidPackage:
        """
        Pick a system image.

        With *desired_api_level*, only images at exactly that level qualify;
        otherwise the highest level at or above the configured minimum wins.
        Inside one level the earliest ABI in *abi_preference* wins, then the
        earliest image tag in ``config.supported_images``.

        Raises:
            NoMatchingPackageError: empty catalog or no qualifying image.
        """
        config = config or AndroidConfig()
        abis = list(abi_preference) or list(config.supported_architectures)
        tags = list(config.supported_images)

        if self.is_empty():
            raise NoMatchingPackageError("No Android SDK packages are installed.")

        candidates = [
            img
            for img in self.system_images
            if img.abi in abis and img.tag in tags
        ]
        if desired_api_level is not None:
            candidates = [
                img for img in candidates if Version.same(img.api_level, desired_api_level)
            ]
            wanted = f"API level {desired_api_level}"
        else:
            candidates = [
                img
                for img in candidates
                if _same_or_newer(img.api_level, config.min_supported_runtime)
            ]
            wanted = f"API level {config.min_supported_runtime} or newer"

        if not candidates:
            raise NoMatchingPackageError(
                f"Could not locate a system image for {wanted}. "
                f"Requires any one of [{', '.join(tags)}] with ABI [{', '.join(abis)}]."
            )

        def rank(img: AndroidPackage):
            cat, major, minor, patch, name = Version.sort_key(img.api_level)
            # newest level first, codenames ahead of numeric levels, plain
            # images ahead of SDK extension images at the same level
            extension = _EXTENSION_RE.search(img.platform_api) is not None
            return (
                -cat, -major, -minor, -patch, name, extension,
                abis.index(img.abi), tags.index(img.tag),
            )

        candidates.sort(key=rank)
        return candidates[0]


def _parse_row(line: str) -> Optional[AndroidPackage]:
    cols = [c.strip() for c in line.split("|")]
    if len(cols) < 3:
        return None
    path = cols[0]
    if path.startswith(PLATFORM_PREFIX):
        rest = path[len(PLATFORM_PREFIX):]
    elif path.startswith(SYSTEM_IMAGE_PREFIX):
        rest = path[len(SYSTEM_IMAGE_PREFIX):]
    else:
        return None
    level_text = rest.split(";", 1)[0]
    if not level_text or not cols[2]:
        return None
    # SDK extension images (android-34-ext10) rank at their base level
    api_level: VersionLike | None = Version.parse(_EXTENSION_RE.sub("", level_text))
    if api_level is None:
        logger.warning(
            "'%s' does not follow semantic versioning format... "
            "will consider it as a codename.",
            level_text,
        )
        api_level = level_text
    location = cols[3] if len(cols) > 3 else ""
    return AndroidPackage(path, api_level, cols[2], location)


def _same_or_newer(a: VersionLike, b: VersionLike) -> bool:
    try:
        return Version.same_or_newer(a, b)
    except VersionComparisonError:
        return False


###############################################################################
# Cache
###############################################################################
def _fetch_listing() -> str:
    return _tools._run([_tools.tool_path("sdkmanager"), "--list"]).stdout


class PackageCache:
    """
    Memoized ``sdkmanager --list``. The listing is slow and the SDK is not
    expected to change mid-session, so the catalog is kept until
    :meth:`clear` is called. An empty catalog is never kept.
    """

    def __init__(self, fetcher: Callable[[], str] = _fetch_listing) -> None:
        self._fetcher = fetcher
        self._catalog: AndroidPackages | None = None

    def is_cached(self) -> bool:
        return self._catalog is not None and not self._catalog.is_empty()

    def get(self) -> AndroidPackages:
        if self.is_cached():
            return self._catalog  # type: ignore[return-value]
        packages = AndroidPackages.parse_raw_listing(self._fetcher() or "")
        self._catalog = packages
        return packages

    def clear(self) -> None:
        self._catalog = None


_default_cache = PackageCache()


def default_cache() -> PackageCache:
    return _default_cache


def fetch_installed_packages() -> AndroidPackages:
    return _default_cache.get()


def clear_caches() -> None:
    """Forget the package catalog and any resolved tool paths."""
    _default_cache.clear()
    _tools.clear_tool_cache()

