# SPDX-License-Identifier: MIT
"""
Numeric ``major.minor.patch`` versions and OS release codenames.

Android API levels are usually plain numbers (``30``), but preview releases
are published under a codename (``Tiramisu``) until the number is final. A
codename is therefore considered newer than any numeric version, while two
different codenames cannot be ordered at all.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final, Optional, Tuple, Union

from .errors import VersionComparisonError

# N, N.N or N.N.N with one consistent separator; no zero-padded components.
_COMPONENT = r"(0|[1-9]\d*)"
_VERSION_RE: Final = re.compile(
    rf"^\s*{_COMPONENT}(?:([.-]){_COMPONENT}(?:\2{_COMPONENT})?)?\s*$"
)


@dataclass(frozen=True, slots=True)
class Version:
    major: int
    minor: int = 0
    patch: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    # ---------------------------------------------------------------- parsing
    @classmethod
    def parse(cls, text: Union[str, int, None]) -> Optional["Version"]:
        """Return a Version, or None when *text* is not ``N``, ``N.N`` or ``N.N.N``."""
        if text is None:
            return None
        if isinstance(text, int):
            text = str(text)
        m = _VERSION_RE.match(text)
        if not m:
            return None
        major, _sep, minor, patch = m.groups()
        return cls(int(major), int(minor or 0), int(patch or 0))

    @classmethod
    def coerce(cls, value: "VersionLike") -> "VersionLike":
        """Parse ints and strings that look numeric; anything else stays a codename."""
        if isinstance(value, Version):
            return value
        parsed = cls.parse(value)
        return parsed if parsed is not None else str(value).strip()

    # ---------------------------------------------------------------- comparison
    @staticmethod
    def same(a: "VersionLike", b: "VersionLike") -> bool:
        a, b = Version.coerce(a), Version.coerce(b)
        if isinstance(a, Version) and isinstance(b, Version):
            return a.as_tuple() == b.as_tuple()
        if isinstance(a, str) and isinstance(b, str):
            return a == b
        return False

    @staticmethod
    def compare(a: "VersionLike", b: "VersionLike") -> int:
        """
        Three-way comparison: negative if a < b, 0 if equal, positive if a > b.

        Raises:
            VersionComparisonError: both sides are different codenames.
        """
        a, b = Version.coerce(a), Version.coerce(b)
        if isinstance(a, Version) and isinstance(b, Version):
            ta, tb = a.as_tuple(), b.as_tuple()
            return (ta > tb) - (ta < tb)
        if isinstance(a, str) and isinstance(b, str):
            if a == b:
                return 0
            raise VersionComparisonError(
                f"Cannot compare codenames {a!r} and {b!r}: "
                "codename releases have no defined order."
            )
        # A codename is a pre-release of something newer than any number.
        return 1 if isinstance(a, str) else -1

    @staticmethod
    def same_or_newer(a: "VersionLike", b: "VersionLike") -> bool:
        return Version.compare(a, b) >= 0

    @staticmethod
    def sort_key(value: "VersionLike") -> Tuple[int, int, int, int, str]:
        """Total ordering key: numeric versions first, then codenames by name."""
        value = Version.coerce(value)
        if isinstance(value, Version):
            return (0, value.major, value.minor, value.patch, "")
        return (1, 0, 0, 0, value)


VersionLike = Union[Version, str, int]
