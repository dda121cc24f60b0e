# SPDX-License-Identifier: MIT
from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path
from typing import Iterable, NamedTuple, Optional

SUPPORTED_TOOLS = frozenset({"adb", "emulator", "avdmanager", "sdkmanager"})

# Tools shipped as .bat wrappers on Windows (the rest are .exe)
_BATCH_TOOLS = frozenset({"avdmanager", "sdkmanager"})


class SdkRoot(NamedTuple):
    path: Path
    source: str  # name of the environment variable it came from


# ---------- Core helpers -----------------------------------------------------
def find_android_tool(tool: str) -> Path:
    """
    Locate an Android command-line tool (adb, emulator, avdmanager, sdkmanager).

    Search order (first hit wins):
      1. Explicit env vars: ANDROID_{TOOL.upper()} (e.g. ANDROID_EMULATOR)
      2. Anything already on the PATH
      3. $ANDROID_HOME / $ANDROID_SDK_ROOT
      4. Typical default SDK locations for the current platform
      5. User-supplied fallback directories via FIND_ANDROID_EXTRA_DIRS env var
    Raises:
        FileNotFoundError if nothing is found.
    """
    if tool not in SUPPORTED_TOOLS:
        raise ValueError(f"Unsupported tool: {tool}")

    explicit = os.getenv(f"ANDROID_{tool.upper()}")
    if explicit and Path(explicit).expanduser().is_file():
        return Path(explicit).expanduser()

    path_hit = shutil.which(tool) or shutil.which(_windows_name(tool))
    if path_hit:
        return Path(path_hit)

    root = android_sdk_root()
    if root:
        p = _scan_sdk(root.path, tool)
        if p:
            return p

    for candidate_root in _default_sdk_roots():
        p = _scan_sdk(candidate_root, tool)
        if p:
            return p

    extra = os.getenv("FIND_ANDROID_EXTRA_DIRS", "")
    for extra_root in map(str.strip, extra.split(",")):
        if extra_root:
            p = _scan_sdk(Path(extra_root).expanduser(), tool, deep=True)
            if p:
                return p

    raise FileNotFoundError(
        f"Could not locate {tool}. "
        "Install Android SDK Platform-Tools / Emulator / Command-line Tools "
        "or set ANDROID_HOME."
    )


def android_sdk_root() -> Optional[SdkRoot]:
    """
    Resolve the SDK root. ANDROID_HOME wins over ANDROID_SDK_ROOT; a variable
    only counts when it points at an existing directory.
    """
    for var in ("ANDROID_HOME", "ANDROID_SDK_ROOT"):
        value = (os.getenv(var) or "").strip()
        if value and Path(value).expanduser().is_dir():
            return SdkRoot(Path(value).expanduser(), var)
    return None


def android_avd_home() -> Path:
    """Directory holding the ``<id>.ini`` files and ``<id>.avd`` folders."""
    avd_home = (os.getenv("ANDROID_AVD_HOME") or "").strip()
    if avd_home:
        return Path(avd_home).expanduser()
    user_home = (os.getenv("ANDROID_USER_HOME") or "").strip()
    if user_home:
        return Path(user_home).expanduser() / "avd"
    return Path.home() / ".android" / "avd"


# ---------- Internals --------------------------------------------------------
def _windows_name(tool: str) -> str:
    """Return the executable name for Windows builds."""
    if sys.platform.startswith("win"):
        return f"{tool}.bat" if tool in _BATCH_TOOLS else f"{tool}.exe"
    return tool


def _cmdline_tools_bins(root: Path) -> list[Path]:
    """
    Side-by-side installs look like cmdline-tools/{3.0,4.0-beta01,latest}/bin.
    'latest' first, then versioned folders in descending order.
    """
    base = root / "cmdline-tools"
    if not base.is_dir():
        return []
    names = sorted((d.name for d in base.iterdir() if d.is_dir()), reverse=True)
    if "latest" in names:
        names.remove("latest")
        names.insert(0, "latest")
    return [base / name / "bin" for name in names]


def _scan_sdk(root: Path, tool: str, deep: bool = False) -> Optional[Path]:
    """Search the SDK tree for the requested tool."""
    root = root.expanduser()
    exe = _windows_name(tool)
    subdirs: dict[str, Iterable[Path]] = {
        "adb": [root / "platform-tools"],
        "emulator": [root / "emulator"],
    }
    if tool in _BATCH_TOOLS:
        # Legacy path (pre-cmdline-tools) comes last
        subdirs[tool] = _cmdline_tools_bins(root) + [root / "tools" / "bin"]

    for d in subdirs[tool]:
        cand = d / exe
        if cand.is_file():
            return cand

    if deep:
        for cand in root.rglob(exe):
            return cand
    return None


def _default_sdk_roots() -> list[Path]:
    """Return typical SDK install roots for each OS."""
    home = Path.home()
    if sys.platform.startswith("darwin"):
        return [
            home / "Library" / "Android" / "sdk",
            home / "Android" / "Sdk",
        ]
    elif sys.platform.startswith("win"):
        return [
            Path(os.environ.get("LOCALAPPDATA", "")) / "Android" / "Sdk",
            home / "AppData" / "Local" / "Android" / "Sdk",
        ]
    else:
        return [
            home / "Android" / "Sdk",
            Path("/opt/android-sdk"),
        ]
