from __future__ import annotations

import textwrap
from typing import Final

import pytest

from avdkit import _tools
from avdkit.config import AndroidConfig
from avdkit.config_writer import EmulatorConfigWriter
from avdkit.device import AndroidOSType, DeviceType
from avdkit.errors import AndroidToolNotFound, ExternalToolError, NoMatchingPackageError
from avdkit.manager import AndroidDeviceManager, OSFilter, device_type_for
from avdkit.packages import PackageCache
from avdkit.version import Version

# id, device line, target line, tag/abi, target=
_AVDS: Final = [
    ("Android_TV_1080p_API_30", "tv_1080p (Google)", "Google TV (Google Inc.)", "google-tv/x86", "android-30"),
    ("Medium_Desktop_API_34", "desktop_medium (Google)", "Android Desktop", "android-desktop/x86_64", "android-34"),
    ("Wear_OS_Large_Round_API_30", "wearos_large_round (Google)", "Android Wear", "android-wear/x86", "android-30"),
    ("Pixel_5_API_31", "pixel_5 (Google)", "Google APIs (Google Inc.)", "google_apis/x86_64", "android-31"),
    ("Nexus_6_API_30", "Nexus 6 (Google)", "Google APIs (Google Inc.)", "google_apis/x86", "android-30"),
    ("Pixel_3_API_29", "pixel_3 (Google)", "Google Play (Google Inc.)", "google_apis_playstore/x86_64", "android-29"),
    ("Pixel_4_XL_API_29", "pixel_4_xl (Google)", "Google APIs (Google Inc.)", "google_apis/x86_64", "android-29"),
    ("Pixel_XL_API_22", "pixel_xl (Google)", "Google APIs (Google Inc.)", "google_apis/x86_64", "android-22"),
]

_LISTING: Final[str] = textwrap.dedent(
    """\
    Installed packages:
      Path                                         | Version | Description                     | Location
      -------                                      | ------- | -------                         | -------
      platforms;android-30                         | 3       | Android SDK Platform 30         | platforms/android-30/
      system-images;android-30;google_apis;x86     | 9       | Google APIs Intel x86 Atom      | system-images/android-30/google_apis/x86/
      system-images;android-30;google_apis;x86_64  | 9       | Google APIs Intel x86 Atom_64   | system-images/android-30/google_apis/x86_64/
      system-images;android-28;default;x86_64      | 4       | Intel x86 Atom_64 System Image  | system-images/android-28/default/x86_64/
    """
)


@pytest.fixture
def avd_home(tmp_path, monkeypatch):
    home = tmp_path / "avd"
    home.mkdir()
    monkeypatch.setenv("ANDROID_AVD_HOME", str(home))
    return home


@pytest.fixture
def avd_list(avd_home, emulators):
    blocks = []
    for avd_id, device, target, tag_abi, api in _AVDS:
        (avd_home / f"{avd_id}.avd").mkdir()
        (avd_home / f"{avd_id}.ini").write_text(f"target={api}\n")
        if "Play" in target:
            (avd_home / f"{avd_id}.avd" / "config.ini").write_text(
                "PlayStore.enabled=true\ntag.id=google_apis_playstore\n"
            )
        blocks.append(
            f"    Name: {avd_id}\n"
            f"  Device: {device}\n"
            f"    Path: {avd_home / (avd_id + '.avd')}\n"
            f"  Target: {target}\n"
            f"          Based on: Android Tag/ABI: {tag_abi}\n"
        )
    raw = "Available Android Virtual Devices:\n" + "---------\n".join(blocks)
    emulators.respond(lambda cmd: cmd == ["avdmanager", "list", "avd"], raw)
    return raw


@pytest.fixture
def manager():
    return AndroidDeviceManager(AndroidConfig(supported_architectures=("x86_64", "x86")))


# ---------------------------------------------------------------- enumeration
def test_enumerate_all_devices_without_filtering(avd_list, manager):
    assert len(manager.enumerate_devices(None)) == 8
    assert len(manager.enumerate_devices([])) == 8


def test_enumerate_with_default_filter(avd_list, manager):
    devices = manager.enumerate_devices()
    assert sorted(d.id for d in devices) == [
        "Nexus_6_API_30",
        "Pixel_4_XL_API_29",
        "Pixel_5_API_31",
    ]
    assert all(d.os_type == "google apis" for d in devices)


def test_enumerate_with_custom_filters(avd_list, manager):
    devices = manager.enumerate_devices(
        [
            OSFilter(AndroidOSType.GOOGLE_APIS.value, Version(30)),
            OSFilter(AndroidOSType.GOOGLE_TV.value, Version(28)),
        ]
    )
    assert sorted(d.id for d in devices) == [
        "Android_TV_1080p_API_30",
        "Nexus_6_API_30",
        "Pixel_5_API_31",
    ]


def test_device_handles_carry_metadata(avd_list, manager):
    by_id = {d.id: d for d in manager.enumerate_devices(None)}

    pixel3 = by_id["Pixel_3_API_29"]
    assert pixel3.name == "Pixel 3 API 29"
    assert pixel3.os_type == "google apis playstore"
    assert pixel3.is_play_store is True
    assert pixel3.device_type is DeviceType.MOBILE
    assert pixel3.os_version == Version(29)

    assert by_id["Android_TV_1080p_API_30"].device_type is DeviceType.TV
    assert by_id["Wear_OS_Large_Round_API_30"].device_type is DeviceType.WATCH
    assert by_id["Medium_Desktop_API_34"].device_type is DeviceType.UNKNOWN


def test_enumeration_is_not_cached(avd_list, manager, emulators):
    manager.enumerate_devices()
    manager.enumerate_devices()
    assert emulators.commands.count(["avdmanager", "list", "avd"]) == 2


@pytest.mark.parametrize("stdout", ["{[}", ""])
def test_bad_output_yields_no_devices(emulators, manager, stdout):
    emulators.respond(lambda cmd: cmd[:2] == ["avdmanager", "list"], stdout)
    assert manager.enumerate_devices() == []


def test_avdmanager_failure_yields_no_devices(emulators, manager, caplog):
    failure = ExternalToolError(["avdmanager", "list", "avd"], returncode=1, stderr="mockError")
    emulators.respond(lambda cmd: cmd[:2] == ["avdmanager", "list"], failure)

    assert manager.enumerate_devices(None) == []
    assert "mockError" in caplog.text


def test_missing_avdmanager_yields_no_devices(emulators, manager, monkeypatch, caplog):
    def not_found(tool):
        raise AndroidToolNotFound(f"{tool} not found")

    monkeypatch.setattr(_tools, "tool_path", not_found)

    assert manager.enumerate_devices() == []
    assert manager.get_device("Pixel_5_API_31") is None
    assert "avdmanager not found" in caplog.text


# ---------------------------------------------------------------- lookup
@pytest.mark.parametrize("key", ["Pixel_5_API_31", "Pixel 5 API 31"])
def test_get_device_by_id_or_name(avd_list, manager, key):
    found = manager.get_device(key)
    assert found is not None
    assert found.name == "Pixel 5 API 31"
    assert manager.get_device("blah") is None


def test_get_device_ignores_filters(avd_list, manager):
    assert manager.get_device("Pixel_XL_API_22") is not None


def test_get_device_prefers_id_match(avd_home, emulators, manager):
    # "Alpha" is the display name of one AVD and the id of another
    for avd_id, display in (("Beta", "Alpha"), ("Alpha", "Gamma")):
        (avd_home / f"{avd_id}.avd").mkdir()
        (avd_home / f"{avd_id}.avd" / "config.ini").write_text(
            f"avd.ini.displayname={display}\nimage.sysdir.1=system-images/android-30/google_apis/x86/\n"
        )
    raw = "Available Android Virtual Devices:\n" + "---------\n".join(
        f"    Name: {i}\n    Path: {avd_home / (i + '.avd')}\n  Target: Google APIs\n"
        for i in ("Beta", "Alpha")
    )
    emulators.respond(lambda cmd: cmd == ["avdmanager", "list", "avd"], raw)

    assert manager.get_device("Alpha").id == "Alpha"
    assert manager.get_device("Gamma").id == "Alpha"


# ---------------------------------------------------------------- creation
def test_create_device(avd_home, emulators):
    calls = []

    def listing():
        calls.append(1)
        return _LISTING

    def avdmanager_create(cmd):
        if cmd[:3] != ["avdmanager", "create", "avd"]:
            return False
        avd_dir = avd_home / f"{cmd[cmd.index('-n') + 1]}.avd"
        avd_dir.mkdir()
        (avd_dir / "config.ini").write_text("AvdId=My_Pixel\nhw.device.name=pixel\n")
        return True

    emulators.respond(avdmanager_create, "")
    manager = AndroidDeviceManager(
        AndroidConfig(supported_architectures=("x86_64", "x86")),
        package_cache=PackageCache(listing),
        config_writer=EmulatorConfigWriter("/sdk"),
    )

    device = manager.create_device("My Pixel", "pixel", "30")

    create = [c for c in emulators.commands if c[:3] == ["avdmanager", "create", "avd"]][0]
    assert create == [
        "avdmanager", "create", "avd",
        "-n", "My_Pixel",
        "--force",
        "-k", "system-images;android-30;google_apis;x86_64",
        "--device", "pixel",
        "--abi", "google_apis/x86_64",
    ]
    assert emulators.inputs[emulators.commands.index(create)] == "no\n"

    config = (avd_home / "My_Pixel.avd" / "config.ini").read_text()
    assert "skin.name=pixel_silver\n" in config
    assert "skin.path=/sdk/skins/pixel_silver\n" in config

    assert device.id == "My_Pixel"
    assert device.name == "My Pixel"
    assert device.os_type == "google apis"
    assert device.device_type is DeviceType.MOBILE
    assert device.os_version == Version(30)
    assert device.is_play_store is False
    assert len(calls) == 1


def test_create_device_defaults_come_from_config(avd_home, emulators):
    emulators.respond(lambda cmd: cmd[:3] == ["avdmanager", "create", "avd"], "")
    manager = AndroidDeviceManager(
        AndroidConfig(
            supported_architectures=("x86_64",),
            supported_device_types=("pixel_xl", "pixel"),
            default_emulator_name="Test Emulator",
        ),
        package_cache=PackageCache(lambda: _LISTING),
        config_writer=EmulatorConfigWriter("/sdk"),
    )

    device = manager.create_device()

    create = [c for c in emulators.commands if c[:3] == ["avdmanager", "create", "avd"]][0]
    assert create[create.index("-n") + 1] == "Test_Emulator"
    assert create[create.index("--device") + 1] == "pixel_xl"
    assert device.name == "Test Emulator"


def test_create_device_without_matching_image(avd_home, emulators):
    manager = AndroidDeviceManager(package_cache=PackageCache(lambda: _LISTING))
    with pytest.raises(NoMatchingPackageError):
        manager.create_device("Nope", api_level="33")
    assert not emulators.ran("avdmanager", "create")


@pytest.mark.parametrize(
    "os_type, expected",
    [
        ("google apis", DeviceType.MOBILE),
        ("google apis playstore", DeviceType.MOBILE),
        ("google tv", DeviceType.TV),
        ("android wear", DeviceType.WATCH),
        ("android automotive", DeviceType.AUTOMOTIVE),
        ("android desktop", DeviceType.UNKNOWN),
        ("something else", DeviceType.UNKNOWN),
    ],
)
def test_device_type_for(os_type, expected):
    assert device_type_for(os_type) is expected
