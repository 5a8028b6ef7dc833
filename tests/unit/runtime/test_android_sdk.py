from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from fakes import FakeChannel

from mobile_dev_core.common.version import Version
from mobile_dev_core.config import CoreSettings
from mobile_dev_core.runtime.android.sdk import (
    AndroidSdk,
    AndroidSdkNotFoundError,
    AndroidSdkPaths,
    discover_sdk_root,
    parse_api_level,
    parse_avd_list,
    parse_sdkmanager_list,
    sdk_root_candidates,
)

SDKMANAGER_LIST = """\
[=======================================] 100% Computing updates...
Installed packages:
  Path                                                   | Version | Description                     | Location
  -------                                                | ------- | -------                         | -------
  platform-tools                                         | 35.0.1  | Android SDK Platform-Tools      | platform-tools
  platforms;android-UpsideDownCake                       | 4       | Android SDK Platform UDC        | platforms/android-UpsideDownCake
  platforms;android-34-ext8                              | 1       | Android SDK Platform 34-ext8    | platforms/android-34-ext8
  system-images;android-33;google_apis_playstore;arm64-v8a | 7     | Google Play ARM 64 v8a          | system-images/android-33/google_apis_playstore/arm64-v8a

Available Packages:
  Path                 | Version | Description
  -------              | ------- | -------
  platforms;android-35 | 1       | Android SDK Platform 35
"""

AVD_LIST = """\
Available Android Virtual Devices:
    Name: Pixel_7_API_34
  Device: pixel_7 (Google)
    Path: {pixel}
  Target: Google APIs (Google Inc.)
          Based on: Android 14.0 ("UpsideDownCake") Tag/ABI: google_apis/x86_64
  Sdcard: 512 MB
---------
    Name: Tablet_API_33
    Path: {tablet}
  Target: Google Play (Google Inc.)
---------
The following Android Virtual Devices could not be loaded:
    Name: Broken
    Path: /nowhere/Broken.avd
   Error: Missing system image for Google APIs x86_64 Pixel.
"""


def test_parse_sdkmanager_list_only_reads_installed_section() -> None:
    packages = parse_sdkmanager_list(SDKMANAGER_LIST)
    assert [p.path for p in packages] == [
        "platform-tools",
        "platforms;android-UpsideDownCake",
        "platforms;android-34-ext8",
        "system-images;android-33;google_apis_playstore;arm64-v8a",
    ]
    tools, codename, ext, image = packages
    assert tools.version == "35.0.1"
    assert tools.api_level is None
    assert codename.api_level == "UpsideDownCake"
    assert ext.api_level == Version(34)
    assert image.is_system_image
    assert image.api_level == Version(33)
    assert image.image_tag == "google_apis_playstore"
    assert image.image_abi == "arm64-v8a"


def test_parse_api_level() -> None:
    assert parse_api_level("system-images/android-34/google_apis/x86_64/") == Version(34)
    assert parse_api_level("android-Tiramisu") == "Tiramisu"
    assert parse_api_level("no level here") is None


def test_parse_avd_list_stops_at_unloadable_section() -> None:
    blocks = parse_avd_list(AVD_LIST.format(pixel="/avd/Pixel.avd", tablet="/avd/Tablet.avd"))
    assert [b.get("name") for b in blocks] == ["Pixel_7_API_34", "Tablet_API_33"]
    assert blocks[0].get("PATH") == "/avd/Pixel.avd"
    assert blocks[0].get("device") == "pixel_7 (Google)"


def test_discover_sdk_root_order(tmp_path) -> None:
    configured = tmp_path / "configured"
    home = tmp_path / "home"
    legacy = tmp_path / "legacy"
    for d in (configured, home, legacy):
        d.mkdir()

    env = {"ANDROID_HOME": str(home), "ANDROID_SDK_ROOT": str(legacy)}
    base = CoreSettings(android_sdk_search_paths=())
    assert discover_sdk_root(CoreSettings(android_sdk_root=str(configured), android_sdk_search_paths=()), env) == configured
    assert discover_sdk_root(base, env) == home
    assert discover_sdk_root(base, {"ANDROID_SDK_ROOT": str(legacy)}) == legacy
    assert discover_sdk_root(base, {"ANDROID_HOME": str(tmp_path / "missing")}) is None
    assert discover_sdk_root(CoreSettings(android_sdk_search_paths=(str(legacy),)), {}) == legacy


def test_search_paths_expand_environment_tokens(tmp_path) -> None:
    sdk = tmp_path / "Local" / "Android" / "Sdk"
    sdk.mkdir(parents=True)
    settings = CoreSettings(
        android_sdk_search_paths=("${UNSET_VAR}/Android/Sdk", "${LOCALAPPDATA}/Android/Sdk")
    )
    env = {"LOCALAPPDATA": str(tmp_path / "Local")}

    assert sdk_root_candidates(settings, env) == [sdk]
    assert discover_sdk_root(settings, env) == sdk
    assert discover_sdk_root(settings, {}) is None


def test_sdk_paths_prefer_latest_cmdline_tools(tmp_path) -> None:
    versioned = tmp_path / "cmdline-tools" / "11.0" / "bin" / "sdkmanager"
    versioned.parent.mkdir(parents=True)
    versioned.touch()
    paths = AndroidSdkPaths(root=tmp_path)
    assert paths.sdkmanager == versioned

    latest = tmp_path / "cmdline-tools" / "latest" / "bin" / "sdkmanager"
    latest.parent.mkdir(parents=True)
    latest.touch()
    assert paths.sdkmanager == latest
    assert paths.adb == tmp_path / "platform-tools" / "adb"


def test_paths_without_sdk_raise(tmp_path) -> None:
    sdk = AndroidSdk(channel=FakeChannel(), settings=CoreSettings(android_sdk_search_paths=()), env={})
    with pytest.raises(AndroidSdkNotFoundError, match="ANDROID_HOME"):
        sdk.paths()


def test_list_avds_reads_config_ini(tmp_path) -> None:
    pixel = tmp_path / "Pixel.avd"
    pixel.mkdir()
    (pixel / "config.ini").write_text(
        "avd.ini.displayname=Pixel 7 API 34\n"
        "tag.id=google_apis\n"
        "image.sysdir.1=system-images/android-34/google_apis/x86_64/\n"
        "PlayStore.enabled=false\n",
        encoding="utf-8",
    )
    tablet = tmp_path / "Tablet.avd"

    channel = FakeChannel().on(
        r"avdmanager list avd$", stdout=AVD_LIST.format(pixel=pixel, tablet=tablet)
    )
    sdk = AndroidSdk(channel=channel, settings=CoreSettings(android_sdk_root=str(tmp_path)), env={})
    listings = asyncio.run(sdk.list_avds())

    assert [listing.name for listing in listings] == ["Pixel_7_API_34", "Tablet_API_33"]
    assert listings[0].path == Path(str(pixel))
    assert listings[0].config.get("Tag.Id") == "google_apis"
    # Missing config.ini yields an empty map rather than an error.
    assert len(listings[1].config) == 0
