from __future__ import annotations

import asyncio
import shlex

import pytest

from fakes import FakeChannel, FakeReply

from mobile_dev_core.common.process import CommandExitError
from mobile_dev_core.common.retry import PollPolicy, PollTimeoutError
from mobile_dev_core.config import CoreSettings
from mobile_dev_core.runtime.android.controller import (
    AndroidController,
    AndroidControllerError,
    parse_component,
    parse_emulator_ports,
)
from mobile_dev_core.runtime.android.sdk import AndroidSdkPaths

ADB_DEVICES = """\
List of devices attached
emulator-5554\tdevice
emulator-5558\toffline
R58M123ABC\tdevice

"""


def test_parse_emulator_ports_ignores_physical_devices() -> None:
    assert parse_emulator_ports(ADB_DEVICES) == [5554, 5558]


def test_parse_component() -> None:
    assert parse_component("com.example/.MainActivity") == ("com.example", "com.example.MainActivity")
    assert parse_component("com.example/com.other.Main") == ("com.example", "com.other.Main")
    assert parse_component("com.example") == (None, None)


def test_next_free_port_skips_used_and_odd_ports() -> None:
    ctr = AndroidController(channel=FakeChannel(), port_range=(5555, 5560))
    assert ctr.next_free_port([]) == 5556
    assert ctr.next_free_port([5556]) == 5558
    with pytest.raises(AndroidControllerError, match="no free emulator port"):
        ctr.next_free_port([5556, 5558, 5560])


def test_adb_targets_emulator_serial_and_quotes_shell_command() -> None:
    channel = FakeChannel().on(r"", stdout="")
    ctr = AndroidController(channel=channel, adb_path="/sdk/platform-tools/adb")
    asyncio.run(ctr.view_url("https://example.com/?a=1&b=2", port=5556))

    tokens = shlex.split(channel.commands[0])
    assert tokens[:4] == ["/sdk/platform-tools/adb", "-s", "emulator-5556", "shell"]
    assert shlex.split(tokens[4]) == [
        "am",
        "start",
        "-a",
        "android.intent.action.VIEW",
        "-d",
        "https://example.com/?a=1&b=2",
    ]


def test_start_activity_passes_string_extras() -> None:
    channel = FakeChannel().on(r"", stdout="")
    ctr = AndroidController(channel=channel)
    asyncio.run(
        ctr.start_activity("com.example/com.example.Main", port=5554, extras=[("mode", "dark theme")])
    )
    shell_cmd = shlex.split(channel.commands[0])[4]
    assert shlex.split(shell_cmd) == [
        "am", "start", "-S", "-n", "com.example/com.example.Main", "--es", "mode", "dark theme"
    ]


def test_start_emulator_spawns_detached_process() -> None:
    channel = FakeChannel()
    ctr = AndroidController(channel=channel, emulator_path="/sdk/emulator/emulator")
    asyncio.run(ctr.start_emulator("Pixel_7", port=5556, writable_system=True))
    assert channel.spawned == [
        ["/sdk/emulator/emulator", "@Pixel_7", "-port", "5556", "-writable-system"]
    ]


def test_emulator_avd_name_is_best_effort() -> None:
    channel = (
        FakeChannel()
        .on(r"emulator-5554 emu avd name", stdout="Pixel_7\r\nOK\r\n")
        .on(r"emulator-5556 emu avd name", stderr="error: device offline", returncode=1)
    )
    ctr = AndroidController(channel=channel)
    assert asyncio.run(ctr.emulator_avd_name(5554)) == "Pixel_7"
    assert asyncio.run(ctr.emulator_avd_name(5556)) is None


def test_find_running_emulator_matches_avd_name() -> None:
    channel = (
        FakeChannel()
        .on(r"adb devices$", stdout=ADB_DEVICES)
        .on(r"emulator-5554 emu avd name", stdout="Other\nOK\n")
        .on(r"emulator-5558 emu avd name", stdout="Pixel_7\nOK\n")
    )
    ctr = AndroidController(channel=channel)
    assert asyncio.run(ctr.find_running_emulator("Pixel_7")) == 5558
    assert asyncio.run(ctr.find_running_emulator("Missing")) is None


@pytest.mark.parametrize(
    "stdout,needs_reboot",
    [
        ("remount succeeded\n", False),
        ("Using overlayfs for /system\nNow reboot your device for settings to take effect\n", True),
    ],
)
def test_remount_reports_reboot_requirement(stdout: str, needs_reboot: bool) -> None:
    channel = FakeChannel().on(r"remount$", stdout=stdout)
    ctr = AndroidController(channel=channel)
    assert asyncio.run(ctr.remount(5554)) is needs_reboot


def test_wait_for_boot_polls_until_boot_completed() -> None:
    answers = iter(["", "0", "1"])
    channel = FakeChannel().on(
        r"getprop sys.boot_completed", handler=lambda _cmd: FakeReply(stdout=next(answers))
    )
    ctr = AndroidController(channel=channel)
    attempts = asyncio.run(ctr.wait_for_boot(5554, policy=PollPolicy(interval_s=0.0, timeout_s=5.0)))
    assert attempts == 3


def test_wait_for_boot_times_out() -> None:
    channel = FakeChannel().on(r"getprop sys.boot_completed", stderr="device offline", returncode=1)
    ctr = AndroidController(channel=channel)
    with pytest.raises(PollTimeoutError, match="emulator-5554 to finish booting"):
        asyncio.run(ctr.wait_for_boot(5554, policy=PollPolicy(interval_s=0.01, timeout_s=0.03)))


def test_failed_adb_command_propagates() -> None:
    channel = FakeChannel().on(r"push", stderr="Permission denied", returncode=1)
    ctr = AndroidController(channel=channel)
    with pytest.raises(CommandExitError, match="Permission denied"):
        asyncio.run(ctr.push_file("/tmp/x.0", "/data/x.0", port=5554))


def test_for_sdk_uses_sdk_tool_paths(tmp_path) -> None:
    settings = CoreSettings(emulator_port_start=5600, emulator_port_end=5610)
    ctr = AndroidController.for_sdk(AndroidSdkPaths(root=tmp_path), channel=FakeChannel(), settings=settings)
    assert ctr.next_free_port([]) == 5600
    channel = FakeChannel().on(r"", stdout="")
    ctr = AndroidController.for_sdk(AndroidSdkPaths(root=tmp_path), channel=channel, settings=settings)
    asyncio.run(ctr.reboot(5600))
    assert shlex.split(channel.commands[0])[0] == str(tmp_path / "platform-tools" / "adb")
