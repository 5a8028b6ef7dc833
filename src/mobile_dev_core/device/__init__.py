"""Emulator and simulator devices.

``AndroidDevice`` drives AVDs through adb/emulator, ``AppleDevice`` drives iOS
simulators through ``xcrun simctl``. Both implement ``BaseDevice``.
"""

from __future__ import annotations

from mobile_dev_core.device.android import AndroidDevice, AndroidOSType
from mobile_dev_core.device.base import (
    BaseDevice,
    DeviceCommandError,
    DevicePolicyError,
    DeviceState,
    DeviceType,
    LaunchArgument,
)
from mobile_dev_core.device.ios import AppleDevice

__all__ = [
    "AndroidDevice",
    "AndroidOSType",
    "AppleDevice",
    "BaseDevice",
    "DeviceCommandError",
    "DevicePolicyError",
    "DeviceState",
    "DeviceType",
    "LaunchArgument",
]
