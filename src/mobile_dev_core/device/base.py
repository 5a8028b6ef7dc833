"""Device abstraction shared by Android emulators and iOS simulators.

A device is created when it is enumerated from the host toolchain and holds a
session handle (emulator port / simulator UDID) only while booted. The handle
is written exclusively by the device's own lifecycle operations.

Failure handling is chosen per operation through ``FailurePolicy`` class
attributes so the choice is visible (and assertable) on each device class.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Optional, Sequence, TypeVar, Union

from mobile_dev_core.common.crypto import SSLCertificateData
from mobile_dev_core.common.process import CommandError
from mobile_dev_core.common.retry import BEST_EFFORT, PROPAGATE, FailurePolicy
from mobile_dev_core.common.version import Version

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DeviceType(str, Enum):
    PHONE = "phone"
    TABLET = "tablet"
    WATCH = "watch"
    TV = "tv"
    AUTOMOTIVE = "automotive"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


class DeviceState(str, Enum):
    NOT_BOOTED = "not_booted"
    BOOTING = "booting"
    BOOTED = "booted"
    SHUTTING_DOWN = "shutting_down"
    REBOOTING = "rebooting"


class DevicePolicyError(RuntimeError):
    """Raised when an operation is refused for this device before any command runs."""


class DeviceCommandError(RuntimeError):
    """An external tool failed while operating a specific device."""

    def __init__(self, *, device_id: str, command: str, cause: BaseException) -> None:
        super().__init__(f"[{device_id}] {cause}")
        self.device_id = device_id
        self.command = command
        self.cause = cause


@dataclass(frozen=True)
class LaunchArgument:
    name: str
    value: str


class BaseDevice(ABC):
    CERT_PROBE_POLICY: FailurePolicy = BEST_EFFORT
    CERT_INSTALL_POLICY: FailurePolicy = PROPAGATE
    HAS_APP_POLICY: FailurePolicy = BEST_EFFORT
    COLD_SHUTDOWN_POLICY: FailurePolicy = BEST_EFFORT

    def __init__(
        self,
        *,
        id: str,
        name: str,
        device_type: DeviceType,
        os_type: str,
        os_version: Union[Version, str],
    ) -> None:
        self.id = id
        self.name = name
        self.device_type = device_type
        self.os_type = os_type
        self.os_version = os_version
        self._state = DeviceState.NOT_BOOTED

    def __str__(self) -> str:
        return f"{self.name}, {self.os_type} {self.os_version}"

    @property
    def state(self) -> DeviceState:
        return self._state

    @property
    def is_booted(self) -> bool:
        return self._state is DeviceState.BOOTED

    def _transition(self, state: DeviceState) -> None:
        if state is not self._state:
            logger.debug("%s: %s -> %s", self.id, self._state.value, state.value)
        self._state = state

    async def _command(self, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except CommandError as e:
            raise DeviceCommandError(device_id=self.id, command=e.command, cause=e) from e

    @abstractmethod
    async def boot(self, wait_for_boot: bool = True, writable_system: bool = False) -> None:
        ...

    @abstractmethod
    async def reboot(self, wait_for_boot: bool = True) -> None:
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        ...

    @abstractmethod
    async def open_url(self, url: str) -> None:
        ...

    @abstractmethod
    async def has_app(self, bundle_id: str) -> bool:
        ...

    @abstractmethod
    async def launch_app(
        self,
        target: str,
        app_bundle_path: Optional[str] = None,
        launch_arguments: Optional[Sequence[LaunchArgument]] = None,
    ) -> None:
        """Launch ``target`` (Android ``package/activity``, iOS bundle id).

        When ``app_bundle_path`` is given the app is (re)installed first.
        """

    @abstractmethod
    async def is_cert_installed(self, cert: SSLCertificateData) -> bool:
        ...

    @abstractmethod
    async def install_cert(self, cert: SSLCertificateData) -> None:
        ...
