"""Android emulator device.

The session handle is the emulator console port; ``-1`` means not booted.

Certificate trust: user CA certificates live in
``/data/misc/user/0/cacerts-added`` named ``<subject_hash_old>.0``. Writing
there needs root and a system image booted with ``-writable-system``, which
Play Store images refuse.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Sequence, Union

from mobile_dev_core.common.crypto import SSLCertificateData, subject_hash_old
from mobile_dev_core.common.process import CommandChannel
from mobile_dev_core.common.utils import create_temp_directory
from mobile_dev_core.common.version import Version
from mobile_dev_core.config import CoreSettings
from mobile_dev_core.device.base import (
    BaseDevice,
    DevicePolicyError,
    DeviceState,
    DeviceType,
    LaunchArgument,
)
from mobile_dev_core.runtime.android.controller import AndroidController, parse_component
from mobile_dev_core.runtime.android.sdk import AndroidSdk, AvdListing, parse_api_level

logger = logging.getLogger(__name__)

PORT_NOT_BOOTED = -1
CERT_TRUST_DIR = "/data/misc/user/0/cacerts-added"


class AndroidOSType(str, Enum):
    GOOGLE_APIS = "google_apis"
    GOOGLE_PLAY_STORE = "google_apis_playstore"
    DEFAULT = "default"
    ANDROID_DESKTOP = "android-desktop"
    GOOGLE_TV = "google-tv"
    ANDROID_WEAR = "android-wear"
    ANDROID_AUTOMOTIVE = "android-automotive"
    UNKNOWN = "unknown"

    @classmethod
    def from_tag(cls, tag: Optional[str]) -> "AndroidOSType":
        value = (tag or "").strip().lower()
        for member in cls:
            if member.value == value:
                return member
        return cls.UNKNOWN


OS_TYPE_DEVICE_TYPES: Dict[AndroidOSType, DeviceType] = {
    AndroidOSType.GOOGLE_APIS: DeviceType.PHONE,
    AndroidOSType.GOOGLE_PLAY_STORE: DeviceType.PHONE,
    AndroidOSType.DEFAULT: DeviceType.PHONE,
    AndroidOSType.ANDROID_DESKTOP: DeviceType.DESKTOP,
    AndroidOSType.GOOGLE_TV: DeviceType.TV,
    AndroidOSType.ANDROID_WEAR: DeviceType.WATCH,
    AndroidOSType.ANDROID_AUTOMOTIVE: DeviceType.AUTOMOTIVE,
    AndroidOSType.UNKNOWN: DeviceType.UNKNOWN,
}

PLAY_STORE_OS_TYPES: FrozenSet[AndroidOSType] = frozenset({AndroidOSType.GOOGLE_PLAY_STORE})


def device_type_for(os_type: AndroidOSType, hardware_name: Optional[str] = None) -> DeviceType:
    device_type = OS_TYPE_DEVICE_TYPES[os_type]
    if device_type is DeviceType.PHONE and "tablet" in (hardware_name or "").lower():
        return DeviceType.TABLET
    return device_type


def cert_file_name(cert: SSLCertificateData) -> str:
    return f"{subject_hash_old(cert)}.0"


def _truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"true", "yes", "1"}


class AndroidDevice(BaseDevice):
    def __init__(
        self,
        *,
        id: str,
        name: str,
        device_type: DeviceType,
        os_type: str,
        os_version: Union[Version, str],
        is_play_store: bool,
        controller: AndroidController,
        settings: Optional[CoreSettings] = None,
    ) -> None:
        super().__init__(
            id=id, name=name, device_type=device_type, os_type=os_type, os_version=os_version
        )
        self.is_play_store = is_play_store
        self._controller = controller
        self._settings = settings or CoreSettings()
        self._port = PORT_NOT_BOOTED
        self._writable_system = False

    @classmethod
    def from_avd(
        cls,
        listing: AvdListing,
        *,
        controller: AndroidController,
        settings: Optional[CoreSettings] = None,
    ) -> "AndroidDevice":
        config = listing.config
        tag = config.get("tag.id") or (config.get("tag.ids") or "").split(",")[0]
        os_type = AndroidOSType.from_tag(tag)
        os_version = (
            parse_api_level(config.get("image.sysdir.1") or "")
            or parse_api_level(config.get("target") or listing.header.get("target") or "")
            or ""
        )
        return cls(
            id=listing.name,
            name=config.get("avd.ini.displayname") or listing.name,
            device_type=device_type_for(os_type, config.get("hw.device.name")),
            os_type=os_type.value if os_type is not AndroidOSType.UNKNOWN else (tag or os_type.value),
            os_version=os_version,
            is_play_store=os_type in PLAY_STORE_OS_TYPES or _truthy(config.get("PlayStore.enabled")),
            controller=controller,
            settings=settings,
        )

    def emulator_port(self) -> int:
        return self._port

    @property
    def writable_system(self) -> bool:
        return self._writable_system

    def _require_port(self) -> int:
        if self._port == PORT_NOT_BOOTED:
            raise DevicePolicyError(f"{self.id} is not booted")
        return self._port

    # ------------------------------ lifecycle ---------------------------------

    async def boot(self, wait_for_boot: bool = True, writable_system: bool = False) -> None:
        if writable_system and self.is_play_store:
            raise DevicePolicyError(
                f"{self.id} is a Play Store image and cannot be booted with a writable system"
            )

        self._transition(DeviceState.BOOTING)
        spawned = False
        try:
            port = await self._command(self._controller.find_running_emulator(self.id))
            if port is not None and writable_system and not self._writable_system:
                logger.info("%s is running read-only; restarting with a writable system", self.id)
                await self._command(self._controller.stop_emulator(port))
                self._reset_handle()
                await self._controller.wait_for_stop(
                    port, policy=self._settings.shutdown_poll_policy()
                )
                port = None
            if port is None:
                used = await self._command(self._controller.running_emulator_ports())
                port = self._controller.next_free_port(used)
                await self._command(
                    self._controller.start_emulator(
                        self.id, port=port, writable_system=writable_system
                    )
                )
                spawned = True
                self._writable_system = writable_system
            else:
                logger.info("%s already running on port %s", self.id, port)
            self._port = port
            if wait_for_boot:
                await self._command(
                    self._controller.wait_for_boot(port, policy=self._settings.boot_poll_policy())
                )
        except BaseException:
            if spawned or self._port == PORT_NOT_BOOTED:
                self._reset_handle()
                self._transition(DeviceState.NOT_BOOTED)
            else:
                # The emulator was already running; keep its port.
                self._transition(DeviceState.BOOTING)
            raise
        self._transition(DeviceState.BOOTED if wait_for_boot else DeviceState.BOOTING)

    async def reboot(self, wait_for_boot: bool = True) -> None:
        if self._port == PORT_NOT_BOOTED:
            await self.boot(wait_for_boot=wait_for_boot)
            return

        port = self._port
        self._transition(DeviceState.REBOOTING)
        try:
            await self._command(self._controller.reboot(port))
            if wait_for_boot:
                await self._command(
                    self._controller.wait_for_boot(port, policy=self._settings.boot_poll_policy())
                )
        except BaseException:
            if await self._controller.is_running(port):
                self._transition(DeviceState.BOOTING)
            else:
                self._reset_handle()
                self._transition(DeviceState.NOT_BOOTED)
            raise
        self._transition(DeviceState.BOOTED if wait_for_boot else DeviceState.BOOTING)

    async def shutdown(self) -> None:
        if self._port == PORT_NOT_BOOTED:
            await self.COLD_SHUTDOWN_POLICY.run(
                self._stop_untracked, context=f"shutdown of {self.id}"
            )
            self._transition(DeviceState.NOT_BOOTED)
            return

        port = self._port
        self._transition(DeviceState.SHUTTING_DOWN)
        try:
            await self._command(self._controller.stop_emulator(port))
            await self._controller.wait_for_stop(port, policy=self._settings.shutdown_poll_policy())
        except BaseException:
            self._transition(DeviceState.BOOTED)
            raise
        self._reset_handle()
        self._transition(DeviceState.NOT_BOOTED)

    def _reset_handle(self) -> None:
        self._port = PORT_NOT_BOOTED
        self._writable_system = False

    async def _stop_untracked(self) -> None:
        # The emulator may have been started outside this process.
        port = await self._command(self._controller.find_running_emulator(self.id))
        if port is not None:
            await self._command(self._controller.stop_emulator(port))

    # ------------------------------ apps --------------------------------------

    async def open_url(self, url: str) -> None:
        await self._command(self._controller.view_url(url, port=self._require_port()))

    async def has_app(self, bundle_id: str) -> bool:
        package = bundle_id.split("/", 1)[0].strip()

        async def _probe() -> bool:
            packages = await self._command(
                self._controller.list_packages(package, port=self._require_port())
            )
            return package in packages

        return bool(
            await self.HAS_APP_POLICY.run(_probe, fallback=False, context=f"has_app({package})")
        )

    async def launch_app(
        self,
        target: str,
        app_bundle_path: Optional[str] = None,
        launch_arguments: Optional[Sequence[LaunchArgument]] = None,
    ) -> None:
        pkg, activity = parse_component(target)
        if pkg is None or activity is None:
            raise ValueError(f"expected 'package/activity' component, got {target!r}")
        port = self._require_port()
        if app_bundle_path:
            logger.info("installing %s on %s", app_bundle_path, self.id)
            await self._command(self._controller.install_apk(app_bundle_path, port=port))
        extras = [(arg.name, arg.value) for arg in launch_arguments or ()]
        await self._command(
            self._controller.start_activity(f"{pkg}/{activity}", port=port, extras=extras)
        )

    # ------------------------------ certificates ------------------------------

    async def is_cert_installed(self, cert: SSLCertificateData) -> bool:
        file_name = cert_file_name(cert)

        async def _probe() -> bool:
            port = self._require_port()
            await self._command(self._controller.root(port))
            res = await self._command(self._controller.adb_shell(f"ls {CERT_TRUST_DIR}", port=port))
            return file_name in res.stdout.split()

        return bool(
            await self.CERT_PROBE_POLICY.run(
                _probe, fallback=False, context=f"certificate probe on {self.id}"
            )
        )

    async def install_cert(self, cert: SSLCertificateData) -> None:
        file_name = cert_file_name(cert)

        async def _install() -> None:
            host_file = create_temp_directory() / file_name
            host_file.write_text(cert.pem(), encoding="utf-8")
            await self.mount_as_root_writable_system()
            port = self._require_port()
            device_file = f"{CERT_TRUST_DIR}/{file_name}"
            await self._command(self._controller.root_shell(f"mkdir -p {CERT_TRUST_DIR}", port=port))
            await self._command(self._controller.push_file(str(host_file), device_file, port=port))
            await self._command(self._controller.root_shell(f"chmod 644 {device_file}", port=port))
            logger.info("installed certificate %s on %s", file_name, self.id)

        await self.CERT_INSTALL_POLICY.run(_install, context=f"certificate install on {self.id}")

    async def mount_as_root_writable_system(self) -> None:
        """Ensure the emulator runs writable, adbd is root and /system is remounted."""

        if self._port == PORT_NOT_BOOTED or not self._writable_system:
            await self.boot(wait_for_boot=True, writable_system=True)
        port = self._require_port()
        await self._command(self._controller.root(port))
        if await self._command(self._controller.remount(port)):
            logger.info("%s requested a reboot to finish remounting", self.id)
            await self.reboot(wait_for_boot=True)
            await self._command(self._controller.root(port))
            await self._command(self._controller.remount(port))


async def discover_devices(
    *,
    channel: CommandChannel,
    settings: CoreSettings,
    sdk: Optional[AndroidSdk] = None,
) -> List[AndroidDevice]:
    """Enumerate the AVDs known to ``avdmanager`` as ``AndroidDevice`` objects."""

    sdk = sdk or AndroidSdk(channel=channel, settings=settings)
    controller = AndroidController.for_sdk(sdk.paths(), channel=channel, settings=settings)
    return [
        AndroidDevice.from_avd(listing, controller=controller, settings=settings)
        for listing in await sdk.list_avds()
    ]
