"""iOS simulator device.

The session handle is the simulator UDID while booted and ``None`` otherwise.
Certificates are added to the simulator keychain with ``simctl keychain``;
presence is checked against the simulator's ``TrustStore.sqlite3``.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Union

from mobile_dev_core.common.crypto import SSLCertificateData, sha256_fingerprint, subject_hash_old
from mobile_dev_core.common.process import CommandChannel, CommandExitError
from mobile_dev_core.common.retry import BEST_EFFORT
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
from mobile_dev_core.runtime.ios.simctl import DEVICE_TYPE_PREFIX, SimctlController, SimulatorRecord

logger = logging.getLogger(__name__)

_DEVICE_TYPE_MARKERS = (
    ("ipad", DeviceType.TABLET),
    ("apple-watch", DeviceType.WATCH),
    ("apple-tv", DeviceType.TV),
    ("iphone", DeviceType.PHONE),
    ("ipod", DeviceType.PHONE),
)


def device_type_for(device_type_id: str) -> DeviceType:
    ident = device_type_id.lower()
    if ident.startswith(DEVICE_TYPE_PREFIX.lower()):
        ident = ident[len(DEVICE_TYPE_PREFIX):]
    for marker, device_type in _DEVICE_TYPE_MARKERS:
        if marker in ident:
            return device_type
    return DeviceType.UNKNOWN


class AppleDevice(BaseDevice):
    def __init__(
        self,
        *,
        id: str,
        name: str,
        device_type: DeviceType,
        os_type: str,
        os_version: Union[Version, str],
        controller: SimctlController,
        settings: Optional[CoreSettings] = None,
    ) -> None:
        super().__init__(
            id=id, name=name, device_type=device_type, os_type=os_type, os_version=os_version
        )
        self._controller = controller
        self._settings = settings or CoreSettings()
        self._session: Optional[str] = None

    @classmethod
    def from_record(
        cls,
        record: SimulatorRecord,
        *,
        controller: SimctlController,
        settings: Optional[CoreSettings] = None,
    ) -> "AppleDevice":
        tail = record.runtime_id.rsplit(".", 1)[-1]
        os_type = tail.split("-", 1)[0] if tail else "iOS"
        raw_version = record.runtime_version or ""
        device = cls(
            id=record.udid,
            name=record.name,
            device_type=device_type_for(record.device_type_id),
            os_type=os_type,
            os_version=Version.parse(raw_version) or raw_version,
            controller=controller,
            settings=settings,
        )
        if record.booted:
            device._session = record.udid
            device._transition(DeviceState.BOOTED)
        return device

    @property
    def session_udid(self) -> Optional[str]:
        return self._session

    def _require_session(self) -> str:
        if self._session is None:
            raise DevicePolicyError(f"{self.id} is not booted")
        return self._session

    async def boot(self, wait_for_boot: bool = True, writable_system: bool = False) -> None:
        if writable_system:
            logger.debug("writable_system has no effect on iOS simulators")
        self._transition(DeviceState.BOOTING)
        try:
            await self._command(self._controller.boot(self.id))
            self._session = self.id
            if wait_for_boot:
                await self._command(
                    self._controller.wait_booted(self.id, policy=self._settings.boot_poll_policy())
                )
        except BaseException:
            self._session = None
            self._transition(DeviceState.NOT_BOOTED)
            raise
        self._transition(DeviceState.BOOTED if wait_for_boot else DeviceState.BOOTING)

    async def reboot(self, wait_for_boot: bool = True) -> None:
        if self._session is None:
            await self.boot(wait_for_boot=wait_for_boot)
            return

        self._transition(DeviceState.REBOOTING)
        try:
            await self._command(self._controller.shutdown(self.id))
            await self._command(self._controller.boot(self.id))
            if wait_for_boot:
                await self._command(
                    self._controller.wait_booted(self.id, policy=self._settings.boot_poll_policy())
                )
        except BaseException:
            still_booted = await BEST_EFFORT.run(
                lambda: self._controller.is_booted(self.id),
                fallback=False,
                context=f"state check of {self.id}",
            )
            if still_booted:
                self._transition(DeviceState.BOOTING)
            else:
                self._session = None
                self._transition(DeviceState.NOT_BOOTED)
            raise
        self._transition(DeviceState.BOOTED if wait_for_boot else DeviceState.BOOTING)

    async def shutdown(self) -> None:
        if self._session is None:
            await self.COLD_SHUTDOWN_POLICY.run(
                lambda: self._command(self._controller.shutdown(self.id)),
                context=f"shutdown of {self.id}",
            )
            self._transition(DeviceState.NOT_BOOTED)
            return

        self._transition(DeviceState.SHUTTING_DOWN)
        try:
            await self._command(self._controller.shutdown(self.id))
        except BaseException:
            self._transition(DeviceState.BOOTED)
            raise
        self._session = None
        self._transition(DeviceState.NOT_BOOTED)

    async def open_url(self, url: str) -> None:
        await self._command(self._controller.open_url(self._require_session(), url))

    async def has_app(self, bundle_id: str) -> bool:
        async def _probe() -> bool:
            try:
                container = await self._controller.app_container(self._require_session(), bundle_id)
            except CommandExitError:
                # simctl exits non-zero when the bundle is not installed.
                return False
            return bool(container)

        return bool(
            await self.HAS_APP_POLICY.run(_probe, fallback=False, context=f"has_app({bundle_id})")
        )

    async def launch_app(
        self,
        target: str,
        app_bundle_path: Optional[str] = None,
        launch_arguments: Optional[Sequence[LaunchArgument]] = None,
    ) -> None:
        udid = self._require_session()
        if app_bundle_path:
            logger.info("installing %s on %s", app_bundle_path, self.id)
            await self._command(self._controller.install(udid, app_bundle_path))
        await BEST_EFFORT.run(
            lambda: self._controller.terminate(udid, target), context=f"terminate {target}"
        )
        args = [(arg.name, arg.value) for arg in launch_arguments or ()]
        await self._command(self._controller.launch(udid, target, args))

    async def is_cert_installed(self, cert: SSLCertificateData) -> bool:
        fingerprint = sha256_fingerprint(cert)

        async def _probe() -> bool:
            return await self._command(
                self._controller.trust_store_contains(self._require_session(), fingerprint)
            )

        return bool(
            await self.CERT_PROBE_POLICY.run(
                _probe, fallback=False, context=f"certificate probe on {self.id}"
            )
        )

    async def install_cert(self, cert: SSLCertificateData) -> None:
        async def _install() -> None:
            host_file = create_temp_directory() / f"{subject_hash_old(cert)}.0"
            host_file.write_text(cert.pem(), encoding="utf-8")
            if self._session is None:
                await self.boot(wait_for_boot=True)
            await self._command(
                self._controller.add_root_cert(self._require_session(), str(host_file))
            )
            logger.info("installed certificate %s on %s", host_file.name, self.id)

        await self.CERT_INSTALL_POLICY.run(_install, context=f"certificate install on {self.id}")


async def discover_devices(
    *,
    channel: CommandChannel,
    settings: CoreSettings,
    controller: Optional[SimctlController] = None,
) -> List[AppleDevice]:
    """Enumerate available simulators as ``AppleDevice`` objects."""

    controller = controller or SimctlController(channel=channel, timeout_s=settings.command_timeout_s)
    return [
        AppleDevice.from_record(record, controller=controller, settings=settings)
        for record in await controller.list_devices()
        if record.is_available
    ]
