"""``xcrun simctl`` wrapper.

Every call goes through the ``CommandChannel``; JSON listings (``-j``) are
parsed into small dataclasses. ``boot`` treats "current state: Booted" as
success and readiness is polled from the device listing.
"""

from __future__ import annotations

import json
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from mobile_dev_core.common.process import CommandChannel, CommandExitError, CommandResult
from mobile_dev_core.common.retry import PollPolicy, poll_until

logger = logging.getLogger(__name__)

RUNTIME_PREFIX = "com.apple.CoreSimulator.SimRuntime."
DEVICE_TYPE_PREFIX = "com.apple.CoreSimulator.SimDeviceType."

SIMULATOR_DEVICES_DIR = Path("~/Library/Developer/CoreSimulator/Devices")
TRUST_STORE_RELPATH = Path("data/Library/Keychains/TrustStore.sqlite3")


class SimctlError(RuntimeError):
    """Raised when simctl output cannot be interpreted."""


@dataclass(frozen=True)
class SimulatorRecord:
    udid: str
    name: str
    state: str
    runtime_id: str
    device_type_id: str = ""
    is_available: bool = True

    @property
    def booted(self) -> bool:
        return self.state == "Booted"

    @property
    def runtime_version(self) -> Optional[str]:
        """``...SimRuntime.iOS-17-2`` -> ``17.2``."""

        if not self.runtime_id.startswith(RUNTIME_PREFIX):
            return None
        tail = self.runtime_id[len(RUNTIME_PREFIX):]
        if "-" not in tail:
            return None
        return tail.split("-", 1)[1].replace("-", ".")


@dataclass(frozen=True)
class SimRuntime:
    identifier: str
    name: str
    version: str
    is_available: bool = True

    @property
    def platform(self) -> str:
        return self.name.split(" ", 1)[0] if self.name else ""


def _load_json(res: CommandResult) -> Dict[str, Any]:
    try:
        data = json.loads(res.stdout or "{}")
    except json.JSONDecodeError as e:
        raise SimctlError(f"could not parse JSON from {res.command}: {e}") from e
    if not isinstance(data, dict):
        raise SimctlError(f"unexpected JSON from {res.command}")
    return data


def parse_device_list(data: Dict[str, Any]) -> List[SimulatorRecord]:
    records: List[SimulatorRecord] = []
    for runtime_id, devices in (data.get("devices") or {}).items():
        for dev in devices or []:
            if not isinstance(dev, dict) or not dev.get("udid"):
                continue
            records.append(
                SimulatorRecord(
                    udid=str(dev["udid"]),
                    name=str(dev.get("name", "")),
                    state=str(dev.get("state", "")),
                    runtime_id=str(runtime_id),
                    device_type_id=str(dev.get("deviceTypeIdentifier", "")),
                    is_available=bool(dev.get("isAvailable", True)),
                )
            )
    return records


def parse_runtime_list(data: Dict[str, Any]) -> List[SimRuntime]:
    runtimes: List[SimRuntime] = []
    for rt in data.get("runtimes") or []:
        if not isinstance(rt, dict):
            continue
        runtimes.append(
            SimRuntime(
                identifier=str(rt.get("identifier", "")),
                name=str(rt.get("name", "")),
                version=str(rt.get("version", "")),
                is_available=bool(rt.get("isAvailable", True)),
            )
        )
    return runtimes


def trust_store_path(udid: str, devices_dir: Path = SIMULATOR_DEVICES_DIR) -> Path:
    return devices_dir.expanduser() / udid / TRUST_STORE_RELPATH


class SimctlController:
    def __init__(
        self,
        *,
        channel: CommandChannel,
        xcrun_path: str = "xcrun",
        timeout_s: float | None = None,
        devices_dir: Path = SIMULATOR_DEVICES_DIR,
    ) -> None:
        self._channel = channel
        self._xcrun_path = xcrun_path
        self._timeout_s = timeout_s
        self._devices_dir = devices_dir

    async def simctl(self, *args: str, timeout_s: float | None = None) -> CommandResult:
        cmd = " ".join([shlex.quote(self._xcrun_path), "simctl"] + [shlex.quote(a) for a in args])
        return await self._channel.execute(
            cmd, timeout_s=self._timeout_s if timeout_s is None else timeout_s
        )

    async def list_devices(self) -> List[SimulatorRecord]:
        return parse_device_list(_load_json(await self.simctl("list", "devices", "-j")))

    async def list_runtimes(self) -> List[SimRuntime]:
        return parse_runtime_list(_load_json(await self.simctl("list", "runtimes", "-j")))

    async def find_device(self, udid: str) -> Optional[SimulatorRecord]:
        for record in await self.list_devices():
            if record.udid == udid:
                return record
        return None

    async def is_booted(self, udid: str) -> bool:
        record = await self.find_device(udid)
        return record is not None and record.booted

    async def boot(self, udid: str) -> None:
        try:
            await self.simctl("boot", udid)
        except CommandExitError as e:
            if "current state: Booted" in f"{e.stderr}\n{e.stdout}":
                logger.debug("simulator %s already booted", udid)
                return
            raise

    async def wait_booted(self, udid: str, *, policy: PollPolicy) -> int:
        return await poll_until(
            lambda: self.is_booted(udid), policy=policy, description=f"simulator {udid} to boot"
        )

    async def shutdown(self, udid: str) -> None:
        try:
            await self.simctl("shutdown", udid)
        except CommandExitError as e:
            if "current state: Shutdown" in f"{e.stderr}\n{e.stdout}":
                return
            raise

    async def open_url(self, udid: str, url: str) -> CommandResult:
        return await self.simctl("openurl", udid, url)

    async def install(self, udid: str, app_path: str) -> CommandResult:
        return await self.simctl("install", udid, str(app_path), timeout_s=600.0)

    async def terminate(self, udid: str, bundle_id: str) -> CommandResult:
        return await self.simctl("terminate", udid, bundle_id)

    async def launch(
        self, udid: str, bundle_id: str, arguments: Sequence[Tuple[str, str]] = ()
    ) -> CommandResult:
        args = [f"{k}={v}" for k, v in arguments]
        return await self.simctl("launch", udid, bundle_id, *args)

    async def app_container(self, udid: str, bundle_id: str) -> str:
        res = await self.simctl("get_app_container", udid, bundle_id)
        return res.stdout.strip()

    async def add_root_cert(self, udid: str, cert_path: str) -> CommandResult:
        return await self.simctl("keychain", udid, "add-root-cert", str(cert_path))

    async def trust_store_contains(self, udid: str, sha256_hex: str) -> bool:
        db = trust_store_path(udid, self._devices_dir)
        query = f"SELECT COUNT(*) FROM tsettings WHERE hex(sha256) = '{sha256_hex.upper()}';"
        res = await self._channel.execute(
            f"sqlite3 {shlex.quote(str(db))} {shlex.quote(query)}", timeout_s=self._timeout_s
        )
        try:
            return int(res.stdout.strip() or "0") > 0
        except ValueError as e:
            raise SimctlError(f"unexpected trust store query output: {res.stdout!r}") from e
