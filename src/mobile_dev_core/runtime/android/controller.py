"""Android emulator controller.

Thin wrapper around ``adb`` and ``emulator`` that targets one emulator
instance by console port (``adb -s emulator-<port>``). All commands go
through a ``CommandChannel`` so they can be recorded or faked in tests.

Notes
-----
* Only emulator instances are addressed; physical devices are out of scope.
* Lifecycle waits use ``poll_until`` so their schedule is bounded and testable.
"""

from __future__ import annotations

import logging
import shlex
from typing import List, Optional, Sequence, Set, Tuple

from mobile_dev_core.common.process import CommandChannel, CommandError, CommandResult
from mobile_dev_core.common.retry import PollPolicy, poll_until
from mobile_dev_core.config import CoreSettings
from mobile_dev_core.runtime.android.sdk import AndroidSdkPaths

logger = logging.getLogger(__name__)

_SERIAL_PREFIX = "emulator-"


class AndroidControllerError(RuntimeError):
    """Raised when an adb/emulator operation cannot be completed."""


def parse_component(component: str) -> Tuple[Optional[str], Optional[str]]:
    """Parse Android component string 'pkg/.Act' or 'pkg/pkg.Act'."""

    component = str(component).strip()
    if "/" not in component:
        return None, None
    pkg, activity = component.split("/", 1)
    pkg = pkg.strip()
    activity = activity.strip()
    if not pkg or not activity:
        return None, None
    if activity.startswith("."):
        activity = pkg + activity
    return pkg, activity


def serial_for_port(port: int) -> str:
    return f"{_SERIAL_PREFIX}{int(port)}"


def parse_emulator_ports(adb_devices_stdout: str) -> List[int]:
    """Ports of the emulator serials listed by ``adb devices``."""

    ports: List[int] = []
    for raw_line in (adb_devices_stdout or "").splitlines():
        parts = raw_line.split()
        if len(parts) < 2 or not parts[0].startswith(_SERIAL_PREFIX):
            continue
        try:
            ports.append(int(parts[0][len(_SERIAL_PREFIX):]))
        except ValueError:
            continue
    return ports


class AndroidController:
    """Per-port adb/emulator commands used by ``AndroidDevice``."""

    def __init__(
        self,
        *,
        channel: CommandChannel,
        adb_path: str = "adb",
        emulator_path: str = "emulator",
        timeout_s: float | None = None,
        port_range: Tuple[int, int] = (5554, 5584),
    ) -> None:
        self._channel = channel
        self._adb_path = adb_path
        self._emulator_path = emulator_path
        self._timeout_s = timeout_s
        self._port_range = port_range

    @classmethod
    def for_sdk(
        cls, paths: AndroidSdkPaths, *, channel: CommandChannel, settings: CoreSettings
    ) -> "AndroidController":
        return cls(
            channel=channel,
            adb_path=str(paths.adb),
            emulator_path=str(paths.emulator),
            timeout_s=settings.command_timeout_s,
            port_range=(settings.emulator_port_start, settings.emulator_port_end),
        )

    @property
    def channel(self) -> CommandChannel:
        return self._channel

    def _base_cmd(self, port: Optional[int] = None) -> str:
        cmd = shlex.quote(self._adb_path)
        if port is not None:
            cmd += f" -s {serial_for_port(port)}"
        return cmd

    async def adb(
        self, *args: str, port: Optional[int] = None, timeout_s: float | None = None
    ) -> CommandResult:
        cmd = " ".join([self._base_cmd(port)] + [shlex.quote(a) for a in args])
        return await self._channel.execute(
            cmd, timeout_s=self._timeout_s if timeout_s is None else timeout_s
        )

    async def adb_shell(
        self, command: str, *, port: int, timeout_s: float | None = None
    ) -> CommandResult:
        return await self.adb("shell", command, port=port, timeout_s=timeout_s)

    # ------------------------------ discovery ---------------------------------

    async def running_emulator_ports(self) -> List[int]:
        res = await self.adb("devices")
        return parse_emulator_ports(res.stdout)

    async def emulator_avd_name(self, port: int) -> Optional[str]:
        """Name of the AVD running on ``port`` (``adb emu avd name``), or None."""

        try:
            res = await self.adb("emu", "avd", "name", port=port, timeout_s=10.0)
        except CommandError as e:
            logger.debug("emu avd name failed on port %s: %s", port, e)
            return None
        for line in res.stdout.splitlines():
            line = line.strip()
            if line and line != "OK":
                return line
        return None

    async def find_running_emulator(self, avd_name: str) -> Optional[int]:
        for port in await self.running_emulator_ports():
            name = await self.emulator_avd_name(port)
            if name is not None and name == avd_name:
                return port
        return None

    def next_free_port(self, used: Sequence[int]) -> int:
        # Console ports are even; odd port+1 is the adb port.
        taken: Set[int] = set(used)
        start, end = self._port_range
        first = start if start % 2 == 0 else start + 1
        for port in range(first, end + 1, 2):
            if port not in taken:
                return port
        raise AndroidControllerError(f"no free emulator port in range {start}..{end}")

    # ------------------------------ lifecycle ---------------------------------

    async def start_emulator(self, avd_name: str, *, port: int, writable_system: bool) -> int:
        argv = [self._emulator_path, f"@{avd_name}", "-port", str(port)]
        if writable_system:
            argv.append("-writable-system")
        logger.info("starting emulator %s on port %s (writable_system=%s)", avd_name, port, writable_system)
        return await self._channel.spawn(argv)

    async def is_boot_completed(self, port: int) -> bool:
        try:
            res = await self.adb_shell("getprop sys.boot_completed", port=port, timeout_s=10.0)
        except CommandError:
            return False
        return res.stdout.strip() == "1"

    async def wait_for_boot(self, port: int, *, policy: PollPolicy) -> int:
        return await poll_until(
            lambda: self.is_boot_completed(port),
            policy=policy,
            description=f"{serial_for_port(port)} to finish booting",
        )

    async def is_running(self, port: int) -> bool:
        try:
            return port in await self.running_emulator_ports()
        except CommandError:
            return False

    async def wait_for_stop(self, port: int, *, policy: PollPolicy) -> int:
        async def _stopped() -> bool:
            return not await self.is_running(port)

        return await poll_until(
            _stopped, policy=policy, description=f"{serial_for_port(port)} to stop"
        )

    async def reboot(self, port: int) -> CommandResult:
        return await self.adb("reboot", port=port)

    async def stop_emulator(self, port: int) -> CommandResult:
        return await self.adb("emu", "kill", port=port)

    # ------------------------------ privileged --------------------------------

    async def root(self, port: int) -> CommandResult:
        res = await self.adb("root", port=port)
        # adbd restarts after `adb root`; wait until the device is reachable again.
        await self.adb("wait-for-device", port=port)
        return res

    async def remount(self, port: int) -> bool:
        """Remount system partitions read-write; True when a reboot is required."""

        res = await self.adb("remount", port=port)
        out = f"{res.stdout}\n{res.stderr}".lower()
        return "reboot" in out and "remount succeeded" not in out

    async def push_file(self, src: str, dst: str, *, port: int) -> CommandResult:
        return await self.adb("push", str(src), str(dst), port=port)

    async def root_shell(self, command: str, *, port: int) -> CommandResult:
        return await self.adb_shell(f"su 0 {command}", port=port)

    # ------------------------------ apps --------------------------------------

    async def list_packages(self, package: str, *, port: int) -> List[str]:
        res = await self.adb_shell(f"pm list packages {shlex.quote(package)}", port=port)
        out: List[str] = []
        for line in res.stdout.splitlines():
            line = line.strip()
            if line.startswith("package:"):
                out.append(line[len("package:"):])
        return out

    async def install_apk(self, apk_path: str, *, port: int) -> CommandResult:
        return await self.adb("install", "-r", "-t", str(apk_path), port=port, timeout_s=600.0)

    async def start_activity(
        self,
        component: str,
        *,
        port: int,
        extras: Sequence[Tuple[str, str]] = (),
    ) -> CommandResult:
        parts = ["am", "start", "-S", "-n", shlex.quote(component)]
        for key, value in extras:
            parts += ["--es", shlex.quote(key), shlex.quote(value)]
        return await self.adb_shell(" ".join(parts), port=port)

    async def view_url(self, url: str, *, port: int) -> CommandResult:
        return await self.adb_shell(
            f"am start -a android.intent.action.VIEW -d {shlex.quote(url)}", port=port
        )
