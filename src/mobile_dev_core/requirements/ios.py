"""iOS environment requirements (host OS, Xcode, simctl, simulator runtimes)."""

from __future__ import annotations

import logging
import platform
from typing import Callable, Optional

from mobile_dev_core.common.process import CommandChannel, CommandError
from mobile_dev_core.common.version import (
    CodenameComparisonError,
    Version,
    compare,
    same_or_newer,
)
from mobile_dev_core.config import CoreSettings
from mobile_dev_core.messages import Messages, default_messages
from mobile_dev_core.requirements.model import CheckFn, CheckOutcome, Requirement, RequirementGroup
from mobile_dev_core.runtime.ios.simctl import SimctlController

logger = logging.getLogger(__name__)


def _is_ios_runtime(name: str) -> bool:
    return name.split(" ", 1)[0].lower() == "ios"


def ios_requirement_group(
    *,
    channel: CommandChannel,
    settings: CoreSettings,
    messages: Optional[Messages] = None,
    host_system: Callable[[], str] = platform.system,
    host_release: Callable[[], str] = lambda: platform.mac_ver()[0],
) -> RequirementGroup:
    msgs = messages or default_messages()
    simctl = SimctlController(channel=channel, timeout_s=settings.command_timeout_s)

    async def check_macos() -> CheckOutcome:
        system = host_system()
        if system != "Darwin":
            return CheckOutcome.unfulfilled(msgs.get("ios.macos.unfulfilled", system or "unknown"))
        return CheckOutcome.fulfilled(msgs.get("ios.macos.fulfilled", host_release() or "unknown"))

    async def check_xcode() -> CheckOutcome:
        try:
            res = await channel.execute("xcode-select -p", timeout_s=settings.command_timeout_s)
        except CommandError as e:
            return CheckOutcome.unfulfilled(msgs.get("ios.xcode.unfulfilled", e))
        return CheckOutcome.fulfilled(msgs.get("ios.xcode.fulfilled", res.stdout.strip()))

    async def check_simctl() -> CheckOutcome:
        try:
            await channel.execute("xcrun --find simctl", timeout_s=settings.command_timeout_s)
        except CommandError as e:
            return CheckOutcome.unfulfilled(msgs.get("ios.simctl.unfulfilled", e))
        return CheckOutcome.fulfilled(msgs.get("ios.simctl.fulfilled"))

    async def check_runtimes() -> CheckOutcome:
        minimum = Version.parse(settings.ios_min_runtime) or settings.ios_min_runtime
        candidates = []
        for rt in await simctl.list_runtimes():
            if not rt.is_available or not _is_ios_runtime(rt.name):
                continue
            version = Version.parse(rt.version)
            if version is None:
                continue
            try:
                if same_or_newer(version, minimum):
                    candidates.append((version, rt))
            except CodenameComparisonError:
                continue
        if not candidates:
            return CheckOutcome.unfulfilled(msgs.get("ios.runtimes.unfulfilled", minimum))
        best = candidates[0]
        for candidate in candidates[1:]:
            if compare(candidate[0], best[0]) > 0:
                best = candidate
        return CheckOutcome.fulfilled(msgs.get("ios.runtimes.fulfilled", best[1].name))

    def _requirement(key: str, check: CheckFn) -> Requirement:
        fallback = msgs.get_optional(f"ios.{key}.unfulfilled") or ""
        return Requirement(
            title=msgs.get(f"ios.{key}.title"),
            check=check,
            unfulfilled_message="" if "%s" in fallback else fallback,
            supplemental_message=msgs.get_optional(f"ios.{key}.supplemental"),
        )

    xcode = _requirement("xcode", check_xcode).with_children(_requirement("simctl", check_simctl))

    return RequirementGroup(
        title=msgs.get("ios.group_title"),
        requirements=(
            _requirement("macos", check_macos),
            xcode,
            _requirement("runtimes", check_runtimes),
        ),
    )
