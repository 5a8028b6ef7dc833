"""Android environment requirements.

Order matters: the SDK root check is the parent of every SDK tool check, so
under fail-fast nothing inside the SDK is probed when the root is missing.
Without fail-fast the children report ``SKIPPED`` instead.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable, List, Mapping, Optional

from mobile_dev_core.common.process import CommandChannel, CommandError
from mobile_dev_core.common.version import (
    CodenameComparisonError,
    Version,
    VersionLike,
    compare,
    same,
    same_or_newer,
)
from mobile_dev_core.config import CoreSettings
from mobile_dev_core.messages import Messages, default_messages
from mobile_dev_core.requirements.model import CheckFn, CheckOutcome, Requirement, RequirementGroup
from mobile_dev_core.runtime.android.sdk import AndroidPackage, AndroidSdk, find_package

logger = logging.getLogger(__name__)


def _safe_compare(a: VersionLike, b: VersionLike) -> int:
    try:
        return compare(a, b)
    except CodenameComparisonError:
        return 0


def _api_matches(level: VersionLike, wanted: VersionLike, *, exact: bool) -> bool:
    try:
        return same(level, wanted) if exact else same_or_newer(level, wanted)
    except CodenameComparisonError:
        return False


def _newest_first(packages: List[AndroidPackage]) -> List[AndroidPackage]:
    return sorted(
        packages,
        key=functools.cmp_to_key(lambda a, b: _safe_compare(a.api_level, b.api_level)),
        reverse=True,
    )


class AndroidEnvironment:
    """Lazily queried SDK state shared by the Android checks."""

    def __init__(
        self,
        *,
        channel: CommandChannel,
        settings: CoreSettings,
        api_level: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.channel = channel
        self.settings = settings
        self.api_level = api_level
        self.sdk = AndroidSdk(channel=channel, settings=settings, env=env)
        self._packages: Optional[List[AndroidPackage]] = None

    async def installed_packages(self) -> List[AndroidPackage]:
        if self._packages is None:
            self._packages = await self.sdk.list_installed_packages()
        return self._packages

    def wanted_api_level(self) -> VersionLike:
        raw = self.api_level or self.settings.android_min_api_level
        return Version.parse(raw) or raw

    async def platforms(self) -> List[AndroidPackage]:
        wanted = self.wanted_api_level()
        exact = self.api_level is not None
        return _newest_first(
            [
                p
                for p in await self.installed_packages()
                if p.is_platform
                and p.api_level is not None
                and _api_matches(p.api_level, wanted, exact=exact)
            ]
        )

    async def system_images(self) -> List[AndroidPackage]:
        wanted = self.wanted_api_level()
        exact = self.api_level is not None
        images = [
            p
            for p in await self.installed_packages()
            if p.is_system_image
            and p.api_level is not None
            and p.image_tag in self.settings.android_supported_images
            and p.image_abi in self.settings.android_supported_abis
            and _api_matches(p.api_level, wanted, exact=exact)
        ]
        return _newest_first(images)


def _requires_sdk(env: AndroidEnvironment, messages: Messages) -> Callable[[CheckFn], CheckFn]:
    def decorator(fn: CheckFn) -> CheckFn:
        @functools.wraps(fn)
        async def wrapper() -> CheckOutcome:
            if env.sdk.root is None:
                return CheckOutcome.skipped(messages.get("android.sdk_root.unfulfilled"))
            return await fn()

        return wrapper

    return decorator


def android_requirement_group(
    *,
    channel: CommandChannel,
    settings: CoreSettings,
    api_level: Optional[str] = None,
    messages: Optional[Messages] = None,
    env: Optional[Mapping[str, str]] = None,
) -> RequirementGroup:
    msgs = messages or default_messages()
    android = AndroidEnvironment(channel=channel, settings=settings, api_level=api_level, env=env)
    needs_sdk = _requires_sdk(android, msgs)

    async def check_java() -> CheckOutcome:
        try:
            res = await channel.execute("java -version", timeout_s=settings.command_timeout_s)
        except CommandError as e:
            logger.debug("java probe failed: %s", e)
            return CheckOutcome.unfulfilled(msgs.get("android.java.unfulfilled"))
        # java prints its version banner to stderr.
        banner = (res.stderr.strip() or res.stdout.strip()).splitlines()
        return CheckOutcome.fulfilled(msgs.get("android.java.fulfilled", banner[0] if banner else "java"))

    async def check_sdk_root() -> CheckOutcome:
        root = android.sdk.root
        if root is None:
            return CheckOutcome.unfulfilled(msgs.get("android.sdk_root.unfulfilled"))
        return CheckOutcome.fulfilled(msgs.get("android.sdk_root.fulfilled", root))

    @needs_sdk
    async def check_cmdline_tools() -> CheckOutcome:
        paths = android.sdk.paths()
        if not paths.sdkmanager.exists():
            return CheckOutcome.unfulfilled(msgs.get("android.cmdline_tools.unfulfilled", paths.root))
        version = await android.sdk.sdkmanager_version()
        return CheckOutcome.fulfilled(msgs.get("android.cmdline_tools.fulfilled", version))

    def _package_check(path: str, key: str) -> CheckFn:
        @needs_sdk
        async def check() -> CheckOutcome:
            pkg = find_package(await android.installed_packages(), path)
            if pkg is None:
                return CheckOutcome.unfulfilled(msgs.get(f"android.{key}.unfulfilled"))
            return CheckOutcome.fulfilled(msgs.get(f"android.{key}.fulfilled", pkg.version))

        return check

    @needs_sdk
    async def check_platform_api() -> CheckOutcome:
        platforms = await android.platforms()
        if not platforms:
            return CheckOutcome.unfulfilled(
                msgs.get("android.platform_api.unfulfilled", android.wanted_api_level())
            )
        return CheckOutcome.fulfilled(msgs.get("android.platform_api.fulfilled", platforms[0].path))

    @needs_sdk
    async def check_emulator_images() -> CheckOutcome:
        images = await android.system_images()
        if not images:
            return CheckOutcome.unfulfilled(
                msgs.get(
                    "android.emulator_images.unfulfilled",
                    ", ".join(settings.android_supported_images),
                    ", ".join(settings.android_supported_abis),
                    android.wanted_api_level(),
                )
            )
        return CheckOutcome.fulfilled(msgs.get("android.emulator_images.fulfilled", images[0].path))

    def _requirement(key: str, check: CheckFn) -> Requirement:
        fallback = msgs.get_optional(f"android.{key}.unfulfilled") or ""
        return Requirement(
            title=msgs.get(f"android.{key}.title"),
            check=check,
            unfulfilled_message="" if "%s" in fallback else fallback,
            supplemental_message=msgs.get_optional(f"android.{key}.supplemental"),
        )

    sdk_root = _requirement("sdk_root", check_sdk_root).with_children(
        _requirement("cmdline_tools", check_cmdline_tools),
        _requirement("platform_tools", _package_check("platform-tools", "platform_tools")),
        _requirement("emulator", _package_check("emulator", "emulator")),
        _requirement("platform_api", check_platform_api),
        _requirement("emulator_images", check_emulator_images),
    )

    return RequirementGroup(
        title=msgs.get("android.group_title"),
        requirements=(_requirement("java", check_java), sdk_root),
    )
