"""Verify that this machine can build and run apps for a mobile platform.

  mobile-dev-setup -p android [-l 34] [--fail-fast] [--json]
  mobile-dev-setup -p ios
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from mobile_dev_core.common.process import CommandChannel, ShellCommandChannel
from mobile_dev_core.common.utils import Platform
from mobile_dev_core.common.version import Version
from mobile_dev_core.config import ConfigError, CoreSettings, load_settings
from mobile_dev_core.requirements.android import android_requirement_group
from mobile_dev_core.requirements.ios import ios_requirement_group
from mobile_dev_core.requirements.model import AggregateResult, RequirementGroup
from mobile_dev_core.requirements.processor import (
    LoggingReportSink,
    ProcessorOptions,
    RequirementProcessor,
    RequirementsNotMetError,
    format_failures,
)

logger = logging.getLogger(__name__)

_SUPPORTED_PLATFORMS = (Platform.android.value, Platform.ios.value)


def build_groups(
    platform: Platform,
    *,
    channel: CommandChannel,
    settings: CoreSettings,
    api_level: Optional[str] = None,
) -> List[RequirementGroup]:
    if platform is Platform.android:
        return [android_requirement_group(channel=channel, settings=settings, api_level=api_level)]
    if platform is Platform.ios:
        return [ios_requirement_group(channel=channel, settings=settings)]
    raise ValueError(f"no requirements defined for platform {platform.value!r}")


async def run_setup(
    platform: Platform,
    *,
    channel: CommandChannel,
    settings: CoreSettings,
    api_level: Optional[str] = None,
    fail_fast: bool = False,
) -> AggregateResult:
    groups = build_groups(platform, channel=channel, settings=settings, api_level=api_level)
    processor = RequirementProcessor(sink=LoggingReportSink())
    return await processor.execute(groups, ProcessorOptions(fail_fast=fail_fast))


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mobile-dev-setup",
        description="Verify mobile development prerequisites for a platform.",
    )
    parser.add_argument(
        "-p", "--platform", required=True, choices=_SUPPORTED_PLATFORMS, help="Target platform"
    )
    parser.add_argument(
        "-l",
        "--apilevel",
        default=None,
        help="Android API level to verify (default: any level >= the configured minimum)",
    )
    parser.add_argument("--fail-fast", action="store_true", help="Stop at the first unmet requirement")
    parser.add_argument("--json", action="store_true", help="Print the result ledger as JSON")
    parser.add_argument("--config", type=Path, default=None, help="YAML/JSON settings file")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args(argv)

    if args.apilevel is not None:
        if args.platform != Platform.android.value:
            parser.error("--apilevel is only supported for the android platform")
        if Version.parse(args.apilevel) is None:
            parser.error(f"invalid API level: {args.apilevel!r}")
    return args


def main(argv: Optional[Sequence[str]] = None, *, channel: Optional[CommandChannel] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="[%(levelname)s] %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        raise SystemExit(f"Invalid configuration:\n{e}")

    channel = channel or ShellCommandChannel(default_timeout_s=settings.command_timeout_s)
    platform = Platform(args.platform)
    try:
        result = asyncio.run(
            run_setup(
                platform,
                channel=channel,
                settings=settings,
                api_level=args.apilevel,
                fail_fast=args.fail_fast,
            )
        )
    except RequirementsNotMetError as e:
        result = e.result

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    elif result.all_fulfilled:
        print(f"OK: all {platform.value} requirements are met")
    else:
        print(format_failures(result))
    return 0 if result.all_fulfilled else 1


if __name__ == "__main__":
    raise SystemExit(main())
