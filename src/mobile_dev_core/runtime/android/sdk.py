"""Android SDK discovery and manifest parsing.

The SDK root comes from (in order): explicit configuration, ``ANDROID_HOME``,
the legacy ``ANDROID_SDK_ROOT``, then well-known install locations. A missing
SDK is reported by the requirement pipeline; it only becomes an exception
(``AndroidSdkNotFoundError``) when a tool inside the SDK is actually needed.

Parsers here are pure functions over tool stdout so they can be tested
without an SDK:

  * ``sdkmanager --list``  -> ``AndroidPackage`` rows (installed section)
  * ``avdmanager list avd`` -> ``AvdListing`` blocks (+ their ``config.ini``)
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from mobile_dev_core.common.mappings import CaseInsensitiveStringMap
from mobile_dev_core.common.process import CommandChannel
from mobile_dev_core.common.utils import replace_tokens
from mobile_dev_core.common.version import Version
from mobile_dev_core.config import CoreSettings

logger = logging.getLogger(__name__)

ANDROID_HOME_ENV = "ANDROID_HOME"
ANDROID_SDK_ROOT_ENV = "ANDROID_SDK_ROOT"

_IS_WINDOWS = sys.platform.startswith("win")
_EXE = ".exe" if _IS_WINDOWS else ""
_BAT = ".bat" if _IS_WINDOWS else ""

_API_LEVEL_RE = re.compile(r"android-(?P<level>[^;/\-]+)")


class AndroidSdkNotFoundError(RuntimeError):
    """Raised when an SDK tool is required but no SDK root can be located."""


def sdk_root_candidates(
    settings: CoreSettings, env: Optional[Mapping[str, str]] = None
) -> List[Path]:
    """Candidate SDK roots in lookup order.

    Configured locations may reference environment variables as ``${NAME}``;
    locations naming an unset variable are dropped.
    """

    environ = os.environ if env is None else env
    raw: List[str] = []
    if settings.android_sdk_root:
        raw.append(replace_tokens(settings.android_sdk_root, environ))
    for name in (ANDROID_HOME_ENV, ANDROID_SDK_ROOT_ENV):
        value = (environ.get(name) or "").strip()
        if value:
            raw.append(value)
    raw.extend(replace_tokens(p, environ) for p in settings.android_sdk_search_paths)
    return [Path(p).expanduser() for p in raw if "${" not in p]


def discover_sdk_root(
    settings: CoreSettings, env: Optional[Mapping[str, str]] = None
) -> Optional[Path]:
    for candidate in sdk_root_candidates(settings, env):
        if candidate.is_dir():
            return candidate
    return None


@dataclass(frozen=True)
class AndroidSdkPaths:
    root: Path

    @property
    def adb(self) -> Path:
        return self.root / "platform-tools" / f"adb{_EXE}"

    @property
    def emulator(self) -> Path:
        return self.root / "emulator" / f"emulator{_EXE}"

    def _cmdline_tool(self, name: str) -> Path:
        latest = self.root / "cmdline-tools" / "latest" / "bin" / f"{name}{_BAT}"
        if latest.exists():
            return latest
        tools_dir = self.root / "cmdline-tools"
        if tools_dir.is_dir():
            for versioned in sorted(tools_dir.iterdir(), reverse=True):
                candidate = versioned / "bin" / f"{name}{_BAT}"
                if candidate.exists():
                    return candidate
        # Legacy SDK tools layout.
        legacy = self.root / "tools" / "bin" / f"{name}{_BAT}"
        if legacy.exists():
            return legacy
        return latest

    @property
    def sdkmanager(self) -> Path:
        return self._cmdline_tool("sdkmanager")

    @property
    def avdmanager(self) -> Path:
        return self._cmdline_tool("avdmanager")


def parse_api_level(text: str) -> Union[Version, str, None]:
    """``android-34`` -> Version(34); ``android-UpsideDownCake`` -> codename."""

    m = _API_LEVEL_RE.search(text or "")
    if m is None:
        return None
    level = m.group("level")
    return Version.parse(level) or level


@dataclass(frozen=True)
class AndroidPackage:
    path: str
    version: str
    description: str = ""
    location: str = ""

    @property
    def is_platform(self) -> bool:
        return self.path.startswith("platforms;")

    @property
    def is_system_image(self) -> bool:
        return self.path.startswith("system-images;")

    @property
    def api_level(self) -> Union[Version, str, None]:
        if not (self.is_platform or self.is_system_image):
            return None
        return parse_api_level(self.path.split(";", 2)[1])

    @property
    def image_tag(self) -> Optional[str]:
        parts = self.path.split(";")
        return parts[2] if self.is_system_image and len(parts) >= 4 else None

    @property
    def image_abi(self) -> Optional[str]:
        parts = self.path.split(";")
        return parts[3] if self.is_system_image and len(parts) >= 4 else None


def parse_sdkmanager_list(stdout: str) -> List[AndroidPackage]:
    """Parse the *Installed packages* table of ``sdkmanager --list``."""

    packages: List[AndroidPackage] = []
    in_installed = False
    for raw_line in (stdout or "").splitlines():
        line = raw_line.strip()
        lowered = line.lower()
        if lowered.startswith("installed packages"):
            in_installed = True
            continue
        if lowered.startswith("available packages") or lowered.startswith("available updates"):
            in_installed = False
            continue
        if not in_installed or "|" not in line:
            continue
        cols = [c.strip() for c in line.split("|")]
        if not cols[0] or cols[0].lower() == "path" or set(cols[0]) <= {"-"}:
            continue
        while len(cols) < 4:
            cols.append("")
        packages.append(
            AndroidPackage(path=cols[0], version=cols[1], description=cols[2], location=cols[3])
        )
    return packages


def find_package(packages: Sequence[AndroidPackage], path: str) -> Optional[AndroidPackage]:
    for pkg in packages:
        if pkg.path == path:
            return pkg
    return None


@dataclass(frozen=True)
class AvdListing:
    name: str
    path: Optional[Path]
    header: CaseInsensitiveStringMap
    config: CaseInsensitiveStringMap


def parse_avd_list(stdout: str) -> List[CaseInsensitiveStringMap]:
    """Split ``avdmanager list avd`` output into one key/value map per AVD."""

    blocks: List[CaseInsensitiveStringMap] = []
    current: List[str] = []

    def _flush() -> None:
        if current:
            block = CaseInsensitiveStringMap.from_string("\n".join(current))
            if block.get("name"):
                blocks.append(block)
            current.clear()

    for raw_line in (stdout or "").splitlines():
        line = raw_line.strip()
        if line.startswith("The following Android Virtual Devices could not be loaded"):
            break
        if line and set(line) <= {"-"}:
            _flush()
            continue
        if line.startswith("Available Android Virtual Devices"):
            continue
        current.append(line)
    _flush()
    return blocks


def read_avd_config(avd_path: Optional[Path]) -> CaseInsensitiveStringMap:
    if avd_path is None:
        return CaseInsensitiveStringMap()
    config_ini = avd_path / "config.ini"
    try:
        text = config_ini.read_text(encoding="utf-8", errors="replace")
    except OSError:
        logger.debug("no readable config.ini at %s", config_ini)
        return CaseInsensitiveStringMap()
    return CaseInsensitiveStringMap.from_string(text)


class AndroidSdk:
    """Manifest queries against the SDK command-line tools."""

    def __init__(
        self,
        *,
        channel: CommandChannel,
        settings: CoreSettings,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._channel = channel
        self._settings = settings
        self._env = env

    @property
    def root(self) -> Optional[Path]:
        return discover_sdk_root(self._settings, self._env)

    def paths(self) -> AndroidSdkPaths:
        root = self.root
        if root is None:
            tried = ", ".join(str(p) for p in sdk_root_candidates(self._settings, self._env))
            raise AndroidSdkNotFoundError(
                f"Android SDK root not found (set {ANDROID_HOME_ENV}); tried: {tried or '<none>'}"
            )
        return AndroidSdkPaths(root=root)

    async def sdkmanager_version(self) -> str:
        tool = shlex.quote(str(self.paths().sdkmanager))
        res = await self._channel.execute(f"{tool} --version")
        return res.stdout.strip().splitlines()[0] if res.stdout.strip() else ""

    async def list_installed_packages(self) -> List[AndroidPackage]:
        tool = shlex.quote(str(self.paths().sdkmanager))
        res = await self._channel.execute(f"{tool} --list")
        return parse_sdkmanager_list(res.stdout)

    async def list_avds(self) -> List[AvdListing]:
        tool = shlex.quote(str(self.paths().avdmanager))
        res = await self._channel.execute(f"{tool} list avd")
        listings: List[AvdListing] = []
        for block in parse_avd_list(res.stdout):
            raw_path = block.get("path")
            avd_path = Path(raw_path) if raw_path else None
            listings.append(
                AvdListing(
                    name=block.get("name") or "",
                    path=avd_path,
                    header=block,
                    config=read_avd_config(avd_path),
                )
            )
        return listings
