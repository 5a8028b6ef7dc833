"""Runtime settings.

Defaults cover a stock developer machine. A YAML or JSON file can override
any field; the file is named by ``MOBILE_DEV_CORE_CONFIG`` or passed
explicitly, and is validated against ``resources/config.schema.json``.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from jsonschema import Draft202012Validator

from mobile_dev_core.common.retry import PollPolicy

CONFIG_ENV_VAR = "MOBILE_DEV_CORE_CONFIG"

_DEFAULT_SDK_SEARCH_PATHS: Tuple[str, ...] = (
    "~/Library/Android/sdk",
    "~/Android/Sdk",
    "${LOCALAPPDATA}/Android/Sdk",
    "/opt/android-sdk",
    "/usr/local/lib/android/sdk",
)


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class CoreSettings:
    android_sdk_root: Optional[str] = None
    android_sdk_search_paths: Tuple[str, ...] = _DEFAULT_SDK_SEARCH_PATHS
    command_timeout_s: float = 120.0
    boot_timeout_s: float = 300.0
    boot_poll_interval_s: float = 2.0
    boot_poll_backoff: float = 1.5
    boot_poll_max_interval_s: float = 10.0
    shutdown_timeout_s: float = 60.0
    android_min_api_level: str = "28"
    android_supported_images: Tuple[str, ...] = ("google_apis", "google_apis_playstore", "default")
    android_supported_abis: Tuple[str, ...] = ("x86_64", "arm64-v8a")
    ios_min_runtime: str = "13.0"
    emulator_port_start: int = 5554
    emulator_port_end: int = 5584
    source: Optional[str] = field(default=None, compare=False)

    def boot_poll_policy(self) -> PollPolicy:
        return PollPolicy(
            interval_s=self.boot_poll_interval_s,
            timeout_s=self.boot_timeout_s,
            backoff=self.boot_poll_backoff,
            max_interval_s=self.boot_poll_max_interval_s,
        )

    def shutdown_poll_policy(self) -> PollPolicy:
        return PollPolicy(
            interval_s=self.boot_poll_interval_s,
            timeout_s=self.shutdown_timeout_s,
            backoff=1.0,
            max_interval_s=self.boot_poll_max_interval_s,
        )


def load_schema() -> Dict[str, Any]:
    text = resources.files("mobile_dev_core.resources").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    return json.loads(text)


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    suffix = path.suffix.lower()
    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        elif suffix == ".json":
            data = json.loads(path.read_text(encoding="utf-8"))
        else:
            raise ConfigError(f"unsupported config file extension: {path}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"could not parse config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"top-level config must be an object: {path}")
    return data


def validate_config(data: Mapping[str, Any], *, where: str) -> None:
    validator = Draft202012Validator(load_schema())
    errors = sorted(validator.iter_errors(dict(data)), key=lambda e: list(e.path))
    if errors:
        msgs = []
        for e in errors[:20]:
            loc = "/".join(str(p) for p in e.path) or "<root>"
            msgs.append(f"- {where}:{loc}: {e.message}")
        raise ConfigError("invalid configuration:\n" + "\n".join(msgs))


def settings_from_mapping(data: Mapping[str, Any], *, source: Optional[str] = None) -> CoreSettings:
    validate_config(data, where=source or "<mapping>")
    known = {f.name for f in fields(CoreSettings)}
    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            continue
        kwargs[key] = tuple(value) if isinstance(value, list) else value
    settings = replace(CoreSettings(), source=source, **kwargs)
    if settings.emulator_port_end < settings.emulator_port_start:
        raise ConfigError("emulator_port_end must be >= emulator_port_start")
    return settings


def load_settings(
    path: Path | str | None = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> CoreSettings:
    """Load settings from ``path``, ``$MOBILE_DEV_CORE_CONFIG`` or defaults."""

    environ = os.environ if env is None else env
    raw = path if path is not None else environ.get(CONFIG_ENV_VAR)
    if not raw:
        return CoreSettings()
    config_path = Path(raw).expanduser()
    return settings_from_mapping(_load_file(config_path), source=str(config_path))
