from __future__ import annotations

import re
import tempfile
from enum import Enum
from pathlib import Path
from typing import Mapping

TEMP_DIR_PREFIX = "mobile-dev-core-"

_TOKEN_RE = re.compile(r"\$\{(?P<name>[^}]+)\}")


class Platform(str, Enum):
    desktop = "desktop"
    ios = "ios"
    android = "android"


class TempDirectoryError(RuntimeError):
    pass


def replace_tokens(template: str, tokens: Mapping[str, str]) -> str:
    """Replace ``${name}`` tokens; unknown tokens are left as-is."""

    def _sub(m: re.Match[str]) -> str:
        name = m.group("name")
        if name in tokens:
            return str(tokens[name])
        return m.group(0)

    return _TOKEN_RE.sub(_sub, template)


def format_message(template: str, *params: object) -> str:
    """Fill positional ``%s`` placeholders in order.

    Placeholders without a matching parameter are left untouched, extra
    parameters are ignored.
    """

    parts = template.split("%s")
    if len(parts) == 1 or not params:
        return template
    out = [parts[0]]
    for idx, tail in enumerate(parts[1:]):
        out.append(str(params[idx]) if idx < len(params) else "%s")
        out.append(tail)
    return "".join(out)


def create_temp_directory(prefix: str = TEMP_DIR_PREFIX) -> Path:
    base = Path(tempfile.gettempdir())
    try:
        return Path(tempfile.mkdtemp(prefix=prefix, dir=base))
    except OSError as e:
        raise TempDirectoryError(f"Could not create a temp folder at {base / prefix}: {e}") from e
