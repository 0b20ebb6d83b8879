from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path

import tomllib

from .models import DEFAULT_EXECUTION_MODE, EXECUTION_MODES

SETTINGS_FILE_NAME = "skein.toml"


@dataclass(frozen=True)
class SkeinSettings:
    path: Path
    identity: str | None = None
    auto_merge: bool = True
    default_execution_mode: str = DEFAULT_EXECUTION_MODE
    error: str | None = None


class ConfigValidationError(ValueError):
    pass


def _as_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    if not stripped:
        return None
    return stripped


def _parse_settings(data: dict[str, object], *, path: Path) -> SkeinSettings:
    section = data.get("settings", {})
    if not isinstance(section, dict):
        raise ConfigValidationError("[settings] must be a table")

    identity = section.get("identity")
    if identity is not None and _as_str(identity) is None:
        raise ConfigValidationError("[settings].identity must be a non-empty string")

    auto_merge = section.get("auto_merge", True)
    if not isinstance(auto_merge, bool):
        raise ConfigValidationError("[settings].auto_merge must be a boolean")

    mode = section.get("default_execution_mode", DEFAULT_EXECUTION_MODE)
    mode_text = (_as_str(mode) or "").lower()
    if mode_text not in EXECUTION_MODES:
        expected = ", ".join(EXECUTION_MODES)
        raise ConfigValidationError(
            f"[settings].default_execution_mode must be one of: {expected}"
        )

    return SkeinSettings(
        path=path,
        identity=_as_str(identity),
        auto_merge=auto_merge,
        default_execution_mode=mode_text,
    )


def load_settings(state_dir: Path) -> SkeinSettings:
    """Read ``skein.toml`` from the state directory.

    Problems are reported through ``SkeinSettings.error`` with defaults for
    everything else. ``SKEIN_IDENTITY`` overrides the configured identity.
    """
    path = state_dir / SETTINGS_FILE_NAME
    settings = SkeinSettings(path=path)
    if path.exists():
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
            settings = _parse_settings(data, path=path)
        except tomllib.TOMLDecodeError as exc:
            settings = SkeinSettings(path=path, error=f"invalid TOML in {path}: {exc}")
        except ConfigValidationError as exc:
            settings = SkeinSettings(path=path, error=f"{path}: {exc}")

    override = _as_str(os.environ.get("SKEIN_IDENTITY"))
    if override is not None:
        settings = replace(settings, identity=override)
    return settings


def default_settings_text(identity: str | None = None) -> str:
    lines = ["[settings]"]
    if identity:
        lines.append(f"identity = {json.dumps(identity)}")
    lines.append("auto_merge = true")
    lines.append(f'default_execution_mode = "{DEFAULT_EXECUTION_MODE}"')
    return "\n".join(lines) + "\n"
