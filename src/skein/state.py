"""Where a skein repository keeps its state."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

STATE_DIR_NAME = ".skein"
STATE_DIR_ENV_VAR = "SKEIN_STATE_DIR"

StateSource = Literal["env", "found", "new"]


@dataclass(frozen=True)
class StateLocation:
    """A state directory and how it was chosen.

    ``env`` comes from SKEIN_STATE_DIR, ``found`` is an existing ``.skein``
    in the working directory or one of its parents, and ``new`` is the
    ``.skein`` that ``skein init`` would create in the working directory.
    """

    path: Path
    source: StateSource

    @property
    def exists(self) -> bool:
        return self.path.is_dir()

    def ensure(self) -> Path:
        self.path.mkdir(parents=True, exist_ok=True)
        return self.path


def _nearest_state_dir(start: Path) -> Path | None:
    for base in (start, *start.parents):
        candidate = base / STATE_DIR_NAME
        if candidate.is_dir():
            return candidate
    return None


def locate_state_dir(cwd: Path | None = None) -> StateLocation:
    override = os.environ.get(STATE_DIR_ENV_VAR, "").strip()
    if override:
        return StateLocation(Path(override).expanduser().resolve(), "env")

    start = (cwd or Path.cwd()).resolve()
    found = _nearest_state_dir(start)
    if found is not None:
        return StateLocation(found, "found")
    return StateLocation(start / STATE_DIR_NAME, "new")


def resolve_state_dir(cwd: Path | None = None, *, create: bool = True) -> Path:
    location = locate_state_dir(cwd)
    return location.ensure() if create else location.path
