from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def state_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / ".skein"
    path.mkdir()
    monkeypatch.setenv("SKEIN_STATE_DIR", str(path))
    monkeypatch.delenv("SKEIN_IDENTITY", raising=False)
    monkeypatch.delenv("SKEIN_OUTPUT", raising=False)
    monkeypatch.chdir(tmp_path)
    return path
