from __future__ import annotations

from pathlib import Path

import pytest

from race_control.sync.config import HOME_ENV_VAR, SERVER_URL_ENV_VAR


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep every test away from the real ~/.race-control directory."""
    home = tmp_path / "race-control-home"
    monkeypatch.setenv(HOME_ENV_VAR, str(home))
    monkeypatch.delenv(SERVER_URL_ENV_VAR, raising=False)
    return home
