"""Race control configuration management"""
import os
from pathlib import Path
from typing import Any

import toml  # type: ignore[import-untyped]

DEFAULT_SERVER_URL = "http://localhost:3000"
DEFAULT_TIMEOUT_SECONDS = 10.0
SERVER_URL_ENV_VAR = "RACE_CONTROL_SERVER_URL"
HOME_ENV_VAR = "RACE_CONTROL_HOME"


def race_control_dir() -> Path:
    """Return the base directory (~/.race-control unless overridden)."""
    override = os.environ.get(HOME_ENV_VAR, "").strip()
    if override:
        return Path(override)
    return Path.home() / ".race-control"


class RaceControlConfig:
    """Manage race control configuration stored in config.toml"""

    def __init__(self, config_dir: Path | None = None) -> None:
        self.config_dir = config_dir or race_control_dir()
        self.config_file = self.config_dir / "config.toml"

    def _load(self) -> dict[str, Any]:
        if not self.config_file.exists():
            return {}
        try:
            config = toml.load(self.config_file)
        except (toml.TomlDecodeError, OSError):
            return {}
        return config if isinstance(config, dict) else {}

    def _section(self, name: str) -> dict[str, Any]:
        section = self._load().get(name)
        return section if isinstance(section, dict) else {}

    def get_server_url(self) -> str:
        """Get server URL from the environment or config"""
        env_url = os.environ.get(SERVER_URL_ENV_VAR, "").strip()
        if env_url:
            return env_url.rstrip("/")

        server_url = self._section("server").get("url")
        if isinstance(server_url, str) and server_url:
            return server_url.rstrip("/")
        return DEFAULT_SERVER_URL

    def get_timeout(self) -> float:
        timeout = self._section("server").get("timeout")
        if isinstance(timeout, (int, float)) and timeout > 0:
            return float(timeout)
        return DEFAULT_TIMEOUT_SECONDS

    def get_auto_sync(self) -> bool:
        """Whether to sync automatically when connectivity returns"""
        return self._section("sync").get("auto_sync", True) is not False

    def get_store_path(self) -> Path:
        store_path = self._section("storage").get("path")
        if isinstance(store_path, str) and store_path:
            return Path(store_path).expanduser()
        return self.config_dir / "store.db"

    def set_server_url(self, url: str) -> None:
        """Set server URL in config"""
        self.config_dir.mkdir(parents=True, exist_ok=True)

        config = self._load()
        server_section = config.get("server")
        if not isinstance(server_section, dict):
            server_section = {}
            config["server"] = server_section

        server_section["url"] = url.rstrip("/")

        with open(self.config_file, "w", encoding="utf-8") as f:
            toml.dump(config, f)
