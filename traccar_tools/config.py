"""
Traccar Tools
Copyright (C) 2024 Traccar Tools contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

"""
Tool configuration.

Defaults live in index.json next to this file. A ToolsConfig is built once
at startup from those defaults plus environment overrides and handed to
every component; nothing reads configuration from module globals.

Environment overrides:
    MYSQL_USER, MYSQL_PASS   database credentials
    DAYS_TO_KEEP             retention window for database backups (days)
    COMPRESS_DB              1 = gzip database backups, 0 = plain SQL
    TRACCAR_TOOLS_LOG        path of the tool log file
    TRACCAR_TOOLS_CONFIG     alternative index.json
"""

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .utils.index import log_message
from .utils.errors import ConfigError

DEFAULT_CONFIG_PATH = Path(__file__).parent / "index.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "metadata": {
        "schema_version": "1.0.0",
        "module_name": "traccar"
    },
    "config": {
        "service": {
            "name": "traccar.service",
            "systemd_dir": "/etc/systemd/system"
        },
        "directories": {
            "install_dir": "/opt/traccar",
            "backup_dir": "/root/backup",
            "mysql_backup_dir": "/root/mysql_backup",
            "log_file": "/var/log/traccar-tools.log"
        },
        "installation": {
            "github_api_url": "https://api.github.com/repos/traccar/traccar/releases/latest",
            "asset_prefix": "traccar-linux-64-",
            "asset_suffix": ".zip",
            "installer_name": "traccar.run",
            "http_timeout": 30
        },
        "backup": {
            "config_patterns": ["conf/*.xml"],
            "state_patterns": ["data/*.db"]
        },
        "database": {
            "name": "traccar",
            "host": "127.0.0.1",
            "port": 3306,
            "user": "root",
            "password": "root",
            "days_to_keep": 3,
            "compress": True
        }
    }
}


@dataclass(frozen=True)
class ToolsConfig:
    """Immutable tool configuration, passed by reference to every component."""
    service_name: str = "traccar.service"
    install_dir: Path = Path("/opt/traccar")
    systemd_dir: Path = Path("/etc/systemd/system")
    backup_dir: Path = Path("/root/backup")
    mysql_backup_dir: Path = Path("/root/mysql_backup")
    log_file: Path = Path("/var/log/traccar-tools.log")
    release_api_url: str = "https://api.github.com/repos/traccar/traccar/releases/latest"
    asset_prefix: str = "traccar-linux-64-"
    asset_suffix: str = ".zip"
    installer_name: str = "traccar.run"
    http_timeout: int = 30
    config_patterns: Tuple[str, ...] = ("conf/*.xml",)
    state_patterns: Tuple[str, ...] = ("data/*.db",)
    database_name: str = "traccar"
    mysql_host: str = "127.0.0.1"
    mysql_port: int = 3306
    mysql_user: str = "root"
    mysql_password: str = field(default="root", repr=False)
    days_to_keep: int = 3
    compress_db: bool = True

    @property
    def unit_file(self) -> Path:
        return self.systemd_dir / self.service_name

    @property
    def version_file(self) -> Path:
        return self.install_dir / "version.txt"

    @property
    def traccar_config_file(self) -> Path:
        return self.install_dir / "conf" / "traccar.xml"

    def with_overrides(self, **changes) -> 'ToolsConfig':
        """Return a copy with some fields replaced."""
        return replace(self, **changes)


def load_module_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from index.json.
    Returns:
        dict: Configuration data or default values if loading fails
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except Exception as e:
        log_message(f"Failed to load tool config from {path}: {e}", "WARNING")
        return DEFAULT_CONFIG


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")
    return value


def _env_flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    if raw.strip() in ("1", "true", "yes"):
        return True
    if raw.strip() in ("0", "false", "no"):
        return False
    raise ConfigError(f"{name} must be 1 or 0, got {raw!r}")


def load_config(config_path: Optional[Path] = None,
                environ: Optional[Mapping[str, str]] = None) -> ToolsConfig:
    """
    Build the tool configuration from index.json and the environment.

    Args:
        config_path: Alternative index.json (defaults to TRACCAR_TOOLS_CONFIG
            or the file shipped with the package)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        ToolsConfig: The resolved configuration
    """
    if environ is None:
        environ = os.environ
    if config_path is None and environ.get("TRACCAR_TOOLS_CONFIG"):
        config_path = Path(environ["TRACCAR_TOOLS_CONFIG"])

    data = load_module_config(config_path).get("config", {})
    defaults = DEFAULT_CONFIG["config"]

    def section(name: str) -> Dict[str, Any]:
        merged = dict(defaults[name])
        merged.update(data.get(name, {}))
        return merged

    service = section("service")
    directories = section("directories")
    installation = section("installation")
    backup = section("backup")
    database = section("database")

    try:
        return ToolsConfig(
            service_name=service["name"],
            install_dir=Path(directories["install_dir"]),
            systemd_dir=Path(service["systemd_dir"]),
            backup_dir=Path(directories["backup_dir"]),
            mysql_backup_dir=Path(directories["mysql_backup_dir"]),
            log_file=Path(environ.get("TRACCAR_TOOLS_LOG") or directories["log_file"]),
            release_api_url=installation["github_api_url"],
            asset_prefix=installation["asset_prefix"],
            asset_suffix=installation["asset_suffix"],
            installer_name=installation["installer_name"],
            http_timeout=int(installation["http_timeout"]),
            config_patterns=tuple(backup["config_patterns"]),
            state_patterns=tuple(backup["state_patterns"]),
            database_name=database["name"],
            mysql_host=database["host"],
            mysql_port=int(database["port"]),
            mysql_user=environ.get("MYSQL_USER") or database["user"],
            mysql_password=environ.get("MYSQL_PASS") or database["password"],
            days_to_keep=_env_int(environ, "DAYS_TO_KEEP", int(database["days_to_keep"])),
            compress_db=_env_flag(environ, "COMPRESS_DB", bool(database["compress"]))
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid tool configuration: {e}")
