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
systemd service control.

The pipelines call stop/disable speculatively (the unit may not even be
installed yet), so those calls never raise: a unit that is missing or
already in the requested state counts as success. Only start(strict=True)
and restart() surface failures, as ServiceControlError.
"""

import subprocess
from enum import Enum
from typing import Callable, List

from .index import log_message
from .errors import ServiceControlError

# systemctl stderr fragments meaning "nothing to do"
_BENIGN_MARKERS = (
    "not loaded",
    "not found",
    "does not exist",
    "no such file",
)


class ServiceStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


class ServiceController:
    """Thin idempotent wrapper around systemctl for a single unit."""

    def __init__(self, unit: str, runner: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self.unit = unit
        self._runner = runner

    def _systemctl(self, *args: str) -> subprocess.CompletedProcess:
        command: List[str] = ["systemctl", *args]
        try:
            return self._runner(command, capture_output=True, text=True)
        except OSError as e:
            log_message(f"systemctl {' '.join(args)} error: {e}", "ERROR")
            return subprocess.CompletedProcess(command, 127, stdout="", stderr=str(e))

    def _tolerant(self, action: str) -> bool:
        result = self._systemctl(action, self.unit)
        if result.returncode == 0:
            return True
        stderr = (result.stderr or "").strip()
        if any(marker in stderr.lower() for marker in _BENIGN_MARKERS):
            log_message(f"systemctl {action} {self.unit}: nothing to do ({stderr})", "DEBUG")
            return True
        log_message(f"systemctl {action} {self.unit} failed: {stderr}", "WARNING")
        return False

    def stop(self) -> bool:
        return self._tolerant("stop")

    def disable(self) -> bool:
        return self._tolerant("disable")

    def enable(self) -> bool:
        return self._tolerant("enable")

    def start(self, strict: bool = False) -> bool:
        """
        Start the unit.

        Args:
            strict: Raise ServiceControlError instead of returning False

        Returns:
            bool: True if the unit was started (or already running)
        """
        result = self._systemctl("start", self.unit)
        if result.returncode == 0:
            return True
        stderr = (result.stderr or "").strip()
        if strict:
            raise ServiceControlError(f"Failed to start {self.unit}: {stderr}")
        log_message(f"systemctl start {self.unit} failed: {stderr}", "WARNING")
        return False

    def restart(self) -> None:
        result = self._systemctl("restart", self.unit)
        if result.returncode != 0:
            raise ServiceControlError(f"Failed to restart {self.unit}: {(result.stderr or '').strip()}")

    def daemon_reload(self) -> bool:
        result = self._systemctl("daemon-reload")
        if result.returncode != 0:
            log_message(f"systemctl daemon-reload failed: {(result.stderr or '').strip()}", "WARNING")
            return False
        return True

    def status(self) -> ServiceStatus:
        """Map `systemctl is-active` onto running / stopped / unknown."""
        result = self._systemctl("is-active", self.unit)
        state = (result.stdout or "").strip()
        if state in ("active", "reloading", "activating"):
            return ServiceStatus.RUNNING
        if state in ("inactive", "failed", "deactivating"):
            return ServiceStatus.STOPPED
        return ServiceStatus.UNKNOWN

    def describe(self) -> str:
        """Human-readable `systemctl status` output."""
        result = self._systemctl("status", self.unit, "--no-pager")
        return (result.stdout or "") + (result.stderr or "")
