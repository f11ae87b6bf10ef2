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

import subprocess
from pathlib import Path
from typing import Callable

from traccar_tools.config import ToolsConfig
from traccar_tools.utils.index import log_message, run_command
from traccar_tools.utils.errors import InstallerError


class Installer:
    """
    Runs the self-extracting installer shipped inside a Traccar release.

    The installer asks a single yes/no question before it copies files
    into place. `assume_yes` answers it.
    """

    def __init__(self, config: ToolsConfig, runner: Callable[..., subprocess.CompletedProcess] = run_command,
                 timeout: int = 900):
        self.config = config
        self._run = runner
        self.timeout = timeout

    def install_once(self, staged_path: Path, assume_yes: bool = True) -> bool:
        """
        Run the installer from a staged release.

        Args:
            staged_path: Directory returned by ArtifactStager.stage()
            assume_yes: Answer the installer's confirmation prompt affirmatively

        Returns:
            bool: True if the installer exited cleanly

        Raises:
            InstallerError: If the installer is missing or cannot be executed
        """
        installer = Path(staged_path) / self.config.installer_name
        if not installer.is_file():
            raise InstallerError(f"Installer not found: {installer}")

        log_message(f"Running installer {installer}")
        try:
            result = self._run([str(installer)], input_text="y\n" if assume_yes else "n\n",
                               timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise InstallerError(f"Installer could not run: {e}")

        if result.returncode != 0:
            log_message(f"Installer exited with {result.returncode}: {(result.stderr or '').strip()}", "WARNING")
            return False
        log_message("Installer completed")
        return True


def write_version_marker(config: ToolsConfig, version: str) -> Path:
    """Record the installed version. Last writer wins."""
    config.install_dir.mkdir(parents=True, exist_ok=True)
    config.version_file.write_text(f"{version}\n")
    log_message(f"Wrote version to {config.version_file}")
    return config.version_file
