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

import os
import shutil
from typing import Callable, Iterable, List

from .index import log_message, run_command
from .errors import PreconditionError


def have_command(name: str) -> bool:
    return shutil.which(name) is not None


class PackageInstaller:
    """apt-get wrapper used to bootstrap tools the actions need."""

    def __init__(self, runner: Callable = run_command):
        self._run = runner

    def _apt(self, *args: str) -> bool:
        env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
        result = self._run(["apt-get", *args], env=env)
        if result.returncode != 0:
            log_message(f"apt-get {' '.join(args)} failed: {result.stderr}", "ERROR")
            return False
        return True

    def install(self, packages: Iterable[str]) -> bool:
        packages = list(packages)
        log_message(f"Installing packages: {' '.join(packages)}")
        return self._apt("update", "-y") and self._apt("install", "-y", *packages)

    def purge(self, packages: Iterable[str]) -> bool:
        packages = list(packages)
        log_message(f"Purging packages: {' '.join(packages)}")
        ok = self._apt("-y", "purge", *packages)
        # autoremove/autoclean failures are not worth aborting over
        self._apt("-y", "autoremove")
        self._apt("-y", "autoclean")
        return ok

    def ensure_commands(self, commands: Iterable[str], package: str) -> None:
        """
        Install `package` if any of `commands` is missing from PATH.

        Raises:
            PreconditionError: If the commands are still missing afterwards
        """
        missing: List[str] = [c for c in commands if not have_command(c)]
        if not missing:
            return
        log_message(f"Missing commands: {', '.join(missing)}; installing {package}")
        self.install([package])
        still_missing = [c for c in missing if not have_command(c)]
        if still_missing:
            raise PreconditionError(f"Required commands not available: {', '.join(still_missing)}")
