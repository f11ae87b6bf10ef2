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
import subprocess
import tempfile
from typing import BinaryIO, Callable, Dict, List, Optional

from traccar_tools.config import ToolsConfig
from traccar_tools.utils.index import log_message, run_command
from traccar_tools.utils.errors import BackupFailed, DatabaseError, RestoreFailed

CHUNK_SIZE = 1024 * 1024


class MySQLClient:
    """
    mysqldump / mysql command line wrapper.

    Passwords go through MYSQL_PWD in the child environment, never on the
    command line where they would show up in the process list.
    """

    def __init__(self, config: ToolsConfig, popen: Callable[..., subprocess.Popen] = subprocess.Popen,
                 runner: Callable[..., subprocess.CompletedProcess] = run_command):
        self.config = config
        self._popen = popen
        self._run = runner

    def _env(self, password: Optional[str]) -> Dict[str, str]:
        env = os.environ.copy()
        env.pop("MYSQL_PWD", None)
        if password:
            env["MYSQL_PWD"] = password
        return env

    def _base_args(self, tool: str, user: str) -> List[str]:
        return [tool, "-u", user]

    def dump(self, database: str, out: BinaryIO) -> None:
        """
        Stream a single-database dump into `out`.

        Raises:
            BackupFailed: If mysqldump cannot run or exits non-zero
        """
        command = self._base_args("mysqldump", self.config.mysql_user) + [
            "--single-transaction", "--routines", "--triggers", database
        ]
        log_message(f"Running: {' '.join(command)}", "DEBUG")
        with tempfile.TemporaryFile() as err:
            try:
                with self._popen(command, stdout=subprocess.PIPE, stderr=err,
                                 env=self._env(self.config.mysql_password)) as proc:
                    shutil.copyfileobj(proc.stdout, out, CHUNK_SIZE)
                    returncode = proc.wait()
            except OSError as e:
                raise BackupFailed(f"mysqldump could not run: {e}")
            err.seek(0)
            stderr = err.read().decode(errors="replace").strip()

        if returncode != 0:
            raise BackupFailed(f"mysqldump exited {returncode}: {stderr}")

    def restore(self, database: str, source: BinaryIO) -> None:
        """
        Feed an SQL stream into `database`.

        Raises:
            RestoreFailed: If mysql cannot run or exits non-zero
        """
        command = self._base_args("mysql", self.config.mysql_user) + [database]
        log_message(f"Running: {' '.join(command)}", "DEBUG")
        with tempfile.TemporaryFile() as err:
            try:
                with self._popen(command, stdin=subprocess.PIPE, stderr=err,
                                 env=self._env(self.config.mysql_password)) as proc:
                    try:
                        shutil.copyfileobj(source, proc.stdin, CHUNK_SIZE)
                    finally:
                        proc.stdin.close()
                    returncode = proc.wait()
            except BrokenPipeError:
                returncode = proc.wait()
            except OSError as e:
                raise RestoreFailed(f"mysql could not run: {e}")
            err.seek(0)
            stderr = err.read().decode(errors="replace").strip()

        if returncode != 0:
            raise RestoreFailed(f"mysql exited {returncode}: {stderr}")

    def execute(self, sql: str, user: Optional[str] = None, password: Optional[str] = None) -> None:
        """
        Run SQL statements in one mysql session.

        Raises:
            DatabaseError: If the statements fail
        """
        command = self._base_args("mysql", user or self.config.mysql_user) + [f"--execute={sql}"]
        result = self._run(command, env=self._env(password))
        if result.returncode != 0:
            raise DatabaseError(f"mysql --execute failed: {(result.stderr or '').strip()}")
