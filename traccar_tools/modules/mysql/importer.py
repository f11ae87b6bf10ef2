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

import gzip
from datetime import date
from typing import List, Union

from traccar_tools.config import ToolsConfig
from traccar_tools.utils.index import log_message
from traccar_tools.utils.errors import InvalidSelection, NoBackupsFound, RestoreFailed
from traccar_tools.utils.service import ServiceController
from .client import MySQLClient
from .index import BackupFile


def parse_selection(selection: Union[int, str, None], count: int) -> int:
    """
    Validate a 1-based menu selection.

    Returns:
        int: 0-based index into the candidate list

    Raises:
        InvalidSelection: Non-numeric or outside [1, count]
    """
    if isinstance(selection, bool):
        raise InvalidSelection(f"Invalid selection: {selection!r}")
    if isinstance(selection, int):
        number = selection
    else:
        text = (selection or "").strip()
        if not text.isdigit():
            raise InvalidSelection(f"Invalid selection: {selection!r}")
        number = int(text)

    if number < 1 or number > count:
        raise InvalidSelection(f"Selection {number} is out of range 1-{count}")
    return number - 1


class DatabaseImportSelector:
    """Lists database backups and restores the one an operator picks."""

    def __init__(self, config: ToolsConfig, service: ServiceController, client: MySQLClient):
        self.config = config
        self.service = service
        self.client = client
        self.backup_dir = config.mysql_backup_dir

    def list_candidates(self) -> List[BackupFile]:
        """Backups of the configured database, newest first."""
        if not self.backup_dir.is_dir():
            return []

        candidates = []
        for path in self.backup_dir.glob(f"*{self.config.database_name}.sql*"):
            if not path.is_file() or not path.name.endswith((".sql", ".sql.gz")):
                continue
            candidates.append((BackupFile.from_path(path), path.stat().st_mtime))

        def sort_key(item):
            backup, mtime = item
            return (backup.created_date or date.fromtimestamp(mtime), mtime)

        candidates.sort(key=sort_key, reverse=True)
        return [backup for backup, _ in candidates]

    def _restore(self, backup: BackupFile) -> None:
        log_message(f"Importing {backup.path} into '{self.config.database_name}' DB")
        try:
            if backup.compressed:
                with gzip.open(backup.path, 'rb') as source:
                    self.client.restore(self.config.database_name, source)
            else:
                with open(backup.path, 'rb') as source:
                    self.client.restore(self.config.database_name, source)
        except (OSError, EOFError) as e:
            raise RestoreFailed(f"Failed to read {backup.path}: {e}")

    def import_backup(self, selection: Union[int, str]) -> BackupFile:
        """
        Restore the `selection`-th (1-based) backup from list_candidates().

        The Traccar service is stopped first and started again on every
        path out of here, including errors.

        Raises:
            NoBackupsFound, InvalidSelection, RestoreFailed
        """
        self.service.stop()
        try:
            candidates = self.list_candidates()
            if not candidates:
                log_message("No backups found", "WARNING")
                raise NoBackupsFound(f"No backup files found in {self.backup_dir}")

            chosen = candidates[parse_selection(selection, len(candidates))]
            self._restore(chosen)
            log_message("Import completed")
            return chosen
        finally:
            self.service.start()
