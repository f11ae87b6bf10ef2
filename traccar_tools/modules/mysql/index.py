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
MySQL backup and retention.

Backups are plain files named <YYYY-MM-DD>-<dbname>.sql[.gz] in one
directory. A second backup on the same day overwrites the first. After
every backup attempt, successful or not, files older than the retention
window are deleted and the Traccar service is started again.
"""

import gzip
import os
import re
import time
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

from traccar_tools.config import ToolsConfig
from traccar_tools.utils.index import log_message
from traccar_tools.utils.errors import BackupFailed
from traccar_tools.utils.service import ServiceController
from .client import MySQLClient

SECONDS_PER_DAY = 86400
BACKUP_NAME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})-(.+?)\.sql(\.gz)?$")


@dataclass(frozen=True)
class BackupFile:
    """A database backup on disk."""
    path: Path
    created_date: Optional[date]
    database_name: str
    compressed: bool

    @classmethod
    def from_path(cls, path: Path) -> 'BackupFile':
        match = BACKUP_NAME_RE.match(path.name)
        if match:
            try:
                created = datetime.strptime(match.group(1), "%Y-%m-%d").date()
            except ValueError:
                created = None
            return cls(path, created, match.group(2), bool(match.group(3)))
        return cls(path, None, "", path.name.endswith(".gz"))

    @property
    def name(self) -> str:
        return self.path.name


def backup_filename(database_name: str, day: date, compress: bool) -> str:
    return f"{day.isoformat()}-{database_name}.sql" + (".gz" if compress else "")


class DatabaseBackupManager:
    """Dumps the Traccar database and prunes old dumps."""

    def __init__(self, config: ToolsConfig, service: ServiceController, client: MySQLClient):
        self.config = config
        self.service = service
        self.client = client
        self.backup_dir = config.mysql_backup_dir

    def _ensure_backup_dir(self) -> None:
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            os.chmod(self.backup_dir, 0o700)
        except OSError as e:
            raise BackupFailed(f"Cannot prepare backup directory {self.backup_dir}: {e}")

    def _dump(self, database_name: str, compress: bool, day: date) -> BackupFile:
        target = self.backup_dir / backup_filename(database_name, day, compress)
        partial = target.with_name(target.name + ".partial")
        try:
            with open(partial, 'wb') as raw:
                if compress:
                    with gzip.GzipFile(filename=target.name[:-3], mode='wb', fileobj=raw) as gz:
                        self.client.dump(database_name, gz)
                else:
                    self.client.dump(database_name, raw)
            os.chmod(partial, 0o600)
            os.replace(partial, target)
        except BackupFailed:
            partial.unlink(missing_ok=True)
            raise
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise BackupFailed(f"Failed to write {target}: {e}")

        log_message(f"Backed up '{database_name}' database to {target}")
        return BackupFile(target, day, database_name, compress)

    def backup(self, database_name: Optional[str] = None, compress: Optional[bool] = None,
               today: Optional[date] = None) -> BackupFile:
        """
        Dump one database into the backup directory.

        Args:
            database_name: Database to dump (defaults to the configured one)
            compress: gzip the dump (defaults to COMPRESS_DB)
            today: Date used in the filename (defaults to today)

        Returns:
            BackupFile: The file written

        Raises:
            BackupFailed: The dump failed; retention and restart still ran
        """
        database_name = database_name or self.config.database_name
        compress = self.config.compress_db if compress is None else compress
        day = today or date.today()

        log_message(f"Starting MySQL backup to {self.backup_dir}")
        self._ensure_backup_dir()
        self.service.stop()
        try:
            return self._dump(database_name, compress, day)
        finally:
            try:
                self.prune()
            except OSError as e:
                log_message(f"Retention pass failed: {e}", "WARNING")
            self.service.start()
            log_message("MySQL backup finished")

    def prune(self, now: Optional[float] = None) -> List[Path]:
        """
        Delete backup files older than the retention window.

        Age is counted in whole days, like `find -mtime +N`: a file is
        deleted only when its whole-day age is strictly greater than
        `days_to_keep`.

        Returns:
            list: Paths that were deleted
        """
        if not self.backup_dir.is_dir():
            return []

        now = time.time() if now is None else now
        removed = []
        for entry in sorted(self.backup_dir.iterdir()):
            if not entry.is_file():
                continue
            age_days = int((now - entry.stat().st_mtime) // SECONDS_PER_DAY)
            if age_days > self.config.days_to_keep:
                entry.unlink()
                removed.append(entry)
                log_message(f"Removed expired backup {entry.name} ({age_days} days old)")

        if removed:
            log_message(f"Retention removed {len(removed)} backups older than {self.config.days_to_keep} days")
        return removed
