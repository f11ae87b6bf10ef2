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
MySQL Module

Backup with age-based retention, interactive import of a chosen backup,
and MySQL server install/reset for Traccar.
"""

from .client import MySQLClient
from .index import BackupFile, DatabaseBackupManager, backup_filename
from .importer import DatabaseImportSelector, parse_selection
from .server import MySQLServerManager

__all__ = [
    'MySQLClient',
    'BackupFile',
    'DatabaseBackupManager',
    'backup_filename',
    'DatabaseImportSelector',
    'parse_selection',
    'MySQLServerManager'
]
