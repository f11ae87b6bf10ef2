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
Utilities shared by the Traccar Tools modules.
"""

from .index import log_message, run_command, setup_tool_logging, tail_file
from .errors import ToolsError
from .service import ServiceController, ServiceStatus
from .state_manager import SnapshotInfo, SnapshotManager
from .packages import PackageInstaller, have_command

__all__ = [
    'log_message',
    'run_command',
    'setup_tool_logging',
    'tail_file',
    'ToolsError',
    'ServiceController',
    'ServiceStatus',
    'SnapshotInfo',
    'SnapshotManager',
    'PackageInstaller',
    'have_command'
]
