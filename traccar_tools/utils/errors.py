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
Exceptions raised by Traccar Tools components.

Everything derives from ToolsError so the menu loop can report a failed
action and carry on. ConfigError and PreconditionError are the only ones
that end the program.
"""


class ToolsError(Exception):
    """Base class for all tool failures."""
    pass


class ConfigError(ToolsError):
    """Configuration could not be loaded or an override is invalid."""
    pass


class PreconditionError(ToolsError):
    """Unrecoverable startup condition (not root, required command missing)."""
    pass


class ResolutionError(ToolsError):
    """Upstream release index unreachable or no asset matched."""
    pass


class StagingError(ToolsError):
    """Release artifact could not be staged."""
    pass


class DownloadError(StagingError):
    pass


class UnpackError(StagingError):
    pass


class ServiceControlError(ToolsError):
    """A strict service manager call failed."""
    pass


class InstallerError(ToolsError):
    """The bundled installer could not be executed."""
    pass


class SnapshotError(ToolsError):
    """The pre-upgrade snapshot could not be captured."""
    pass


class ConfirmationDeclined(ToolsError):
    """Operator declined a destructive action. Nothing was changed."""
    pass


class DatabaseError(ToolsError):
    pass


class BackupFailed(DatabaseError):
    pass


class RestoreFailed(DatabaseError):
    pass


class NoBackupsFound(ToolsError):
    pass


class InvalidSelection(ToolsError):
    pass
