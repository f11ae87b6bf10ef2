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
Traccar Tools

Installs, upgrades and uninstalls the Traccar GPS tracking server on a
systemd host, keeping a snapshot of its unit, config and state across
upgrades, and manages dated MySQL backups of its database.

Run `traccar-tools` (or `python -m traccar_tools`) as root.
"""

__version__ = "1.0.0"

from .config import ToolsConfig, load_config

__all__ = [
    '__version__',
    'ToolsConfig',
    'load_config'
]
