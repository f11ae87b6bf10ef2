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
Release Module

Resolves the latest upstream Traccar release and stages it for installation.
"""

from .index import (
    Release,
    ReleaseResolver,
    check_latest,
    is_newer,
    read_installed_version
)
from .stager import ArtifactStager, StagingArea

__all__ = [
    'Release',
    'ReleaseResolver',
    'check_latest',
    'is_newer',
    'read_installed_version',
    'ArtifactStager',
    'StagingArea'
]
