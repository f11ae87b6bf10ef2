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
Traccar Module

Install, upgrade, uninstall and restart of the Traccar service, plus the
generated database configuration.
"""

from .index import (
    CONFIRMATION_PROMPTS,
    PipelineResult,
    PipelineState,
    UpgradePipeline
)
from .installer import Installer, write_version_marker
from .config import render_traccar_config, write_traccar_config

__all__ = [
    'CONFIRMATION_PROMPTS',
    'PipelineResult',
    'PipelineState',
    'UpgradePipeline',
    'Installer',
    'write_version_marker',
    'render_traccar_config',
    'write_traccar_config'
]
