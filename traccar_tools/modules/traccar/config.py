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
Generated Traccar configuration (conf/traccar.xml).

The file is regenerated from scratch whenever database credentials change;
an existing file is never merged.
"""

import os
from pathlib import Path
from xml.sax.saxutils import escape, quoteattr

from traccar_tools.config import ToolsConfig
from traccar_tools.utils.index import log_message
from traccar_tools.utils.errors import DatabaseError

MYSQL_DRIVER = "com.mysql.cj.jdbc.Driver"


def database_url(config: ToolsConfig) -> str:
    return (f"jdbc:mysql://{config.mysql_host}:{config.mysql_port}/{config.database_name}"
            "?useSSL=false&characterEncoding=UTF-8")


def render_traccar_config(config: ToolsConfig) -> str:
    entries = [
        ("config.default", "./conf/default.xml"),
        ("database.driver", MYSQL_DRIVER),
        ("database.url", database_url(config)),
        ("database.user", config.mysql_user),
        ("database.password", config.mysql_password),
    ]
    lines = [
        "<?xml version='1.0' encoding='UTF-8'?>",
        "<!DOCTYPE properties SYSTEM 'http://java.sun.com/dtd/properties.dtd'>",
        "<properties>",
    ]
    for key, value in entries:
        lines.append(f"    <entry key={quoteattr(key)}>{escape(value)}</entry>")
    lines.append("</properties>")
    return "\n".join(lines) + "\n"


def write_traccar_config(config: ToolsConfig) -> Path:
    """Write conf/traccar.xml with the configured MySQL connection."""
    target = config.traccar_config_file
    log_message(f"Updating Traccar config at {target}")
    tmp = target.with_name(target.name + ".tmp")
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(render_traccar_config(config))
        os.chmod(tmp, 0o640)
        os.replace(tmp, target)
    except OSError as e:
        raise DatabaseError(f"Failed to write {target}: {e}")
    log_message("Traccar config updated")
    return target
