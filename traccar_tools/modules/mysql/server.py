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
MySQL server install / reset for Traccar.

Both actions wipe or create server-wide state and are only run after the
operator has confirmed them.
"""

from traccar_tools.config import ToolsConfig
from traccar_tools.utils.index import log_message
from traccar_tools.utils.errors import ConfirmationDeclined, DatabaseError
from traccar_tools.utils.packages import PackageInstaller
from traccar_tools.utils.service import ServiceController
from traccar_tools.modules.traccar.config import write_traccar_config
from .client import MySQLClient

CONFIRMATION_PROMPTS = {
    "mysql-install": "Install MySQL server and configure for Traccar?",
    "mysql-reset": "Reset MySQL server (remove and reinstall)? All databases will be lost.",
}

PURGE_PACKAGES = [
    "mysql-server",
    "mysql-client",
    "mysql-common",
    "mysql-server-core-*",
    "mysql-client-core-*",
]


def _sql_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _sql_identifier(value: str) -> str:
    return "`" + value.replace("`", "``") + "`"


class MySQLServerManager:
    """Installs or reinstalls MySQL and points Traccar at it."""

    def __init__(self, config: ToolsConfig, traccar_service: ServiceController,
                 mysql_service: ServiceController, client: MySQLClient, packages: PackageInstaller):
        self.config = config
        self.traccar_service = traccar_service
        self.mysql_service = mysql_service
        self.client = client
        self.packages = packages

    def provisioning_sql(self) -> str:
        user = _sql_string(self.config.mysql_user)
        password = _sql_string(self.config.mysql_password)
        database = _sql_identifier(self.config.database_name)
        if self.config.mysql_user == "root":
            account = f"ALTER USER {user}@'localhost' IDENTIFIED WITH mysql_native_password BY {password};"
        else:
            account = (f"CREATE USER IF NOT EXISTS {user}@'localhost' "
                       f"IDENTIFIED WITH mysql_native_password BY {password};")
        return " ".join([
            account,
            f"CREATE DATABASE IF NOT EXISTS {database};",
            f"GRANT ALL ON {database}.* TO {user}@'localhost';",
            "FLUSH PRIVILEGES;",
        ])

    def _provision(self) -> None:
        if not self.packages.install(["mysql-server"]):
            raise DatabaseError("Failed to install mysql-server")

        sql = self.provisioning_sql()
        try:
            # Fresh installs authenticate root over the socket without a password
            self.client.execute(sql, user="root")
        except DatabaseError:
            log_message("Passwordless root login refused, retrying with configured password", "WARNING")
            self.client.execute(sql, user="root", password=self.config.mysql_password)

        write_traccar_config(self.config)
        self.mysql_service.enable()
        self.mysql_service.start(strict=True)
        self.traccar_service.start()

    def install(self, confirmed: bool = False) -> None:
        """
        Install MySQL server, create the Traccar database and account.

        Raises:
            ConfirmationDeclined, DatabaseError, ServiceControlError
        """
        if not confirmed:
            log_message("MySQL install cancelled by user")
            raise ConfirmationDeclined("MySQL install cancelled")

        log_message("Installing MySQL server")
        self.traccar_service.stop()
        self._provision()
        log_message("MySQL installed and configured")

    def reset(self, confirmed: bool = False) -> None:
        """
        Purge MySQL completely, reinstall it and configure it for Traccar.

        Raises:
            ConfirmationDeclined, DatabaseError, ServiceControlError
        """
        if not confirmed:
            log_message("MySQL reset cancelled by user")
            raise ConfirmationDeclined("MySQL reset cancelled")

        log_message("Resetting MySQL server")
        self.traccar_service.stop()
        self.mysql_service.stop()
        if not self.packages.purge(PURGE_PACKAGES):
            log_message("Package purge reported errors, continuing with reinstall", "WARNING")
        self._provision()
        log_message("MySQL reset and configured")
