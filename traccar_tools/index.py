#!/usr/bin/env python3
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

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import requests

from .config import ToolsConfig, load_config
from .utils import prompts
from .utils.index import log_message, setup_tool_logging, tail_file
from .utils.errors import (
    ConfigError,
    ConfirmationDeclined,
    PreconditionError,
    ToolsError
)
from .utils.packages import PackageInstaller, have_command
from .utils.service import ServiceController
from .utils.state_manager import SnapshotManager
from .modules.release import ArtifactStager, ReleaseResolver, StagingArea, check_latest
from .modules.traccar import Installer, UpgradePipeline
from .modules.mysql import (
    DatabaseBackupManager,
    DatabaseImportSelector,
    MySQLClient,
    MySQLServerManager
)
from .modules.mysql.server import CONFIRMATION_PROMPTS as MYSQL_PROMPTS

EXIT_SENTINEL = "x"

# (menu key, action name, label)
MENU_OPTIONS: List[Tuple[str, str, str]] = [
    ("1", "uninstall", "Uninstall Traccar"),
    ("2", "install", "Install Traccar"),
    ("3", "upgrade", "Upgrade Traccar"),
    ("4", "restart", "Restart Traccar"),
    ("5", "log", "Show tool log"),
    ("6", "status", "Show service status"),
    ("7", "check", "Check latest Traccar release"),
    ("8", "db-backup", "Backup MySQL (traccar DB)"),
    ("9", "db-import", "Import MySQL (traccar DB)"),
    ("10", "mysql-install", "Install MySQL server (and configure Traccar)"),
    ("11", "mysql-reset", "[red]Reset MySQL server (DANGER!)[/red]"),
]
ACTIONS = [name for _, name, _ in MENU_OPTIONS]
IMPORT_PROMPT = "Import a Traccar MySQL backup into database '{database}'?"


@dataclass
class Toolbox:
    """Every component of one tool session, wired to the same configuration."""
    config: ToolsConfig
    service: ServiceController
    resolver: ReleaseResolver
    pipeline: UpgradePipeline
    backups: DatabaseBackupManager
    importer: DatabaseImportSelector
    mysql_server: MySQLServerManager
    packages: PackageInstaller


def build_toolbox(config: ToolsConfig, staging_area: StagingArea,
                  session: Optional[requests.Session] = None) -> Toolbox:
    session = session or requests.Session()
    service = ServiceController(config.service_name)
    resolver = ReleaseResolver(config, session)
    client = MySQLClient(config)
    packages = PackageInstaller()
    pipeline = UpgradePipeline(
        config,
        resolver,
        ArtifactStager(config, staging_area, session),
        service,
        Installer(config),
        SnapshotManager(config.backup_dir)
    )
    return Toolbox(
        config=config,
        service=service,
        resolver=resolver,
        pipeline=pipeline,
        backups=DatabaseBackupManager(config, service, client),
        importer=DatabaseImportSelector(config, service, client),
        mysql_server=MySQLServerManager(config, service, ServiceController("mysql"), client, packages),
        packages=packages
    )


def require_root() -> None:
    if os.geteuid() != 0:
        raise PreconditionError("This tool must be run as root (or with sudo).")


def ensure_environment(config: ToolsConfig) -> None:
    """Check the unrecoverable preconditions and create the tool's directories."""
    require_root()
    if not have_command("systemctl"):
        raise PreconditionError("systemctl not found; a systemd host is required")
    for directory in (config.backup_dir, config.mysql_backup_dir):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PreconditionError(f"Cannot create {directory}: {e}")
        try:
            os.chmod(directory, 0o700)
        except OSError as e:
            log_message(f"Could not restrict permissions on {directory}: {e}", "WARNING")


class ToolsApp:
    """Maps menu options and --action names onto the toolbox."""

    def __init__(self, toolbox: Toolbox, reader: Callable[[str], str] = input,
                 assume_yes: bool = False, selection: Optional[str] = None):
        self.toolbox = toolbox
        self.config = toolbox.config
        self.reader = reader
        self.assume_yes = assume_yes
        self.selection = selection
        self._handlers: Dict[str, Callable[[], bool]] = {
            "uninstall": self.uninstall,
            "install": self.install,
            "upgrade": self.upgrade,
            "restart": self.restart,
            "log": self.show_log,
            "status": self.show_status,
            "check": self.check_latest,
            "db-backup": self.db_backup,
            "db-import": self.db_import,
            "mysql-install": self.mysql_install,
            "mysql-reset": self.mysql_reset,
        }

    def _confirm(self, question: str) -> bool:
        if self.assume_yes:
            log_message(f"Confirmed by --yes: {question}")
            return True
        return prompts.confirm(question, self.reader)

    def _report(self, result) -> bool:
        if result.success:
            prompts.success(f"{result.operation} finished" + (f" ({result.version})" if result.version else ""))
        else:
            prompts.error(f"{result.operation} failed: {result.error}")
        return result.success

    # --- actions ---

    def uninstall(self) -> bool:
        pipeline = self.toolbox.pipeline
        confirmed = self._confirm(pipeline.requires_confirmation("uninstall"))
        return self._report(pipeline.uninstall(confirmed=confirmed))

    def install(self) -> bool:
        return self._report(self.toolbox.pipeline.install())

    def upgrade(self) -> bool:
        return self._report(self.toolbox.pipeline.upgrade())

    def restart(self) -> bool:
        self.toolbox.pipeline.restart()
        prompts.success(f"{self.config.service_name} restarted")
        return True

    def show_log(self) -> bool:
        for line in tail_file(self.config.log_file, 100):
            prompts.console.print(line, markup=False)
        return True

    def show_status(self) -> bool:
        prompts.console.print(self.toolbox.service.describe(), markup=False)
        return True

    def check_latest(self) -> bool:
        report = check_latest(self.config, self.toolbox.resolver)
        prompts.console.print(f"Latest Traccar: {report['latest_version']}")
        prompts.console.print(f"URL: {report['download_url']}", markup=False)
        prompts.console.print(f"Installed: {report['installed_version'] or 'unknown'}")
        if report["update_available"]:
            prompts.warning("An update is available (menu option 3)")
        return True

    def _ensure_mysql_tools(self) -> None:
        self.toolbox.packages.ensure_commands(["mysql", "mysqldump"], "mysql-client")

    def db_backup(self) -> bool:
        self._ensure_mysql_tools()
        backup = self.toolbox.backups.backup()
        prompts.success(f"Backup written to {backup.path}")
        return True

    def db_import(self) -> bool:
        self._ensure_mysql_tools()
        if not self._confirm(IMPORT_PROMPT.format(database=self.config.database_name)):
            raise ConfirmationDeclined("Import cancelled")

        importer = self.toolbox.importer
        selection = self.selection
        candidates = importer.list_candidates()
        if candidates and selection is None:
            prompts.show_candidates("Available backups", [str(c.path) for c in candidates])
            selection = self.reader("Select backup: ")
        backup = importer.import_backup(selection)
        prompts.success(f"Imported {backup.name}")
        return True

    def mysql_install(self) -> bool:
        self.toolbox.mysql_server.install(confirmed=self._confirm(MYSQL_PROMPTS["mysql-install"]))
        prompts.success("MySQL installed and Traccar configured")
        return True

    def mysql_reset(self) -> bool:
        self.toolbox.mysql_server.reset(confirmed=self._confirm(MYSQL_PROMPTS["mysql-reset"]))
        prompts.success("MySQL reset and Traccar configured")
        return True

    # --- dispatch ---

    def run_action(self, name: str) -> bool:
        """
        Run one action, logging before and after. Failures are reported and
        swallowed so the menu can carry on.

        Returns:
            bool: True if the action completed successfully
        """
        handler = self._handlers.get(name)
        if handler is None:
            prompts.error(f"Unknown action: {name}")
            return False

        log_message(f"Action started: {name}")
        try:
            ok = handler()
        except ConfirmationDeclined as e:
            prompts.warning(str(e))
            log_message(f"Action declined: {name}")
            return False
        except (ToolsError, OSError) as e:
            prompts.error(str(e))
            log_message(f"Action failed: {name}: {e}", "ERROR")
            return False
        log_message(f"Action finished: {name} ({'ok' if ok else 'failed'})")
        return ok

    def print_menu(self) -> None:
        prompts.console.print("[cyan]--- Traccar Tools Menu ---[/cyan]")
        for key, _, label in MENU_OPTIONS:
            prompts.console.print(f"{key}) {label}")
        prompts.console.print(f"{EXIT_SENTINEL}) Exit")

    def interactive(self) -> None:
        by_key = {key: name for key, name, _ in MENU_OPTIONS}
        while True:
            self.print_menu()
            try:
                choice = self.reader("Choose option: ").strip().lower()
            except EOFError:
                choice = EXIT_SENTINEL
            if choice == EXIT_SENTINEL:
                log_message("Exiting traccar-tools")
                prompts.console.print("Goodbye!")
                return
            name = by_key.get(choice)
            if name is None:
                prompts.error("Invalid option")
                continue
            self.run_action(name)


def main(argv: Optional[List[str]] = None):
    """
    Main entry point for Traccar Tools.
    Without --action the interactive menu runs until the operator exits.
    """
    parser = argparse.ArgumentParser(description="Traccar install/upgrade/backup tool")
    parser.add_argument("--action", choices=ACTIONS,
                        help="Run a single action non-interactively")
    parser.add_argument("--yes", action="store_true",
                        help="Answer yes to confirmation prompts")
    parser.add_argument("--selection", metavar="N",
                        help="Backup number to import with --action db-import")
    parser.add_argument("--no-compress", action="store_true",
                        help="Write plain .sql database backups")
    parser.add_argument("--config", type=Path, default=None,
                        help="Alternative index.json configuration")
    parser.add_argument("--verbose", action="store_true",
                        help="Show debug output on the console")

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        if args.no_compress:
            config = config.with_overrides(compress_db=False)

        setup_tool_logging(config.log_file, args.verbose)
        ensure_environment(config)
        log_message("Starting traccar-tools")

        with StagingArea() as staging_area:
            app = ToolsApp(build_toolbox(config, staging_area),
                           assume_yes=args.yes, selection=args.selection)
            if args.action:
                ok = app.run_action(args.action)
                sys.exit(0 if ok else 1)
            app.interactive()

    except (ConfigError, PreconditionError) as e:
        prompts.error(str(e))
        log_message(str(e), "ERROR")
        sys.exit(1)
    except KeyboardInterrupt:
        log_message("Interrupted by user", "WARNING")
        sys.exit(130)


if __name__ == "__main__":
    main()
