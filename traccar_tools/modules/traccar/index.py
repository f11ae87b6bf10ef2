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
Traccar install / upgrade / uninstall pipeline.

The pipeline is a small state machine:

    IDLE -> RESOLVING -> STAGING -> BACKING_UP -> REPLACING
         -> RESTORING_CONFIG -> RESTARTING -> DONE

with FAILED reachable from every step. Resolution, staging and snapshot
failures raise before anything live is touched. Once the live install has
been removed the pipeline always carries on to restore and restart, and
reports a failure in the returned PipelineResult instead of raising.
"""

import shutil
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from traccar_tools.config import ToolsConfig
from traccar_tools.utils.index import log_message
from traccar_tools.utils.errors import (
    ConfirmationDeclined,
    InstallerError,
    ResolutionError,
    ServiceControlError,
    SnapshotError,
    StagingError
)
from traccar_tools.utils.service import ServiceController
from traccar_tools.utils.state_manager import SnapshotInfo, SnapshotManager
from traccar_tools.modules.release.index import Release, ReleaseResolver
from traccar_tools.modules.release.stager import ArtifactStager
from .installer import Installer, write_version_marker

CONFIRMATION_PROMPTS = {
    "uninstall": "Are you sure you want to uninstall Traccar and delete all data?",
}


class PipelineState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    STAGING = "staging"
    BACKING_UP = "backing_up"
    REPLACING = "replacing"
    RESTORING_CONFIG = "restoring_config"
    RESTARTING = "restarting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""
    operation: str
    success: bool
    state: PipelineState
    version: Optional[str] = None
    installer_ok: Optional[bool] = None
    restored: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


class UpgradePipeline:
    """Coordinates resolver, stager, installer and service control for one Traccar install."""

    def __init__(self, config: ToolsConfig, resolver: ReleaseResolver, stager: ArtifactStager,
                 service: ServiceController, installer: Installer, snapshots: SnapshotManager):
        self.config = config
        self.resolver = resolver
        self.stager = stager
        self.service = service
        self.installer = installer
        self.snapshots = snapshots
        self.state = PipelineState.IDLE
        self.history: List[PipelineState] = [PipelineState.IDLE]

    # --- state handling ---

    def _begin(self, operation: str) -> None:
        self.state = PipelineState.IDLE
        self.history = [PipelineState.IDLE]
        log_message(f"Starting Traccar {operation}...")

    def _enter(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)
        log_message(f"Pipeline state: {state.value}", "DEBUG")

    def _fail(self, operation: str, error: str) -> None:
        self._enter(PipelineState.FAILED)
        log_message(f"Traccar {operation} failed: {error}", "ERROR")

    @staticmethod
    def requires_confirmation(operation: str) -> Optional[str]:
        """The question an operator must confirm before `operation` runs, or None."""
        return CONFIRMATION_PROMPTS.get(operation)

    # --- steps ---

    def _resolve_and_stage(self, operation: str) -> Tuple[Release, Path]:
        self._enter(PipelineState.RESOLVING)
        try:
            release = self.resolver.resolve_latest()
        except ResolutionError as e:
            self._fail(operation, str(e))
            raise

        self._enter(PipelineState.STAGING)
        try:
            staged = self.stager.stage(release)
        except StagingError as e:
            self._fail(operation, str(e))
            raise
        return release, staged

    def _run_installer(self, staged: Path) -> bool:
        try:
            ok = self.installer.install_once(staged, assume_yes=True)
        except InstallerError as e:
            log_message(str(e), "ERROR")
            ok = False
        if not ok:
            log_message("Installer did not finish cleanly, continuing", "WARNING")
        return ok

    def _remove_unit_file(self) -> None:
        unit_file = self.config.unit_file
        if unit_file.exists() or unit_file.is_symlink():
            unit_file.unlink()
            log_message(f"Removed {unit_file}")

    def _remove_install_dir(self) -> None:
        if self.config.install_dir.exists():
            shutil.rmtree(self.config.install_dir)
            log_message(f"Removed {self.config.install_dir}")

    def _restore_from_snapshot(self, info: SnapshotInfo) -> List[str]:
        restored = []
        if info.is_empty:
            log_message("Snapshot is empty (no previous install), nothing to restore")
            return restored

        try:
            if self.snapshots.restore_unit(self.config.unit_file):
                restored.append(self.config.unit_file.name)
        except OSError as e:
            log_message(f"Failed to restore unit file: {e}", "ERROR")

        try:
            for subdir in ("conf", "data"):
                (self.config.install_dir / subdir).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log_message(f"Failed to create {self.config.install_dir}: {e}", "ERROR")
        restored.extend(self.snapshots.restore_config(self.config.install_dir))
        restored.extend(self.snapshots.restore_state(self.config.install_dir))
        self.snapshots.clear_in_progress()
        log_message(f"Restored {len(restored)} artifacts from snapshot")
        return restored

    def _start_service(self) -> None:
        self.service.daemon_reload()
        self.service.enable()
        self.service.start(strict=True)

    def _finish(self, operation: str, release: Release, installer_ok: bool,
                restored: Optional[List[str]] = None, errors: Optional[List[str]] = None) -> PipelineResult:
        errors = list(errors or [])
        self._enter(PipelineState.RESTARTING)
        try:
            self._start_service()
        except ServiceControlError as e:
            errors.append(str(e))

        if errors:
            self._fail(operation, "; ".join(errors))
            return PipelineResult(operation, False, self.state, release.version,
                                  installer_ok, restored or [], "; ".join(errors))

        try:
            write_version_marker(self.config, release.version)
        except OSError as e:
            log_message(f"Failed to write version marker: {e}", "WARNING")

        self._enter(PipelineState.DONE)
        log_message(f"Traccar {operation} to {release.version} completed")
        return PipelineResult(operation, True, self.state, release.version,
                              installer_ok, restored or [])

    # --- operations ---

    def install(self) -> PipelineResult:
        """
        Install the latest release over whatever is there. No backup is taken.

        Raises:
            ResolutionError, StagingError: Nothing was changed
        """
        self._begin("install")
        release, staged = self._resolve_and_stage("install")

        self._enter(PipelineState.REPLACING)
        # An older install may still hold the ports
        self.service.stop()
        installer_ok = self._run_installer(staged)
        return self._finish("install", release, installer_ok)

    def upgrade(self) -> PipelineResult:
        """
        Replace the live install with the latest release, keeping unit, config and state.

        Raises:
            ResolutionError, StagingError: Nothing was changed
            SnapshotError: Service was stopped and restarted, nothing removed
        """
        self._begin("upgrade")
        release, staged = self._resolve_and_stage("upgrade")

        self._enter(PipelineState.BACKING_UP)
        log_message(f"Stopping {self.config.service_name}")
        self.service.stop()
        try:
            info = self.snapshots.capture(
                self.config.unit_file,
                self.config.install_dir,
                self.config.config_patterns,
                self.config.state_patterns,
                description=f"pre_upgrade_to_{release.version}"
            )
            if not info.is_empty:
                self.snapshots.mark_in_progress()
        except (SnapshotError, OSError) as e:
            self._fail("upgrade", str(e))
            self.service.start()
            if isinstance(e, SnapshotError):
                raise
            raise SnapshotError(f"Failed to capture snapshot: {e}")

        self._enter(PipelineState.REPLACING)
        errors = []
        self.service.disable()
        try:
            self._remove_unit_file()
            self.service.daemon_reload()
            self._remove_install_dir()
        except OSError as e:
            errors.append(f"Failed to remove previous install: {e}")
            log_message(errors[-1], "ERROR")
        installer_ok = self._run_installer(staged)

        self._enter(PipelineState.RESTORING_CONFIG)
        restored = self._restore_from_snapshot(info)

        return self._finish("upgrade", release, installer_ok, restored, errors)

    def uninstall(self, confirmed: bool = False) -> PipelineResult:
        """
        Stop, disable and remove Traccar entirely.

        Raises:
            ConfirmationDeclined: If not confirmed; nothing is touched
        """
        self._begin("uninstall")
        if not confirmed:
            log_message("Uninstallation cancelled by user")
            raise ConfirmationDeclined("Uninstallation cancelled")

        self._enter(PipelineState.REPLACING)
        self.service.stop()
        self.service.disable()
        try:
            self._remove_unit_file()
            self.service.daemon_reload()
            self._remove_install_dir()
        except OSError as e:
            self._fail("uninstall", str(e))
            return PipelineResult("uninstall", False, self.state, error=str(e))

        self._enter(PipelineState.DONE)
        log_message("Traccar uninstalled")
        return PipelineResult("uninstall", True, self.state)

    def restart(self) -> None:
        log_message(f"Restarting {self.config.service_name}")
        self.service.restart()
