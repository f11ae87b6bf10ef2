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
Snapshot Manager for the upgrade pipeline

Single backup slot, clobbered on every upgrade. No timelines, no cleanup.
The slot lives at a fixed location so a later run can still find it if the
process dies half way through an upgrade.

Layout of the slot:

    <backup_dir>/traccar_backup/
        unit/traccar.service
        config/conf/*.xml
        state/data/*.db
        snapshot.json
        upgrade.inprogress     (only while an upgrade has not restored yet)

A new snapshot is written into a sibling ".partial" directory and only then
renamed into place, so a crash mid-copy never leaves a half-written slot
where the restore step would look for one.

Usage:
    snapshots = SnapshotManager("/root/backup")
    snapshots.capture(unit_file, install_dir, ["conf/*.xml"], ["data/*.db"])
    snapshots.restore_unit(unit_file)
    snapshots.restore_config(install_dir)
"""

import hashlib
import json
import os
import shutil
import time
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .index import log_message
from .errors import SnapshotError

UNIT_DIR = "unit"
CONFIG_DIR = "config"
STATE_DIR = "state"
INDEX_NAME = "snapshot.json"
# Present from capture until the restore step has run
IN_PROGRESS_NAME = "upgrade.inprogress"


@dataclass
class SnapshotInfo:
    """Information about the captured snapshot."""
    module_name: str
    timestamp: int
    description: str
    snapshot_dir: str
    unit_file: Optional[str] = None
    config_files: List[str] = field(default_factory=list)
    state_files: List[str] = field(default_factory=list)
    checksum: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.unit_file or self.config_files or self.state_files)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SnapshotInfo':
        return cls(**data)


class SnapshotManager:
    """
    Single-slot snapshot of the service unit, config files and state files.

    Creating a new snapshot clobbers the previous one.
    """

    def __init__(self, backup_dir: Union[str, Path], module_name: str = "traccar"):
        self.module_name = module_name
        self.backup_root = Path(backup_dir)
        self.slot_dir = self.backup_root / f"{module_name}_backup"
        self.partial_dir = self.backup_root / f"{module_name}_backup.partial"
        self.retired_dir = self.backup_root / f"{module_name}_backup.old"
        self.index_file = self.slot_dir / INDEX_NAME

    def _ensure_root(self) -> None:
        self.backup_root.mkdir(parents=True, exist_ok=True)
        try:
            os.chmod(self.backup_root, 0o700)
        except OSError as e:
            log_message(f"Could not restrict permissions on {self.backup_root}: {e}", "WARNING")

    def recover_interrupted_swap(self) -> None:
        """Put the previous snapshot back if a swap was interrupted between renames."""
        if not self.slot_dir.exists() and self.retired_dir.exists():
            os.rename(self.retired_dir, self.slot_dir)
            log_message(f"Recovered snapshot from interrupted swap: {self.slot_dir}", "WARNING")
        if self.partial_dir.exists():
            shutil.rmtree(self.partial_dir)
            log_message("Discarded incomplete snapshot from a previous run", "WARNING")

    def _calculate_checksum(self, directory: Path) -> str:
        """SHA-256 over relative paths and contents of every file in a directory."""
        sha256_hash = hashlib.sha256()
        if not directory.exists():
            return ""

        for root, dirs, files in os.walk(directory):
            # Sort for consistent ordering
            dirs.sort()
            files.sort()
            for file in files:
                full_path = os.path.join(root, file)
                rel_path = os.path.relpath(full_path, directory)
                if rel_path in (INDEX_NAME, IN_PROGRESS_NAME):
                    continue
                sha256_hash.update(rel_path.encode())
                with open(full_path, 'rb') as f:
                    for chunk in iter(lambda: f.read(4096), b""):
                        sha256_hash.update(chunk)

        return sha256_hash.hexdigest()

    def _has_live_artifacts(self, unit_file: Path, install_dir: Path, patterns: List[str]) -> bool:
        if unit_file.is_file():
            return True
        if not install_dir.is_dir():
            return False
        return any(p.is_file() for pattern in patterns for p in install_dir.glob(pattern))

    def _copy_matching(self, base_dir: Path, patterns: Iterable[str], target_dir: Path) -> List[str]:
        copied = []
        if not base_dir.is_dir():
            return copied

        for pattern in patterns:
            for source in sorted(base_dir.glob(pattern)):
                if not source.is_file():
                    continue
                rel_path = source.relative_to(base_dir)
                destination = target_dir / rel_path
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, destination)
                copied.append(str(rel_path))
                log_message(f"Backed up: {source}")

        return copied

    def capture(self, unit_file: Path, install_dir: Path,
                config_patterns: Iterable[str], state_patterns: Iterable[str],
                description: str = "") -> SnapshotInfo:
        """
        Capture the unit file, config files and state files into the slot.

        Artifacts that do not exist are skipped. If nothing exists at all,
        the slot is left as it is: the previous snapshot (if any) is
        returned, otherwise an empty SnapshotInfo that is never written.
        While the slot is marked in progress (an earlier upgrade never got
        to its restore step) it is also returned as it is. Raises
        SnapshotError if anything that does exist cannot be copied,
        leaving the previous snapshot untouched.

        Args:
            unit_file: Live service unit definition
            install_dir: Live install directory the patterns are relative to
            config_patterns: Glob patterns of config files
            state_patterns: Glob patterns of state/database files
            description: Free text stored in the manifest

        Returns:
            SnapshotInfo: What was captured
        """
        try:
            self._ensure_root()
            self.recover_interrupted_swap()
        except OSError as e:
            raise SnapshotError(f"Cannot prepare snapshot directory {self.backup_root}: {e}")

        config_patterns = list(config_patterns)
        state_patterns = list(state_patterns)
        previous = self.get_info()
        if previous is not None and self.in_progress:
            # Live files may be a half-finished install; the slot holds the real ones
            log_message("Previous upgrade did not finish, keeping its snapshot", "WARNING")
            return previous
        if not self._has_live_artifacts(unit_file, install_dir, config_patterns + state_patterns):
            if previous is not None:
                # A re-run after a crash in the destructive window lands here
                log_message("Nothing live to capture, keeping previous snapshot", "WARNING")
                return previous
            log_message(f"Nothing to capture for {self.module_name} (no previous install)")
            return SnapshotInfo(
                module_name=self.module_name,
                timestamp=int(time.time()),
                description=description or "empty",
                snapshot_dir=str(self.slot_dir)
            )

        staging = self.partial_dir
        try:
            staging.mkdir(parents=True)

            captured_unit = None
            if unit_file.is_file():
                (staging / UNIT_DIR).mkdir()
                shutil.copy2(unit_file, staging / UNIT_DIR / unit_file.name)
                captured_unit = unit_file.name
                log_message(f"Backed up: {unit_file}")
            else:
                log_message(f"Unit file not present, not captured: {unit_file}", "DEBUG")

            config_files = self._copy_matching(install_dir, config_patterns, staging / CONFIG_DIR)
            state_files = self._copy_matching(install_dir, state_patterns, staging / STATE_DIR)

            info = SnapshotInfo(
                module_name=self.module_name,
                timestamp=int(time.time()),
                description=description or f"snapshot_{int(time.time())}",
                snapshot_dir=str(self.slot_dir),
                unit_file=captured_unit,
                config_files=config_files,
                state_files=state_files,
                checksum=self._calculate_checksum(staging)
            )
            with open(staging / INDEX_NAME, 'w') as f:
                json.dump(info.to_dict(), f, indent=2)

        except OSError as e:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
            raise SnapshotError(f"Failed to capture snapshot for {self.module_name}: {e}")

        self._swap_into_place()

        log_message(f"Snapshot captured for {self.module_name}")
        log_message(f"  Unit: {'yes' if info.unit_file else 'no'}, "
                    f"Config files: {len(info.config_files)}, State files: {len(info.state_files)}")
        return info

    def _swap_into_place(self) -> None:
        try:
            if self.slot_dir.exists():
                if self.retired_dir.exists():
                    shutil.rmtree(self.retired_dir)
                os.rename(self.slot_dir, self.retired_dir)
            os.rename(self.partial_dir, self.slot_dir)
        except OSError as e:
            raise SnapshotError(f"Failed to move snapshot into place: {e}")

        if self.retired_dir.exists():
            shutil.rmtree(self.retired_dir, ignore_errors=True)
            log_message(f"Clobbered previous snapshot for {self.module_name}")

    def get_info(self) -> Optional[SnapshotInfo]:
        """Load the manifest of the current snapshot, or None if there is none."""
        if not self.index_file.exists():
            return None
        try:
            with open(self.index_file, 'r') as f:
                return SnapshotInfo.from_dict(json.load(f))
        except Exception as e:
            log_message(f"Failed to load snapshot manifest: {e}", "WARNING")
            return None

    def has_snapshot(self) -> bool:
        return self.slot_dir.is_dir()

    @property
    def in_progress(self) -> bool:
        return (self.slot_dir / IN_PROGRESS_NAME).exists()

    def mark_in_progress(self) -> None:
        """Flag the slot as needed by an upgrade that has not restored yet."""
        try:
            (self.slot_dir / IN_PROGRESS_NAME).write_text(f"{int(time.time())}\n")
        except OSError as e:
            raise SnapshotError(f"Failed to mark snapshot in progress: {e}")

    def clear_in_progress(self) -> None:
        try:
            (self.slot_dir / IN_PROGRESS_NAME).unlink(missing_ok=True)
        except OSError as e:
            log_message(f"Failed to clear in-progress marker: {e}", "WARNING")

    def verify(self) -> bool:
        """Compare the slot contents against the checksum recorded at capture time."""
        info = self.get_info()
        if info is None:
            return False
        return self._calculate_checksum(self.slot_dir) == info.checksum

    def restore_unit(self, unit_file: Path) -> bool:
        """
        Copy the captured unit file back to its live location.

        Returns:
            bool: True if a unit file was restored, False if none was captured
        """
        backup_source = self.slot_dir / UNIT_DIR / unit_file.name
        if not backup_source.is_file():
            log_message("No unit file in snapshot, skipping restore", "DEBUG")
            return False

        unit_file.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(backup_source, unit_file)
        log_message(f"Restored: {unit_file}")
        return True

    def _restore_tree(self, section: str, install_dir: Path) -> List[str]:
        source_root = self.slot_dir / section
        restored = []
        if not source_root.is_dir():
            return restored

        for root, dirs, files in os.walk(source_root):
            dirs.sort()
            for file in sorted(files):
                backup_source = Path(root) / file
                rel_path = backup_source.relative_to(source_root)
                target = install_dir / rel_path
                try:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(backup_source, target)
                    restored.append(str(rel_path))
                    log_message(f"Restored: {target}")
                except OSError as e:
                    log_message(f"Failed to restore {target}: {e}", "WARNING")

        return restored

    def restore_config(self, install_dir: Path) -> List[str]:
        """Copy captured config files back into the install directory."""
        return self._restore_tree(CONFIG_DIR, install_dir)

    def restore_state(self, install_dir: Path) -> List[str]:
        """Copy captured state/database files back into the install directory."""
        return self._restore_tree(STATE_DIR, install_dir)
