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
Artifact staging.

StagingArea owns the one scratch directory of the process. It is removed
when the `with` block that opened it exits, however it exits, and again at
interpreter shutdown in case the block was never left normally.
"""

import atexit
import os
import shutil
import stat
import tempfile
import zipfile
from pathlib import Path
from typing import Optional

import requests

from traccar_tools.config import ToolsConfig
from traccar_tools.utils.index import log_message
from traccar_tools.utils.errors import DownloadError, StagingError, UnpackError
from .index import Release

CHUNK_SIZE = 1024 * 1024


class StagingArea:
    """Process-scoped scratch directory with guaranteed cleanup."""

    def __init__(self, prefix: str = "traccar-tools.", parent: Optional[Path] = None):
        self.prefix = prefix
        self.parent = parent
        self.path: Optional[Path] = None

    def open(self) -> Path:
        if self.path is None:
            self.path = Path(tempfile.mkdtemp(prefix=self.prefix, dir=self.parent))
            atexit.register(self.cleanup)
            log_message(f"Created staging area {self.path}", "DEBUG")
        return self.path

    def new_run_dir(self) -> Path:
        """A fresh, empty directory for one staging run."""
        return Path(tempfile.mkdtemp(prefix="run-", dir=self.open()))

    def cleanup(self) -> None:
        if self.path is not None and self.path.exists():
            shutil.rmtree(self.path, ignore_errors=True)
            log_message(f"Removed staging area {self.path}", "DEBUG")
        self.path = None

    def __enter__(self) -> 'StagingArea':
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()


class ArtifactStager:
    """Downloads and unpacks a release into the staging area."""

    def __init__(self, config: ToolsConfig, staging_area: StagingArea,
                 session: Optional[requests.Session] = None):
        self.config = config
        self.staging_area = staging_area
        self.session = session or requests.Session()

    def _download(self, release: Release, target: Path) -> None:
        log_message(f"Downloading {release.download_url}...")
        try:
            with self.session.get(release.download_url, stream=True,
                                  timeout=self.config.http_timeout) as r:
                r.raise_for_status()
                with open(target, 'wb') as f:
                    for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
        except (requests.RequestException, OSError) as e:
            raise DownloadError(f"Failed to download {release.download_url}: {e}")
        log_message(f"Downloaded: {target}")

    def _unpack(self, archive: Path, target_dir: Path) -> Path:
        try:
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(target_dir)
        except (zipfile.BadZipFile, OSError) as e:
            raise UnpackError(f"Failed to unpack {archive.name}: {e}")

        installer = target_dir / self.config.installer_name
        if not installer.is_file():
            raise UnpackError(f"Installer {self.config.installer_name} not found in {archive.name}")

        current_permissions = os.stat(installer).st_mode
        os.chmod(installer, current_permissions | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return installer

    def stage(self, release: Release) -> Path:
        """
        Download and unpack a release.

        Returns:
            Path: Directory holding the unpacked release and its executable installer

        Raises:
            DownloadError, UnpackError
        """
        try:
            run_dir = self.staging_area.new_run_dir()
        except OSError as e:
            raise StagingError(f"Cannot create staging directory: {e}")

        archive = run_dir / (release.filename or "traccar.zip")
        self._download(release, archive)
        unpacked = run_dir / "unpacked"
        installer = self._unpack(archive, unpacked)
        log_message(f"Staged Traccar {release.version} at {unpacked} (installer: {installer.name})")
        return unpacked
