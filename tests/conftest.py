"""
Shared fixtures for the Traccar Tools tests.

Everything runs against a temporary directory tree; systemctl, the
installer, MySQL and the network are replaced by small recording fakes.
"""

import io
import zipfile
from pathlib import Path

import pytest
import requests

from traccar_tools.config import ToolsConfig
from traccar_tools.utils.errors import BackupFailed, InstallerError, ServiceControlError
from traccar_tools.utils.service import ServiceStatus
from traccar_tools.utils.state_manager import SnapshotManager
from traccar_tools.modules.release.index import Release
from traccar_tools.modules.traccar.index import UpgradePipeline


@pytest.fixture
def config(tmp_path):
    return ToolsConfig(
        install_dir=tmp_path / "opt" / "traccar",
        systemd_dir=tmp_path / "systemd",
        backup_dir=tmp_path / "backup",
        mysql_backup_dir=tmp_path / "mysql_backup",
        log_file=tmp_path / "traccar-tools.log",
        days_to_keep=3,
    )


class FakeService:
    """Records calls and tracks a running/enabled flag."""

    def __init__(self, running=True, start_fails=False):
        self.running = running
        self.enabled = True
        self.start_fails = start_fails
        self.calls = []

    def stop(self):
        self.calls.append("stop")
        self.running = False
        return True

    def start(self, strict=False):
        self.calls.append("start")
        if self.start_fails:
            if strict:
                raise ServiceControlError("Failed to start traccar.service: unit failed")
            return False
        self.running = True
        return True

    def enable(self):
        self.calls.append("enable")
        self.enabled = True
        return True

    def disable(self):
        self.calls.append("disable")
        self.enabled = False
        return True

    def restart(self):
        self.calls.append("restart")
        self.running = True

    def daemon_reload(self):
        self.calls.append("daemon-reload")
        return True

    def status(self):
        return ServiceStatus.RUNNING if self.running else ServiceStatus.STOPPED

    def describe(self):
        return "traccar.service - Traccar\n   Active: active (running)"


class FakeResolver:
    def __init__(self, release=None, error=None):
        self.release = release or Release("6.5", "https://example.invalid/traccar-linux-64-6.5.zip")
        self.error = error
        self.calls = 0

    def resolve_latest(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.release


class FakeStager:
    def __init__(self, root, error=None):
        self.root = Path(root)
        self.error = error

    def stage(self, release):
        if self.error:
            raise self.error
        staged = self.root / f"staged-{release.version}"
        staged.mkdir(parents=True, exist_ok=True)
        return staged


class FakeInstaller:
    """
    Behaves like the Traccar installer: lays down a fresh install directory
    with default config and a unit file.
    """

    def __init__(self, config, ok=True, raises=False, lays_files=True):
        self.config = config
        self.ok = ok
        self.raises = raises
        self.lays_files = lays_files
        self.calls = []
        self.snapshot_present_at_install = None

    def install_once(self, staged_path, assume_yes=True):
        self.calls.append((staged_path, assume_yes))
        self.snapshot_present_at_install = (self.config.backup_dir / "traccar_backup").exists()
        if self.raises:
            raise InstallerError("Installer could not run: exec format error")
        if self.lays_files:
            conf = self.config.install_dir / "conf"
            conf.mkdir(parents=True, exist_ok=True)
            (conf / "default.xml").write_text("<properties>default</properties>\n")
            (conf / "traccar.xml").write_text("<properties>fresh</properties>\n")
            self.config.systemd_dir.mkdir(parents=True, exist_ok=True)
            self.config.unit_file.write_text("[Unit]\nDescription=fresh\n")
        return self.ok


class FakeMySQLClient:
    def __init__(self, payload=b"-- MySQL dump\nCREATE TABLE tc_devices (id INT);\n", fail=False):
        self.payload = payload
        self.fail = fail
        self.dumped = []
        self.restored = []
        self.executed = []

    def dump(self, database, out):
        self.dumped.append(database)
        if self.fail:
            out.write(b"-- partial")
            raise BackupFailed("mysqldump exited 2: Access denied for user 'root'@'localhost'")
        out.write(self.payload)

    def restore(self, database, source):
        self.restored.append((database, source.read()))

    def execute(self, sql, user=None, password=None):
        self.executed.append((sql, user, password))


class FakePackages:
    def __init__(self, ok=True):
        self.ok = ok
        self.installed = []
        self.purged = []

    def install(self, packages):
        self.installed.extend(packages)
        return self.ok

    def purge(self, packages):
        self.purged.extend(packages)
        return self.ok

    def ensure_commands(self, commands, package):
        pass


class FakeResponse:
    def __init__(self, json_data=None, content=b"", status_code=200, json_error=False):
        self._json = json_data
        self._content = content
        self.status_code = status_code
        self._json_error = json_error

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        if self._json_error:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._json

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._content), chunk_size):
            yield self._content[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


def make_release_zip(installer_name="traccar.run", extra=None):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        if installer_name:
            zf.writestr(installer_name, "#!/bin/sh\nexit 0\n")
        for name, data in (extra or {}).items():
            zf.writestr(name, data)
    return buffer.getvalue()


def seed_install(config, version="6.4"):
    """Create a live install with unit, config, state and version marker."""
    conf = config.install_dir / "conf"
    data = config.install_dir / "data"
    conf.mkdir(parents=True)
    data.mkdir(parents=True)
    (conf / "traccar.xml").write_text("<properties>custom</properties>\n")
    (conf / "default.xml").write_text("<properties>old default</properties>\n")
    (data / "database.mv.db").write_bytes(b"h2-state")
    (data / "traccar.db").write_bytes(b"sqlite-state")
    config.systemd_dir.mkdir(parents=True, exist_ok=True)
    config.unit_file.write_text("[Unit]\nDescription=customized\n")
    config.version_file.write_text(f"{version}\n")


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def snapshots(config):
    return SnapshotManager(config.backup_dir)


@pytest.fixture
def make_pipeline(config, service, snapshots, tmp_path):
    def factory(resolver=None, stager=None, installer=None, service_override=None):
        return UpgradePipeline(
            config,
            resolver or FakeResolver(),
            stager or FakeStager(tmp_path / "staging"),
            service_override or service,
            installer or FakeInstaller(config),
            snapshots
        )
    return factory
