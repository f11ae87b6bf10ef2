import shutil

import pytest

from traccar_tools.modules.traccar.index import PipelineState
from traccar_tools.utils.errors import (
    ConfirmationDeclined,
    DownloadError,
    ResolutionError,
    SnapshotError
)

from conftest import FakeInstaller, FakeResolver, FakeService, FakeStager, seed_install


def read(path):
    return path.read_text()


def test_upgrade_keeps_unit_config_and_state(config, service, make_pipeline):
    seed_install(config)
    installer = FakeInstaller(config)

    result = make_pipeline(installer=installer).upgrade()

    assert result.success
    assert result.state is PipelineState.DONE
    assert result.version == "6.5"
    assert installer.snapshot_present_at_install
    assert read(config.unit_file) == "[Unit]\nDescription=customized\n"
    assert read(config.install_dir / "conf" / "traccar.xml") == "<properties>custom</properties>\n"
    assert (config.install_dir / "data" / "traccar.db").read_bytes() == b"sqlite-state"
    assert read(config.version_file) == "6.5\n"
    assert "traccar.service" in result.restored
    assert service.calls[0] == "stop"
    assert service.calls[-3:] == ["daemon-reload", "enable", "start"]
    assert service.running


def test_upgrade_walks_every_state(config, make_pipeline):
    seed_install(config)
    pipeline = make_pipeline()
    pipeline.upgrade()
    assert pipeline.history == [
        PipelineState.IDLE,
        PipelineState.RESOLVING,
        PipelineState.STAGING,
        PipelineState.BACKING_UP,
        PipelineState.REPLACING,
        PipelineState.RESTORING_CONFIG,
        PipelineState.RESTARTING,
        PipelineState.DONE,
    ]


def test_upgrade_without_previous_install_restores_nothing(config, snapshots, make_pipeline):
    result = make_pipeline().upgrade()

    assert result.success
    assert result.restored == []
    assert not snapshots.has_snapshot()
    assert read(config.install_dir / "conf" / "traccar.xml") == "<properties>fresh</properties>\n"


def test_installer_failure_still_restores_and_starts(config, service, make_pipeline):
    seed_install(config)

    result = make_pipeline(installer=FakeInstaller(config, raises=True)).upgrade()

    assert result.installer_ok is False
    assert read(config.unit_file) == "[Unit]\nDescription=customized\n"
    assert read(config.install_dir / "conf" / "traccar.xml") == "<properties>custom</properties>\n"
    assert service.calls[-1] == "start"


def test_installer_nonzero_exit_is_tolerated(config, make_pipeline):
    seed_install(config)
    result = make_pipeline(installer=FakeInstaller(config, ok=False)).upgrade()
    assert result.success
    assert result.installer_ok is False


def test_start_failure_reported_in_result(config, make_pipeline):
    seed_install(config)

    result = make_pipeline(service_override=FakeService(start_fails=True)).upgrade()

    assert not result.success
    assert result.state is PipelineState.FAILED
    assert "Failed to start" in result.error
    assert read(config.install_dir / "conf" / "traccar.xml") == "<properties>custom</properties>\n"
    assert not config.version_file.exists()


def test_resolution_failure_touches_nothing(config, service, make_pipeline):
    seed_install(config)
    pipeline = make_pipeline(resolver=FakeResolver(error=ResolutionError("no asset")))

    with pytest.raises(ResolutionError):
        pipeline.upgrade()

    assert pipeline.state is PipelineState.FAILED
    assert service.calls == []
    assert read(config.version_file) == "6.4\n"


def test_staging_failure_touches_nothing(config, service, tmp_path, make_pipeline):
    seed_install(config)
    stager = FakeStager(tmp_path / "staging", error=DownloadError("connection reset"))

    with pytest.raises(DownloadError):
        make_pipeline(stager=stager).upgrade()

    assert service.calls == []
    assert config.unit_file.exists()


def test_snapshot_failure_restarts_and_keeps_install(config, service, snapshots, make_pipeline, monkeypatch):
    seed_install(config)

    def failing_capture(*args, **kwargs):
        raise SnapshotError("No space left on device")

    monkeypatch.setattr(snapshots, "capture", failing_capture)
    installer = FakeInstaller(config)

    with pytest.raises(SnapshotError):
        make_pipeline(installer=installer).upgrade()

    assert service.calls == ["stop", "start"]
    assert installer.calls == []
    assert read(config.install_dir / "conf" / "traccar.xml") == "<properties>custom</properties>\n"


def test_install_twice_is_idempotent(config, snapshots, make_pipeline):
    installer = FakeInstaller(config)
    pipeline = make_pipeline(installer=installer)

    first = pipeline.install()
    second = pipeline.install()

    assert first.success and second.success
    assert len(installer.calls) == 2
    assert installer.calls[0][1] is True
    assert read(config.version_file) == "6.5\n"
    assert not snapshots.has_snapshot()


def test_install_history_skips_backup(make_pipeline):
    pipeline = make_pipeline()
    pipeline.install()
    assert PipelineState.BACKING_UP not in pipeline.history
    assert pipeline.history[-1] is PipelineState.DONE


def test_declined_uninstall_changes_nothing(config, service, make_pipeline):
    seed_install(config)

    with pytest.raises(ConfirmationDeclined):
        make_pipeline().uninstall(confirmed=False)

    assert service.calls == []
    assert config.unit_file.exists()
    assert read(config.install_dir / "conf" / "traccar.xml") == "<properties>custom</properties>\n"


def test_uninstall_removes_everything(config, service, make_pipeline):
    seed_install(config)

    result = make_pipeline().uninstall(confirmed=True)

    assert result.success
    assert not config.unit_file.exists()
    assert not config.install_dir.exists()
    assert service.calls[:2] == ["stop", "disable"]


def test_uninstall_when_nothing_installed(make_pipeline):
    assert make_pipeline().uninstall(confirmed=True).success


def test_restart(service, make_pipeline):
    make_pipeline().restart()
    assert service.calls == ["restart"]


def test_only_uninstall_needs_confirmation(make_pipeline):
    pipeline = make_pipeline()
    assert pipeline.requires_confirmation("uninstall")
    assert pipeline.requires_confirmation("upgrade") is None
    assert pipeline.requires_confirmation("install") is None


def test_result_serializes_state(make_pipeline):
    data = make_pipeline().install().to_dict()
    assert data["state"] == "done"
    assert data["operation"] == "install"


def test_unusable_backup_dir_aborts_with_service_restarted(config, service, make_pipeline):
    seed_install(config)
    config.backup_dir.write_text("not a directory")
    pipeline = make_pipeline()

    with pytest.raises(SnapshotError):
        pipeline.upgrade()

    assert pipeline.state is PipelineState.FAILED
    assert service.calls == ["stop", "start"]
    assert service.running
    assert read(config.install_dir / "conf" / "traccar.xml") == "<properties>custom</properties>\n"


def test_rerun_after_crash_before_restore_keeps_operator_files(config, snapshots, tmp_path, make_pipeline):
    seed_install(config)
    snapshots.capture(config.unit_file, config.install_dir,
                      config.config_patterns, config.state_patterns, "crashed upgrade")
    snapshots.mark_in_progress()
    # State left behind: old install removed, fresh installer output in place
    shutil.rmtree(config.install_dir)
    FakeInstaller(config).install_once(tmp_path / "staged")

    result = make_pipeline().upgrade()

    assert result.success
    assert read(config.install_dir / "conf" / "traccar.xml") == "<properties>custom</properties>\n"
    assert (config.install_dir / "data" / "traccar.db").read_bytes() == b"sqlite-state"
    assert read(config.unit_file) == "[Unit]\nDescription=customized\n"
    assert not snapshots.in_progress


def test_upgrade_marks_slot_until_restored(config, snapshots, make_pipeline):
    seed_install(config)
    installer = FakeInstaller(config)
    seen = {}
    original = installer.install_once

    def install_once(staged_path, assume_yes=True):
        seen["in_progress"] = snapshots.in_progress
        return original(staged_path, assume_yes)

    installer.install_once = install_once
    make_pipeline(installer=installer).upgrade()

    assert seen["in_progress"] is True
    assert not snapshots.in_progress
