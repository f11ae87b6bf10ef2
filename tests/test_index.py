import logging

import pytest

from traccar_tools import index as tools_index
from traccar_tools.index import ToolsApp, Toolbox, main
from traccar_tools.modules.mysql import DatabaseBackupManager, DatabaseImportSelector, MySQLServerManager

from conftest import FakeMySQLClient, FakePackages, FakeResolver, FakeService, seed_install


def scripted(*answers):
    answers = iter(answers)
    return lambda prompt="": next(answers)


@pytest.fixture
def client():
    return FakeMySQLClient()


@pytest.fixture
def toolbox(config, service, client, make_pipeline):
    packages = FakePackages()
    return Toolbox(
        config=config,
        service=service,
        resolver=FakeResolver(),
        pipeline=make_pipeline(),
        backups=DatabaseBackupManager(config, service, client),
        importer=DatabaseImportSelector(config, service, client),
        mysql_server=MySQLServerManager(config, service, FakeService(), client, packages),
        packages=packages
    )


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


def test_unknown_action(toolbox):
    assert ToolsApp(toolbox).run_action("reboot") is False


def test_declined_uninstall_is_not_an_error(config, toolbox):
    seed_install(config)
    app = ToolsApp(toolbox, reader=scripted("n"))

    assert app.run_action("uninstall") is False
    assert config.install_dir.exists()


def test_uninstall_with_yes(config, toolbox):
    seed_install(config)
    assert ToolsApp(toolbox, assume_yes=True).run_action("uninstall") is True
    assert not config.install_dir.exists()


def test_upgrade_action(config, toolbox):
    seed_install(config)
    assert ToolsApp(toolbox).run_action("upgrade") is True
    assert config.version_file.read_text() == "6.5\n"


def test_check_action(config, toolbox, capsys):
    assert ToolsApp(toolbox).run_action("check") is True
    assert "6.5" in capsys.readouterr().out


def test_backup_then_import(config, toolbox, client):
    app = ToolsApp(toolbox, assume_yes=True, selection="1")

    assert app.run_action("db-backup") is True
    assert app.run_action("db-import") is True
    assert client.restored == [("traccar", client.payload)]


def test_import_prompts_for_selection(config, toolbox, client):
    config.mysql_backup_dir.mkdir(parents=True)
    (config.mysql_backup_dir / "2024-01-09-traccar.sql").write_bytes(b"-- jan 9\n")
    (config.mysql_backup_dir / "2024-01-10-traccar.sql").write_bytes(b"-- jan 10\n")

    app = ToolsApp(toolbox, reader=scripted("y", "2"))

    assert app.run_action("db-import") is True
    assert client.restored == [("traccar", b"-- jan 9\n")]


def test_import_invalid_selection_reported(config, toolbox, service):
    config.mysql_backup_dir.mkdir(parents=True)
    (config.mysql_backup_dir / "2024-01-10-traccar.sql").write_bytes(b"-- jan 10\n")

    app = ToolsApp(toolbox, assume_yes=True, selection="7")

    assert app.run_action("db-import") is False
    assert service.running


def test_import_without_backups_reported(toolbox):
    assert ToolsApp(toolbox, assume_yes=True).run_action("db-import") is False


def test_menu_loop(toolbox, service, capsys):
    app = ToolsApp(toolbox, reader=scripted("99", "4", "x"))

    app.interactive()

    out = capsys.readouterr().out
    assert "Invalid option" in out
    assert "Goodbye" in out
    assert service.calls == ["restart"]


def test_menu_lists_every_action():
    assert tools_index.ACTIONS == [
        "uninstall", "install", "upgrade", "restart", "log", "status", "check",
        "db-backup", "db-import", "mysql-install", "mysql-reset",
    ]


def test_main_requires_root(tmp_path, monkeypatch, restore_logging):
    monkeypatch.setenv("TRACCAR_TOOLS_LOG", str(tmp_path / "tools.log"))
    monkeypatch.setattr(tools_index.os, "geteuid", lambda: 1000)

    with pytest.raises(SystemExit) as excinfo:
        main(["--action", "status"])

    assert excinfo.value.code == 1
    assert "must be run as root" in (tmp_path / "tools.log").read_text()


def test_main_rejects_bad_override(tmp_path, monkeypatch, restore_logging):
    monkeypatch.setenv("DAYS_TO_KEEP", "soon")
    with pytest.raises(SystemExit) as excinfo:
        main(["--action", "status"])
    assert excinfo.value.code == 1


def test_main_rejects_unknown_action():
    with pytest.raises(SystemExit) as excinfo:
        main(["--action", "reboot"])
    assert excinfo.value.code == 2


def test_upgrade_with_unusable_backup_dir_is_reported(config, toolbox, service):
    seed_install(config)
    config.backup_dir.write_text("not a directory")

    assert ToolsApp(toolbox).run_action("upgrade") is False
    assert service.running


def test_filesystem_error_is_reported(toolbox, monkeypatch):
    def failing_restart():
        raise PermissionError("Permission denied")

    monkeypatch.setattr(toolbox.pipeline, "restart", failing_restart)
    assert ToolsApp(toolbox).run_action("restart") is False


def test_menu_exits_on_closed_stdin(toolbox, capsys):
    def closed(prompt=""):
        raise EOFError

    ToolsApp(toolbox, reader=closed).interactive()
    assert "Goodbye" in capsys.readouterr().out
