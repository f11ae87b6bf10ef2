import pytest
import requests

from traccar_tools.modules.release.index import (
    Release,
    ReleaseResolver,
    check_latest,
    is_newer,
    read_installed_version
)
from traccar_tools.utils.errors import ResolutionError

from conftest import FakeResolver, FakeResponse, FakeSession

BASE = "https://github.com/traccar/traccar/releases/download"


def asset(version, platform="linux-64", ext="zip"):
    name = f"traccar-{platform}-{version}.{ext}"
    return {"name": name, "browser_download_url": f"{BASE}/v{version}/{name}"}


def test_first_matching_asset_wins_in_upstream_order(config):
    session = FakeSession(FakeResponse({"assets": [
        asset("5.2", platform="windows-64"),
        asset("5.2"),
        asset("5.3"),
    ]}))

    release = ReleaseResolver(config, session).resolve_latest()

    assert release.version == "5.2"
    assert release.download_url == f"{BASE}/v5.2/traccar-linux-64-5.2.zip"
    assert release.filename == "traccar-linux-64-5.2.zip"


def test_request_uses_configured_url_and_timeout(config):
    session = FakeSession(FakeResponse({"assets": [asset("6.5")]}))
    ReleaseResolver(config, session).resolve_latest()

    url, kwargs = session.requests[0]
    assert url == config.release_api_url
    assert kwargs["timeout"] == config.http_timeout


def test_asset_name_comes_from_download_url(config):
    entry = {"name": "renamed.zip", "browser_download_url": f"{BASE}/v6.1/traccar-linux-64-6.1.zip"}
    session = FakeSession(FakeResponse({"assets": [entry]}))
    assert ReleaseResolver(config, session).resolve_latest().version == "6.1"


@pytest.mark.parametrize("payload", [
    {"assets": []},
    {"assets": [asset("6.5", platform="windows-64"), asset("6.5", ext="tar.gz")]},
    {"assets": [{"name": "traccar-linux-64-6.5.zip"}]},
    {"message": "Not Found"},
    [],
])
def test_no_matching_asset(config, payload):
    session = FakeSession(FakeResponse(payload))
    with pytest.raises(ResolutionError):
        ReleaseResolver(config, session).resolve_latest()


def test_network_failure(config):
    session = FakeSession(error=requests.ConnectionError("Name or service not known"))
    with pytest.raises(ResolutionError):
        ReleaseResolver(config, session).resolve_latest()


def test_http_error(config):
    session = FakeSession(FakeResponse(status_code=403))
    with pytest.raises(ResolutionError):
        ReleaseResolver(config, session).resolve_latest()


def test_invalid_json(config):
    session = FakeSession(FakeResponse(json_error=True))
    with pytest.raises(ResolutionError):
        ReleaseResolver(config, session).resolve_latest()


@pytest.mark.parametrize("candidate, current, expected", [
    ("6.5", None, True),
    ("6.5", "6.4", True),
    ("6.10", "6.9", True),
    ("6.5", "6.5", False),
    ("6.4", "6.5", False),
    ("nightly", "6.5", True),
    ("nightly", "nightly", False),
])
def test_is_newer(candidate, current, expected):
    assert is_newer(candidate, current) is expected


def test_check_latest_reports_update(config):
    config.install_dir.mkdir(parents=True)
    config.version_file.write_text("6.4\n")

    report = check_latest(config, FakeResolver(Release("6.5", f"{BASE}/v6.5/traccar-linux-64-6.5.zip")))

    assert report == {
        "latest_version": "6.5",
        "download_url": f"{BASE}/v6.5/traccar-linux-64-6.5.zip",
        "installed_version": "6.4",
        "update_available": True,
    }


def test_check_latest_without_marker(config):
    assert read_installed_version(config) is None
    report = check_latest(config, FakeResolver())
    assert report["installed_version"] is None
    assert report["update_available"] is True
