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

import posixpath
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests
from packaging import version as pkg_version

from traccar_tools.config import ToolsConfig
from traccar_tools.utils.index import log_message
from traccar_tools.utils.errors import ResolutionError


@dataclass(frozen=True)
class Release:
    """A resolved upstream release asset."""
    version: str
    download_url: str

    @property
    def filename(self) -> str:
        return posixpath.basename(urlparse(self.download_url).path)


class ReleaseResolver:
    """
    Finds the newest Traccar linux-64 zip on the upstream release index.

    Assets are taken in the order upstream lists them and the first match
    wins. If upstream ever lists an older asset first, that one is returned;
    no numeric re-sorting is attempted.
    """

    def __init__(self, config: ToolsConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def _fetch_index(self) -> Dict[str, Any]:
        try:
            r = self.session.get(
                self.config.release_api_url,
                headers={"Accept": "application/vnd.github+json"},
                timeout=self.config.http_timeout
            )
            r.raise_for_status()
            return r.json()
        except requests.RequestException as e:
            raise ResolutionError(f"Failed to fetch release index: {e}")
        except ValueError as e:
            raise ResolutionError(f"Release index is not valid JSON: {e}")

    def _asset_name(self, asset: Dict[str, Any]) -> str:
        url = asset.get("browser_download_url") or ""
        return posixpath.basename(urlparse(url).path) or asset.get("name", "")

    def _matches(self, name: str) -> bool:
        prefix, suffix = self.config.asset_prefix, self.config.asset_suffix
        return name.startswith(prefix) and name.endswith(suffix) and len(name) > len(prefix) + len(suffix)

    def resolve_latest(self) -> Release:
        """
        Resolve the latest matching release asset.

        Returns:
            Release: version parsed from the asset filename and its download URL

        Raises:
            ResolutionError: If the index cannot be fetched or nothing matches
        """
        log_message("Fetching latest Traccar release metadata")
        data = self._fetch_index()

        assets = data.get("assets") if isinstance(data, dict) else None
        for asset in assets or []:
            if not isinstance(asset, dict):
                continue
            name = self._asset_name(asset)
            url = asset.get("browser_download_url")
            if not url or not self._matches(name):
                continue

            release = Release(
                version=name[len(self.config.asset_prefix):-len(self.config.asset_suffix)],
                download_url=url
            )
            log_message(f"Latest Traccar version: {release.version} ({release.download_url})")
            return release

        raise ResolutionError(
            f"No asset matching {self.config.asset_prefix}*{self.config.asset_suffix} in release index"
        )


def read_installed_version(config: ToolsConfig) -> Optional[str]:
    """Read the installed version marker, if any."""
    try:
        return config.version_file.read_text().strip() or None
    except OSError:
        return None


def is_newer(candidate: str, current: Optional[str]) -> bool:
    """True if `candidate` is newer than `current`, or differs when versions cannot be parsed."""
    if not current:
        return True
    try:
        return pkg_version.parse(candidate) > pkg_version.parse(current)
    except pkg_version.InvalidVersion:
        return candidate != current


def check_latest(config: ToolsConfig, resolver: Optional[ReleaseResolver] = None) -> Dict[str, Any]:
    """
    Report the latest upstream release against the installed version marker.

    Returns:
        dict: latest_version, download_url, installed_version, update_available
    """
    resolver = resolver or ReleaseResolver(config)
    release = resolver.resolve_latest()
    installed = read_installed_version(config)
    update_available = is_newer(release.version, installed)

    if installed:
        log_message(f"Installed Traccar version: {installed}")
    else:
        log_message("No installed version marker found")
    log_message("Update available" if update_available else "Traccar is up to date")

    return {
        "latest_version": release.version,
        "download_url": release.download_url,
        "installed_version": installed,
        "update_available": update_available
    }
