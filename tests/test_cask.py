import hashlib
from pathlib import Path

import pytest

from brewery.cask import CaskInstaller, artifact_names
from brewery.errors import ChecksumError
from brewery.models import Cask
from brewery.reinstall import CaskOptions

PAYLOAD = b"dmg-bytes"


def cask_json(token, sha256=None, version="1.0", depends_on=None):
    return {
        "token": token,
        "version": version,
        "url": f"https://example.com/{token}-{version}.dmg?x=1",
        "sha256": sha256 or hashlib.sha256(PAYLOAD).hexdigest(),
        "artifacts": [{"app": [f"{token.title()}.app"]}, {"binary": ["bin/tool", {"target": "tool"}]}],
        "depends_on": depends_on or {},
    }


@pytest.fixture
def casks(api):
    documents = {}
    api.cask.side_effect = lambda token, force_refresh=False: documents[token]

    def download(url, dest, headers=None, on_progress=None):
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(PAYLOAD)
        return dest

    api.download.side_effect = download
    return documents


@pytest.fixture
def cask_installer(cellar, output):
    return CaskInstaller(cellar, output)


def test_cask_is_downloaded_and_recorded(config, cellar, cask_installer, casks):
    casks["firefox"] = cask_json("firefox", version="121.0")

    cask_installer.reinstall_casks([Cask("firefox")], CaskOptions(quarantine=False))

    download = config.caskroom / "firefox" / "121.0" / "firefox-121.0.dmg"
    assert download.read_bytes() == PAYLOAD
    entry = cellar.cask_entry("firefox")
    assert entry["version"] == "121.0"
    assert entry["quarantine"] is False
    assert entry["artifacts"] == ["app: Firefox.app", "binary: bin/tool"]


def test_require_sha_rejects_unchecked_casks(cask_installer, casks, api):
    casks["chrome"] = cask_json("chrome", sha256="no_check")

    with pytest.raises(ChecksumError):
        cask_installer.reinstall_casks([Cask("chrome")], CaskOptions(require_sha=True))
    api.download.assert_not_called()


def test_checksum_mismatch_fails(config, cask_installer, casks):
    casks["firefox"] = cask_json("firefox", sha256="f" * 64)

    with pytest.raises(ChecksumError):
        cask_installer.reinstall_casks([Cask("firefox")], CaskOptions())
    assert not (config.caskroom / "firefox" / "1.0" / "firefox-1.0.dmg").exists()


def test_zap_clears_the_whole_caskroom(config, cask_installer, casks):
    casks["firefox"] = cask_json("firefox", version="2.0")
    leftover = config.caskroom / "firefox" / "1.0" / "old.dmg"
    leftover.parent.mkdir(parents=True)
    leftover.write_bytes(b"old")
    keep = config.caskroom / "firefox" / ".metadata"
    keep.mkdir()

    cask_installer.reinstall_casks([Cask("firefox", {"version": "1.0"})], CaskOptions(zap=True))

    assert not leftover.exists()
    assert not keep.exists()


def test_missing_cask_dependencies_are_installed_unless_skipped(cellar, cask_installer, casks):
    casks["app"] = cask_json("app", depends_on={"cask": ["helper"]})
    casks["helper"] = cask_json("helper")

    cask_installer.reinstall_casks([Cask("app")], CaskOptions(skip_cask_deps=True))
    assert cellar.cask_entry("helper") == {}

    cask_installer.reinstall_casks([Cask("app")], CaskOptions())
    assert cellar.cask_entry("helper")["version"] == "1.0"


def test_artifact_names_ignores_non_string_entries():
    assert artifact_names({"artifacts": [{"uninstall": [{"quit": "x"}]}, "bogus"]}) == []


def place_download(config, token, version, payload=PAYLOAD):
    dest = config.caskroom / token / version / f"{token}-{version}.dmg"
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(payload)
    return dest


def test_verified_download_is_reused_without_force(config, cellar, cask_installer, casks, api):
    casks["firefox"] = cask_json("firefox")
    dest = place_download(config, "firefox", "1.0")

    cask_installer.reinstall_casks([Cask("firefox", {"version": "1.0"})], CaskOptions())

    api.download.assert_not_called()
    assert dest.read_bytes() == PAYLOAD
    assert cellar.cask_entry("firefox")["download"] == str(dest)


def test_force_downloads_again(config, cask_installer, casks, api):
    casks["firefox"] = cask_json("firefox")
    place_download(config, "firefox", "1.0")

    cask_installer.reinstall_casks([Cask("firefox", {"version": "1.0"})], CaskOptions(force=True))

    api.download.assert_called_once()


def test_stale_download_is_replaced(config, cask_installer, casks, api):
    casks["firefox"] = cask_json("firefox")
    dest = place_download(config, "firefox", "1.0", payload=b"corrupt")

    cask_installer.reinstall_casks([Cask("firefox", {"version": "1.0"})], CaskOptions())

    api.download.assert_called_once()
    assert dest.read_bytes() == PAYLOAD


def test_upgrade_removes_previous_version_directory(config, cask_installer, casks):
    casks["firefox"] = cask_json("firefox", version="2.0")
    old = place_download(config, "firefox", "1.0")

    cask_installer.reinstall_casks([Cask("firefox", {"version": "1.0"})], CaskOptions())

    assert not old.parent.exists()
    assert (config.caskroom / "firefox" / "2.0" / "firefox-2.0.dmg").exists()
