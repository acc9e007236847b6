import json

import pytest

from brewery.cellar import Cellar
from brewery.errors import BreweryError, MetadataError
from brewery.models import Cask, Formula, Keg

from conftest import make_formula_json, make_keg


def test_formula_is_outdated_when_latest_version_is_not_installed(config, cellar, formula_data):
    formula_data["wget"] = make_formula_json("wget", version="1.1")
    make_keg(config, "wget", "1.0")

    assert cellar.formula("wget").outdated is True

    make_keg(config, "wget", "1.1")
    assert cellar.formula("wget").outdated is False


def test_uninstalled_formula_is_not_outdated(cellar, formula_data):
    formula_data["wget"] = make_formula_json("wget")
    assert cellar.formula("wget").outdated is False


def test_pkg_version_includes_revision(cellar, formula_data):
    formula_data["curl"] = make_formula_json("curl", version="8.0", revision=2)
    assert cellar.formula("curl").pkg_version == "8.0_2"


def test_dependencies_share_formula_objects(cellar, formula_data):
    formula_data["wget"] = make_formula_json("wget", deps=["openssl@3"])
    formula_data["openssl@3"] = make_formula_json("openssl@3")

    dep = cellar.formula("wget").dependencies[0]
    assert dep is cellar.formula("openssl@3")


def test_bottle_prefers_exact_tag_then_all(cellar, formula_data):
    formula_data["a"] = make_formula_json("a", tags=("arm64_sonoma", "all"))
    formula_data["b"] = make_formula_json("b", tags=("all",))
    formula_data["c"] = make_formula_json("c", tags=("x86_64_linux",))

    assert cellar.formula("a").bottle.tag == "arm64_sonoma"
    assert cellar.formula("b").bottle.tag == "all"
    assert cellar.formula("c").bottle is None
    assert cellar.formula("c").bottled is False


def test_force_bottle_falls_back_to_newest_macos_for_same_arch(cellar, formula_data):
    formula_data["a"] = make_formula_json("a", tags=("arm64_ventura", "arm64_sequoia", "sequoia"))

    formula = cellar.formula("a")
    assert formula.bottle_for() is None
    assert formula.bottle_for(force_bottle=True).tag == "arm64_sequoia"


def test_keg_disk_usage_counts_files(config):
    keg_dir = make_keg(config, "wget", "1.0", size=10)
    (keg_dir / "share").mkdir()
    (keg_dir / "share" / "doc").write_bytes(b"12345")
    (keg_dir / "bin" / "link").symlink_to(keg_dir / "share" / "doc")

    keg = Keg(keg_dir)
    assert keg.disk_usage == 15
    assert (keg.name, keg.version) == ("wget", "1.0")


def test_reinstall_backups_are_not_kegs(config, cellar, formula_data):
    formula_data["wget"] = make_formula_json("wget")
    make_keg(config, "wget", "1.0")
    make_keg(config, "wget", "1.0.reinstall")

    assert [k.version for k in cellar.formula("wget").installed_kegs] == ["1.0"]


def test_fetch_tab_reads_sizes_for_matching_digest(cellar, api, formula_data):
    formula_data["wget"] = make_formula_json("wget", version="1.24.5")
    api.bottle_manifest.return_value = {"manifests": [
        {"annotations": {"sh.brew.bottle.digest": "other", "sh.brew.bottle.size": "1"}},
        {"annotations": {
            "sh.brew.bottle.digest": "wget-arm64_sonoma",
            "sh.brew.bottle.size": "1500",
            "sh.brew.bottle.installed_size": "4200",
        }},
    ]}

    bottle = cellar.formula("wget").bottle
    bottle.fetch_tab()
    bottle.fetch_tab()

    assert (bottle.bottle_size, bottle.installed_size) == (1500, 4200)
    api.bottle_manifest.assert_called_once_with("wget", "1.24.5")


def test_manifest_tag_carries_rebuild(cellar, formula_data):
    data = make_formula_json("wget", version="1.24.5")
    data["bottle"]["stable"]["rebuild"] = 1
    formula_data["wget"] = data

    assert cellar.formula("wget").bottle.manifest_tag == "1.24.5-1"


def test_pinned_flag_comes_from_inventory(config, cellar, formula_data):
    formula_data["wget"] = make_formula_json("wget")
    make_keg(config, "wget", "1.0")

    cellar.set_pinned("wget", True)

    assert cellar.formula("wget").pinned is True
    saved = json.loads(config.inventory_file.read_text())
    assert saved["formulae"]["wget"]["pinned"] is True


def test_pinning_uninstalled_formula_fails(cellar, formula_data):
    formula_data["wget"] = make_formula_json("wget")
    with pytest.raises(BreweryError):
        cellar.set_pinned("wget", True)


def test_flat_inventory_is_read_as_formulae(config, api, output):
    config.inventory_file.write_text(json.dumps({"wget": {"version": "1.0", "path": "/x", "symlinks": []}}))

    cellar = Cellar(config, api, output)

    assert cellar.entry("wget")["version"] == "1.0"
    assert cellar.inventory["casks"] == {}


def test_installed_formulae_lists_racks_with_kegs(config, cellar, formula_data):
    formula_data["wget"] = make_formula_json("wget")
    make_keg(config, "wget", "1.0")
    (config.cellar / "empty").mkdir()

    assert [f.name for f in cellar.installed_formulae()] == ["wget"]


def test_resolve_splits_formulae_and_casks(cellar, api, formula_data):
    formula_data["wget"] = make_formula_json("wget")
    cellar.inventory["casks"]["firefox"] = {"version": "120.0"}
    api.cask.return_value = {"token": "iterm2"}

    formulae, casks = cellar.resolve(["wget", "firefox", "iterm2"])

    assert [f.name for f in formulae] == ["wget"]
    assert [str(c) for c in casks] == ["firefox", "iterm2"]
    assert casks[0].version == "120.0"


def test_resolve_respects_forced_kind(cellar, formula_data):
    formula_data["wget"] = make_formula_json("wget")

    formulae, casks = cellar.resolve(["wget"], only="cask")
    assert formulae == [] and isinstance(casks[0], Cask)

    with pytest.raises(MetadataError):
        cellar.resolve(["missing"], only="formula")


def test_formula_repr_and_str(cellar):
    formula = cellar.formula("wget")
    assert isinstance(formula, Formula)
    assert str(formula) == "wget"
