import pytest

from brewery.errors import MigrationError
from brewery.migrator import Migrator

from conftest import make_formula_json, make_keg


@pytest.fixture
def migrator(cellar, output):
    return Migrator(cellar, output)


def test_old_rack_is_renamed(config, cellar, migrator, formula_data):
    formula_data["newname"] = make_formula_json("newname", oldnames=["oldname"])
    old_keg = make_keg(config, "oldname", "1.0", size=4)
    link = config.bin_dir / "oldname"
    link.symlink_to(old_keg / "bin" / "oldname")
    cellar.set_entry("oldname", {"version": "1.0", "path": str(old_keg), "symlinks": [str(link)], "pinned": True})

    migrator.migrate_if_needed(cellar.formula("newname"))

    assert not (config.cellar / "oldname").exists()
    assert (config.cellar / "newname" / "1.0" / "bin" / "oldname").exists()
    assert not link.is_symlink()
    assert "oldname" not in cellar.inventory["formulae"]
    entry = cellar.entry("newname")
    assert entry["path"] == str(config.cellar / "newname" / "1.0")
    assert entry["pinned"] is True


def test_nothing_happens_without_old_rack(config, cellar, migrator, formula_data):
    formula_data["newname"] = make_formula_json("newname", oldnames=["oldname"])
    make_keg(config, "newname", "1.0")

    migrator.migrate_if_needed(cellar.formula("newname"))

    assert cellar.entry("newname") == {}


def test_existing_new_rack_requires_force(config, cellar, migrator, formula_data):
    formula_data["newname"] = make_formula_json("newname", oldnames=["oldname"])
    make_keg(config, "oldname", "1.0")
    make_keg(config, "newname", "2.0")

    with pytest.raises(MigrationError):
        migrator.migrate_if_needed(cellar.formula("newname"))

    migrator.migrate_if_needed(cellar.formula("newname"), force=True)

    assert sorted(p.name for p in (config.cellar / "newname").iterdir()) == ["1.0", "2.0"]
    assert not (config.cellar / "oldname").exists()
