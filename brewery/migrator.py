import shutil

from brewery.cellar import Cellar
from brewery.errors import MigrationError
from brewery.installer import unlink_entry
from brewery.models import Formula
from brewery.output import Output


class Migrator:
    """Moves kegs installed under a formula's former name over to its current name."""

    def __init__(self, cellar: Cellar, output: Output) -> None:
        self.cellar = cellar
        self.output = output

    def migrate_if_needed(self, formula: Formula, force: bool = False) -> None:
        for oldname in formula.oldnames:
            if oldname != formula.name and (self.cellar.config.cellar / oldname).is_dir():
                self.migrate(formula, oldname, force=force)

    def migrate(self, formula: Formula, oldname: str, force: bool = False) -> None:
        old_rack = self.cellar.config.cellar / oldname
        new_rack = formula.rack
        self.output.ohai(f"Migrating formula {oldname} to {formula.name}")

        if new_rack.exists():
            if not force:
                raise MigrationError(
                    f"{formula.name} is already installed next to its old name {oldname}; "
                    f"rerun with --force to merge {old_rack} into {new_rack}"
                )
            for keg in old_rack.iterdir():
                target = new_rack / keg.name
                if target.exists():
                    shutil.rmtree(target)
                shutil.move(str(keg), str(target))
            old_rack.rmdir()
        else:
            old_rack.rename(new_rack)

        old_entry = self.cellar.inventory["formulae"].pop(oldname, None)
        # Links still point into the old rack; the reinstall that follows relinks.
        unlink_entry(old_entry)
        entry = dict(old_entry or {})
        entry.update(self.cellar.entry(formula.name))
        if "path" in entry:
            entry["path"] = entry["path"].replace(str(old_rack), str(new_rack))
        entry["symlinks"] = []
        self.cellar.set_entry(formula.name, entry)
        self.cellar.api.cache.invalidate(f"formula/{oldname}")
