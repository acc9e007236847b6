import fcntl
import json
from typing import Any, Dict, List, Optional, Tuple

from brewery.api import BrewApi
from brewery.config import Config
from brewery.errors import BreweryError, MetadataError
from brewery.models import Cask, Formula
from brewery.output import Output


class Cellar:
    """The installed-package registry: kegs on disk plus the JSON inventory."""

    def __init__(self, config: Config, api: BrewApi, output: Output) -> None:
        self.config = config
        self.api = api
        self.output = output
        self._formulae: Dict[str, Formula] = {}
        self.inventory = self._load_inventory()

    def _load_inventory(self) -> Dict[str, Dict[str, Any]]:
        inventory: Dict[str, Any] = {}
        if self.config.inventory_file.exists():
            try:
                with open(self.config.inventory_file, 'r') as f:
                    inventory = json.load(f)
            except json.JSONDecodeError:
                self.output.opoo(f"{self.config.inventory_file} is corrupt, starting with an empty inventory.")
                inventory = {}

        # Older inventories were a flat {name: entry} map of formulae.
        if inventory and "formulae" not in inventory and "casks" not in inventory:
            inventory = {"formulae": inventory}
        inventory.setdefault("formulae", {})
        inventory.setdefault("casks", {})
        return inventory

    def save(self) -> None:
        """Save inventory with file locking."""
        self.config.inventory_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config.inventory_file, 'w') as f:
            try:
                fcntl.flock(f, fcntl.LOCK_EX)
                json.dump(self.inventory, f, indent=4)
            finally:
                fcntl.flock(f, fcntl.LOCK_UN)

    def entry(self, name: str) -> Dict[str, Any]:
        return self.inventory["formulae"].get(name, {})

    def set_entry(self, name: str, entry: Dict[str, Any]) -> None:
        self.inventory["formulae"][name] = entry
        self.save()

    def cask_entry(self, token: str) -> Dict[str, Any]:
        return self.inventory["casks"].get(token, {})

    def set_cask_entry(self, token: str, entry: Dict[str, Any]) -> None:
        self.inventory["casks"][token] = entry
        self.save()

    def formula(self, name: str) -> Formula:
        if name not in self._formulae:
            self._formulae[name] = Formula(name, self)
        return self._formulae[name]

    def installed_formulae(self) -> List[Formula]:
        if not self.config.cellar.is_dir():
            return []
        names = sorted(p.name for p in self.config.cellar.iterdir() if p.is_dir())
        return [f for f in (self.formula(n) for n in names) if f.installed]

    def resolve(self, names: List[str], only: Optional[str] = None) -> Tuple[List[Formula], List[Cask]]:
        """Split command-line names into formulae and casks.

        ``only`` is ``"formula"`` or ``"cask"`` when the user forced the kind.
        """
        formulae: List[Formula] = []
        casks: List[Cask] = []
        for name in names:
            if only == "cask" or (only is None and name in self.inventory["casks"]
                                  and name not in self.inventory["formulae"]):
                casks.append(Cask(name, self.cask_entry(name)))
                continue

            formula = self.formula(name)
            try:
                formula.data
            except MetadataError:
                if only == "formula":
                    raise
                self.api.cask(name)
                casks.append(Cask(name, self.cask_entry(name)))
                continue
            formulae.append(formula)
        return formulae, casks

    def set_pinned(self, name: str, pinned: bool) -> None:
        if not self.formula(name).installed:
            raise BreweryError(f"{name} is not installed")
        entry = dict(self.entry(name))
        entry["pinned"] = pinned
        self.set_entry(name, entry)
