from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, NamedTuple, Optional, Protocol, Sequence

from brewery.config import OS_MAP

if TYPE_CHECKING:
    from brewery.cellar import Cellar

BACKUP_SUFFIX = ".reinstall"


class KegLike(Protocol):
    @property
    def disk_usage(self) -> int: ...


class BottleLike(Protocol):
    bottle_size: Optional[int]
    installed_size: Optional[int]

    def fetch_tab(self, quiet: bool = True) -> None: ...


class PackageLike(Protocol):
    """What the closure builder, the size aggregator and the pipeline ask of a formula."""

    name: str

    @property
    def dependencies(self) -> Sequence["PackageLike"]: ...

    @property
    def pinned(self) -> bool: ...

    @property
    def outdated(self) -> bool: ...

    @property
    def bottled(self) -> bool: ...

    @property
    def bottle(self) -> Optional[BottleLike]: ...

    @property
    def installed_kegs(self) -> Sequence[KegLike]: ...


class SizeSummary(NamedTuple):
    download: int = 0
    installed: int = 0
    net: int = 0


class Keg:
    def __init__(self, path: Path) -> None:
        self.path = path

    @property
    def name(self) -> str:
        return self.path.parent.name

    @property
    def version(self) -> str:
        return self.path.name

    @cached_property
    def disk_usage(self) -> int:
        return sum(f.stat().st_size for f in self.path.rglob("*") if f.is_file() and not f.is_symlink())

    def __repr__(self) -> str:
        return f"Keg({self.name}/{self.version})"


class Bottle:
    """A prebuilt archive for one platform tag; sizes come from the registry manifest."""

    def __init__(self, formula: "Formula", tag: str, url: str, sha256: str) -> None:
        self.formula = formula
        self.tag = tag
        self.url = url
        self.sha256 = sha256
        self.bottle_size: Optional[int] = None
        self.installed_size: Optional[int] = None
        self._fetched = False

    @property
    def manifest_tag(self) -> str:
        rebuild = self.formula.data.get("bottle", {}).get("stable", {}).get("rebuild", 0)
        return f"{self.formula.pkg_version}-{rebuild}" if rebuild else self.formula.pkg_version

    def fetch_tab(self, quiet: bool = True) -> None:
        if self._fetched:
            return
        cellar = self.formula.cellar
        if not quiet:
            cellar.output.print(f"Fetching {self.formula.name} bottle manifest...")
        manifest = cellar.api.bottle_manifest(self.formula.name, self.manifest_tag)

        for target in manifest.get("manifests", []):
            annotations = target.get("annotations", {})
            if annotations.get("sh.brew.bottle.digest") != self.sha256:
                continue
            if "sh.brew.bottle.size" in annotations:
                self.bottle_size = int(annotations["sh.brew.bottle.size"])
            if "sh.brew.bottle.installed_size" in annotations:
                self.installed_size = int(annotations["sh.brew.bottle.installed_size"])
            break
        self._fetched = True

    def __repr__(self) -> str:
        return f"Bottle({self.formula.name}, {self.tag})"


class Formula:
    def __init__(self, name: str, cellar: "Cellar") -> None:
        self.name = name
        self.cellar = cellar

    @cached_property
    def data(self) -> Dict[str, Any]:
        return self.cellar.api.formula(self.name)

    @property
    def full_name(self) -> str:
        return self.data.get("full_name", self.name)

    @property
    def version(self) -> str:
        return self.data["versions"]["stable"]

    @property
    def pkg_version(self) -> str:
        revision = self.data.get("revision", 0)
        return f"{self.version}_{revision}" if revision else self.version

    @property
    def dependency_names(self) -> List[str]:
        return list(self.data.get("dependencies", []))

    @property
    def oldnames(self) -> List[str]:
        return list(self.data.get("oldnames", []))

    @property
    def dependencies(self) -> List["Formula"]:
        return [self.cellar.formula(dep) for dep in self.dependency_names]

    @property
    def rack(self) -> Path:
        return self.cellar.config.cellar / self.name

    @property
    def installed_kegs(self) -> List[Keg]:
        if not self.rack.is_dir():
            return []
        return [Keg(p) for p in sorted(self.rack.iterdir()) if p.is_dir() and not p.name.endswith(BACKUP_SUFFIX)]

    @property
    def installed(self) -> bool:
        return bool(self.installed_kegs)

    @property
    def outdated(self) -> bool:
        kegs = self.installed_kegs
        return bool(kegs) and self.pkg_version not in {k.version for k in kegs}

    @property
    def pinned(self) -> bool:
        return bool(self.cellar.entry(self.name).get("pinned", False))

    def bottle_for(self, force_bottle: bool = False) -> Optional[Bottle]:
        files = self.data.get("bottle", {}).get("stable", {}).get("files", {})
        flavor = self.cellar.config.os_flavor
        candidates = [flavor, "all"]
        if force_bottle and not flavor.endswith("_linux"):
            prefix = "arm64_" if flavor.startswith("arm64_") else "x86_64_"
            candidates += [f"{prefix}{codename}" for codename in OS_MAP.values()]
            candidates += list(OS_MAP.values())

        for tag in candidates:
            if tag in files:
                return Bottle(self, tag, files[tag]["url"], files[tag]["sha256"])
        return None

    @cached_property
    def bottle(self) -> Optional[Bottle]:
        return self.bottle_for()

    @property
    def bottled(self) -> bool:
        return self.bottle is not None

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Formula({self.name})"


class Cask:
    def __init__(self, token: str, entry: Optional[Dict[str, Any]] = None) -> None:
        self.token = token
        self.entry = entry or {}

    @property
    def version(self) -> Optional[str]:
        return self.entry.get("version")

    def __str__(self) -> str:
        return self.token

    def __repr__(self) -> str:
        return f"Cask({self.token})"
