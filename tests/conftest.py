import io
from dataclasses import dataclass, field
from typing import List, Optional
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from brewery.cache import MetadataCache
from brewery.cellar import Cellar
from brewery.config import Config
from brewery.output import Output


@dataclass
class FakeKeg:
    disk_usage: int


@dataclass
class FakeBottle:
    bottle_size: Optional[int] = None
    installed_size: Optional[int] = None
    fetches: List[bool] = field(default_factory=list)
    error: Optional[Exception] = None

    def fetch_tab(self, quiet: bool = True) -> None:
        self.fetches.append(quiet)
        if self.error:
            raise self.error


@dataclass
class FakePackage:
    name: str
    dependencies: list = field(default_factory=list)
    pinned: bool = False
    outdated: bool = False
    bottle: Optional[FakeBottle] = None
    installed_kegs: list = field(default_factory=list)

    @property
    def bottled(self) -> bool:
        return self.bottle is not None

    def __str__(self) -> str:
        return self.name


@pytest.fixture
def console_buffer():
    return io.StringIO()


@pytest.fixture
def output(console_buffer):
    return Output(console=Console(file=console_buffer, width=200, force_terminal=False, color_system=None))


@pytest.fixture
def config(tmp_path):
    cfg = Config(home=tmp_path / "br", os_flavor="arm64_sonoma")
    cfg.ensure_dirs()
    return cfg


@pytest.fixture
def formula_data():
    """Formula JSON documents served by the fake API, keyed by name."""
    return {}


@pytest.fixture
def api(config, formula_data):
    from brewery.errors import MetadataError

    def lookup(name, force_refresh=False):
        if name not in formula_data:
            raise MetadataError(f"No available formula with the name \"{name}\"")
        return formula_data[name]

    fake = MagicMock()
    fake.formula.side_effect = lookup
    fake.cache = MetadataCache(config.cache_db)
    return fake


@pytest.fixture
def cellar(config, api, output):
    return Cellar(config, api, output)


def make_formula_json(name, version="1.0", deps=(), tags=("arm64_sonoma",), revision=0, oldnames=()):
    return {
        "name": name,
        "full_name": name,
        "versions": {"stable": version},
        "revision": revision,
        "dependencies": list(deps),
        "oldnames": list(oldnames),
        "bottle": {"stable": {"rebuild": 0, "files": {
            tag: {"url": f"https://ghcr.io/v2/homebrew/core/{name}/blobs/sha256:{tag}", "sha256": f"{name}-{tag}"}
            for tag in tags
        }}},
    }


def make_keg(config, name, version, size=0):
    keg = config.cellar / name / version
    (keg / "bin").mkdir(parents=True, exist_ok=True)
    if size:
        (keg / "bin" / name).write_bytes(b"x" * size)
    return keg
