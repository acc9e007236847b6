import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

VERSION = "0.1.0"
CACHE_TTL_HOURS = 6
HEADERS = {"User-Agent": "BrPackageManager/0.2"}
REQUEST_TIMEOUT = 15
RETRY_ATTEMPTS = 3
RETRY_DELAY = 2
CLEANUP_PERIODIC_FULL_DAYS = 30

# Newest first, the order force-bottle walks when picking a fallback bottle.
OS_MAP: dict[str, str] = {
    "26": "tahoe", "15": "sequoia", "14": "sonoma", "13": "ventura",
    "12": "monterey", "11": "big_sur", "10.15": "catalina"
}

FALSY = {"", "0", "false", "no", "off"}


def get_os_flavor() -> str:
    system = platform.system().lower()
    machine = platform.machine().lower()
    if system == "linux": return "x86_64_linux"
    elif system == "darwin":
        mac_ver = platform.mac_ver()[0].split(".")[0]
        arch = "arm64" if machine == "arm64" else "x86_64"
        name = OS_MAP.get(mac_ver, "ventura")
        return f"{arch}_{name}"
    else:
        raise OSError("Unsupported Operating System")


OS_FLAVOR = get_os_flavor()


def _flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() not in FALSY


@dataclass(frozen=True)
class Config:
    """Runtime settings, read once from the environment and passed around explicitly."""

    home: Path = field(default_factory=lambda: Path.home() / ".br")
    no_installed_dependents_check: bool = False
    no_install_cleanup: bool = False
    ask: bool = False
    developer: bool = False
    display_install_times: bool = False
    cleanup_periodic_full_days: int = CLEANUP_PERIODIC_FULL_DAYS
    os_flavor: str = OS_FLAVOR

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        env = os.environ if env is None else env
        home = env.get("BREWERY_HOME")
        try:
            days = int(env.get("BREWERY_CLEANUP_PERIODIC_FULL_DAYS", CLEANUP_PERIODIC_FULL_DAYS))
        except ValueError:
            days = CLEANUP_PERIODIC_FULL_DAYS

        return cls(
            home=Path(home).expanduser() if home else Path.home() / ".br",
            no_installed_dependents_check=_flag(env, "BREWERY_NO_INSTALLED_DEPENDENTS_CHECK"),
            no_install_cleanup=_flag(env, "BREWERY_NO_INSTALL_CLEANUP"),
            ask=_flag(env, "BREWERY_ASK"),
            developer=_flag(env, "BREWERY_DEVELOPER"),
            display_install_times=_flag(env, "BREWERY_DISPLAY_INSTALL_TIMES"),
            cleanup_periodic_full_days=days,
        )

    @property
    def cellar(self) -> Path:
        return self.home / "Cellar"

    @property
    def caskroom(self) -> Path:
        return self.home / "Caskroom"

    @property
    def bin_dir(self) -> Path:
        return self.home / "bin"

    @property
    def cache_dir(self) -> Path:
        return self.home / "cache"

    @property
    def inventory_file(self) -> Path:
        return self.home / "inventory.json"

    @property
    def cache_db(self) -> Path:
        return self.cache_dir / "metadata.db"

    @property
    def cleanup_stamp(self) -> Path:
        return self.cache_dir / ".cleaned"

    def ensure_dirs(self) -> None:
        for folder in [self.cellar, self.caskroom, self.bin_dir, self.cache_dir]:
            folder.mkdir(parents=True, exist_ok=True)
