import shutil
import time
from pathlib import Path

from brewery.cache import MetadataCache
from brewery.cellar import Cellar
from brewery.models import BACKUP_SUFFIX, Formula
from brewery.output import Output


def _tree_size(path: Path) -> int:
    if path.is_file():
        return path.stat().st_size
    return sum(f.stat().st_size for f in path.rglob('*') if f.is_file() and not f.is_symlink())


class Cleanup:
    """Removes stale kegs and downloads, per formula after a reinstall or in a periodic sweep."""

    def __init__(self, cellar: Cellar, cache: MetadataCache, output: Output) -> None:
        self.cellar = cellar
        self.cache = cache
        self.output = output
        self.config = cellar.config

    def install_formula_clean(self, formula: Formula) -> None:
        if self.config.no_install_cleanup:
            return
        freed = self._clean_rack(formula.rack, self.cellar.entry(formula.name).get("version"))
        for archive in self.config.cache_dir.glob(f"{formula.name}--*.tar.gz"):
            freed += archive.stat().st_size
            archive.unlink()
        if freed:
            self.output.print(f"Removing old versions of {formula.name}: freed {freed / (1024*1024):.2f} MB",
                              essential=False)

    def periodic_clean(self) -> None:
        """Run the full sweep if the last one is older than the configured interval."""
        if self.config.no_install_cleanup:
            return

        stamp = self.config.cleanup_stamp
        if not stamp.exists():
            stamp.parent.mkdir(parents=True, exist_ok=True)
            stamp.touch()
            return

        age_days = (time.time() - stamp.stat().st_mtime) / 86400
        if age_days < self.config.cleanup_periodic_full_days:
            return

        self.output.ohai(f"`br cleanup` has not been run in the last {self.config.cleanup_periodic_full_days} days, "
                         "running now...")
        self.cleanup()
        stamp.touch()

    def cleanup(self) -> int:
        """Remove stray archives, inactive kegs and expired cache rows; return bytes freed."""
        self.output.print("Cleaning up...", essential=False)
        bytes_saved = 0

        for tmp_file in self.config.cache_dir.glob("*.tar.gz"):
            bytes_saved += tmp_file.stat().st_size
            tmp_file.unlink()

        if self.config.cellar.is_dir():
            for rack in self.config.cellar.iterdir():
                if rack.is_dir():
                    bytes_saved += self._clean_rack(rack, self.cellar.entry(rack.name).get("version"))

        expired_count = self.cache.clear_expired()
        self.output.success(f"Cleanup complete! Freed {bytes_saved / (1024*1024):.2f} MB")
        self.output.success(f"Removed {expired_count} expired cache entries")
        return bytes_saved

    def _clean_rack(self, rack: Path, active_version) -> int:
        # Without a recorded active version there is nothing safe to remove.
        if not active_version or not rack.is_dir():
            return 0
        freed = 0
        for ver_folder in rack.iterdir():
            if ver_folder.is_dir() and ver_folder.name != active_version and not ver_folder.name.endswith(BACKUP_SUFFIX):
                freed += _tree_size(ver_folder)
                self.output.log(f"Removing {ver_folder}")
                shutil.rmtree(ver_folder)
        return freed
