import concurrent.futures
import dataclasses
import shutil
import tarfile
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from rich.progress import Progress, TaskID

from brewery.api import file_sha256
from brewery.cellar import Cellar
from brewery.errors import BottleUnavailableError, ChecksumError, UnsupportedBuildError
from brewery.models import BACKUP_SUFFIX, Bottle, Formula
from brewery.output import Output
from brewery.reinstall import ReinstallOptions

MAX_PARALLEL_DOWNLOADS = 5


class Installer:
    """Pours bottles into the Cellar and keeps the inventory in step."""

    def __init__(self, cellar: Cellar, output: Output) -> None:
        self.cellar = cellar
        self.output = output
        self.config = cellar.config
        self.api = cellar.api

    def _resolve_graph(self, formula: Formula, res_map: Dict[str, Formula]):
        if formula.name in res_map:
            return
        res_map[formula.name] = formula
        for dep in formula.dependencies:
            self._resolve_graph(dep, res_map)

    def install_formulae(self, names: List[str], force: bool = False) -> None:
        """Install ``names`` and any missing dependencies, downloading in parallel."""
        resolution_map: Dict[str, Formula] = {}
        with self.output.status("[bold blue]Resolving dependencies..."):
            for name in names:
                self._resolve_graph(self.cellar.formula(name), resolution_map)

        to_fetch = [f for f in resolution_map.values() if force or not f.installed]
        if not to_fetch:
            self.output.success("All requested packages are already installed. Use `br reinstall` to reinstall.")
            return

        options = ReinstallOptions()
        bottles = {formula.name: self._bottle(formula, options) for formula in to_fetch}
        # Worker threads only download; registry tokens are fetched here.
        tokens = {formula.name: self.api.ghcr_token(formula.name) for formula in to_fetch}

        with self.output.progress() as progress:
            with concurrent.futures.ThreadPoolExecutor(max_workers=MAX_PARALLEL_DOWNLOADS) as executor:
                futures = {}
                for formula in to_fetch:
                    task_id = progress.add_task(f"Installing {formula.name}...", total=None)
                    futures[executor.submit(self._pour, formula, bottles[formula.name], tokens[formula.name],
                                            options, progress, task_id)] = formula

                for future in concurrent.futures.as_completed(futures):
                    formula = futures[future]
                    entry = future.result()
                    entry["installed_on_request"] = formula.name in names
                    entry["pinned"] = self.cellar.entry(formula.name).get("pinned", False)
                    self.cellar.set_entry(formula.name, entry)

    def reinstall_formula(self, formula: Formula, options: ReinstallOptions) -> None:
        if options.build_from_source or options.interactive:
            raise UnsupportedBuildError(
                f"{formula.name}: building from source is not available, reinstall it from a bottle instead"
            )
        bottle = self._bottle(formula, options)

        previous = dict(self.cellar.entry(formula.name))
        keg_dir = formula.rack / formula.pkg_version
        backup = keg_dir.with_name(keg_dir.name + BACKUP_SUFFIX)
        if backup.exists():
            shutil.rmtree(backup)
        if keg_dir.exists():
            self.output.log(f"Backing up {keg_dir} to {backup}")
            keg_dir.rename(backup)

        self.output.ohai(f"Reinstalling {formula.full_name}")
        started = time.monotonic()
        try:
            with self.output.progress() as progress:
                task_id = progress.add_task(f"Installing {formula.name}...", total=None)
                entry = self._pour(formula, bottle, self.api.ghcr_token(formula.name), options, progress, task_id)
        except Exception:
            if keg_dir.exists():
                shutil.rmtree(keg_dir, ignore_errors=True)
            if backup.exists():
                self.output.log(f"Restoring {backup}")
                backup.rename(keg_dir)
            raise

        if backup.exists():
            shutil.rmtree(backup)

        for link in set(previous.get("symlinks", [])) - set(entry["symlinks"]):
            path = Path(link)
            if path.is_symlink():
                path.unlink()

        entry["pinned"] = previous.get("pinned", False)
        entry["installed_on_request"] = previous.get("installed_on_request", True)
        self.cellar.set_entry(formula.name, entry)
        self.output.record_time(formula.name, time.monotonic() - started)
        self.output.success(f"Reinstalled {formula.name} {formula.pkg_version}")

    def check_installed_dependents(self, formulae: Sequence[Formula], options: ReinstallOptions) -> None:
        """Upgrade installed formulae that depend on ``formulae`` and are now outdated."""
        if self.config.no_installed_dependents_check:
            return

        names = {str(f) for f in formulae}
        installed = self.cellar.installed_formulae()
        affected = set(names)
        changed = True
        while changed:
            changed = False
            for candidate in installed:
                if candidate.name not in affected and any(d in affected for d in candidate.dependency_names):
                    affected.add(candidate.name)
                    changed = True

        outdated = [f for f in installed if f.name in affected and f.name not in names and f.outdated]
        if not outdated:
            self.output.log("No outdated dependents to upgrade")
            return

        pinned = [f for f in outdated if f.pinned]
        if pinned:
            self.output.opoo(f"Not upgrading {len(pinned)} pinned dependents:\n  "
                             + " ".join(f.name for f in pinned))

        upgradeable = self._dependency_order([f for f in outdated if not f.pinned])
        if not upgradeable:
            return
        self.output.ohai(f"Upgrading {len(upgradeable)} dependents of upgraded formulae:")
        self.output.print(", ".join(f"{f.name} {f.pkg_version}" for f in upgradeable), essential=False)

        # Dependents are always poured; source flags only apply to named formulae.
        dependent_options = dataclasses.replace(options, build_from_source=False, interactive=False,
                                                debug_symbols=False, git=False)
        for dependent in upgradeable:
            self.reinstall_formula(dependent, dependent_options)

    @staticmethod
    def _dependency_order(formulae: List[Formula]) -> List[Formula]:
        remaining = list(formulae)
        ordered: List[Formula] = []
        while remaining:
            pending = {f.name for f in remaining}
            ready = [f for f in remaining if not pending.intersection(f.dependency_names)] or remaining[:1]
            for f in ready:
                remaining.remove(f)
            ordered.extend(ready)
        return ordered

    def _bottle(self, formula: Formula, options: ReinstallOptions) -> Bottle:
        bottle = formula.bottle_for(force_bottle=options.force_bottle)
        if bottle is None:
            raise BottleUnavailableError(f"No bottle available for {formula.name} on {self.config.os_flavor}")
        return bottle

    def _pour(self, formula: Formula, bottle: Bottle, token: str, options: ReinstallOptions,
              progress: Progress, task_id: TaskID) -> Dict[str, Any]:
        """Download, verify, extract and link one bottle; return its inventory entry."""
        pkg, version = formula.name, formula.pkg_version
        try:
            tmp_file = self.config.cache_dir / f"{pkg}--{version}.{bottle.tag}.bottle.tar.gz"

            def advance(size: int, total: int):
                progress.update(task_id, total=total or None, advance=size)

            self.api.download(bottle.url, tmp_file, {"Authorization": f"Bearer {token}"}, advance)

            progress.update(task_id, description=f"[blue]Verifying {pkg}...[/blue]")
            if file_sha256(tmp_file) != bottle.sha256:
                tmp_file.unlink()
                raise ChecksumError(f"SHA256 mismatch for {pkg}")

            progress.update(task_id, description=f"[blue]Extracting {pkg}...[/blue]")
            final_pkg_dir = formula.rack / version
            if final_pkg_dir.exists():
                shutil.rmtree(final_pkg_dir)
            final_pkg_dir.mkdir(parents=True, exist_ok=True)

            extract_dir = Path(tempfile.mkdtemp(prefix=f"br-{pkg}-"))
            try:
                with tarfile.open(tmp_file, "r:gz") as tar:
                    tar.extractall(path=extract_dir, filter="tar")

                if (extract_dir / pkg / version).exists():
                    source_dir = extract_dir / pkg / version
                elif (extract_dir / pkg).exists():
                    source_dir = extract_dir / pkg
                else:
                    source_dir = extract_dir

                for item in source_dir.iterdir():
                    shutil.move(str(item), str(final_pkg_dir))
            finally:
                if options.keep_tmp:
                    self.output.print(f"Temporary files retained at: {extract_dir}", essential=False)
                else:
                    shutil.rmtree(extract_dir, ignore_errors=True)

            if not options.keep_tmp:
                tmp_file.unlink()

            bin_links = self._link(final_pkg_dir)
            progress.update(task_id, description=f"[green]✓ Installed {pkg}[/green]")
            return {
                "version": version,
                "path": str(final_pkg_dir),
                "symlinks": bin_links,
                "poured_from_bottle": True,
                "bottle_tag": bottle.tag,
                "installed_time": time.time(),
            }
        except Exception as e:
            progress.update(task_id, description=f"[red]✗ Failed {pkg}: {str(e)[:30]}[/red]")
            raise

    def _link(self, keg_dir: Path) -> List[str]:
        bin_links = []
        self.config.bin_dir.mkdir(parents=True, exist_ok=True)
        for bin_folder_name in ["bin", "sbin"]:
            bin_path = keg_dir / bin_folder_name
            if not bin_path.exists():
                continue
            for exe in bin_path.iterdir():
                if exe.is_file():
                    exe.chmod(exe.stat().st_mode | 0o111)

                    link_dest = self.config.bin_dir / exe.name
                    if link_dest.exists() or link_dest.is_symlink():
                        link_dest.unlink()
                    link_dest.symlink_to(exe)
                    bin_links.append(str(link_dest))
        return bin_links


def unlink_entry(entry: Optional[Dict[str, Any]]) -> None:
    for link in (entry or {}).get("symlinks", []):
        p = Path(link)
        if p.exists() or p.is_symlink():
            p.unlink()
