"""The `br reinstall` pipeline.

Formulae go through an optional size estimate and confirmation. Each one is then
pin-checked, migrated, reinstalled and cleaned. Outdated dependents are upgraded
afterwards. Casks are handed to the cask installer in one batch, and periodic cleanup
runs at the end.
"""
import shutil
import sys
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, TextIO

from brewery.closure import compute_sized_formulae
from brewery.config import Config
from brewery.confirm import Decision, ask_input
from brewery.errors import BuildFlagsError
from brewery.models import Cask, PackageLike
from brewery.output import Output
from brewery.sizing import compute_total_sizes, disk_usage_readable

COMPILERS = ["cc", "clang", "gcc"]


@dataclass(frozen=True)
class ReinstallOptions:
    build_from_source: bool = False
    force_bottle: bool = False
    interactive: bool = False
    keep_tmp: bool = False
    debug_symbols: bool = False
    force: bool = False
    debug: bool = False
    quiet: bool = False
    verbose: bool = False
    git: bool = False
    ask: bool = False
    display_times: bool = False


@dataclass(frozen=True)
class CaskOptions:
    binaries: bool = True
    require_sha: bool = False
    quarantine: bool = True
    adopt: bool = False
    skip_cask_deps: bool = False
    zap: bool = False
    force: bool = False


class MigratorLike(Protocol):
    def migrate_if_needed(self, formula, force: bool = False) -> None: ...


class FormulaInstallerLike(Protocol):
    def reinstall_formula(self, formula, options: ReinstallOptions) -> None: ...

    def check_installed_dependents(self, formulae: Sequence, options: ReinstallOptions) -> None: ...


class CleanupLike(Protocol):
    def install_formula_clean(self, formula) -> None: ...

    def periodic_clean(self) -> None: ...


class CaskInstallerLike(Protocol):
    def reinstall_casks(self, casks: Sequence[Cask], options: CaskOptions) -> None: ...


def development_tools_installed() -> bool:
    return any(shutil.which(cc) for cc in COMPILERS) and shutil.which("make") is not None


def preflight(formulae: Sequence[PackageLike], options: ReinstallOptions, config: Config, output: Output,
              tools_installed: Callable[[], bool] = development_tools_installed) -> Optional[BuildFlagsError]:
    """Return the fatal error that must stop the run before anything is touched, if any."""
    if not options.build_from_source:
        return None

    if not tools_installed():
        return BuildFlagsError(["--build-from-source"], bottled=all(f.bottled for f in formulae))

    if not config.developer:
        output.opoo("building from source is not supported!")
        output.print("You're on your own. Failures are expected so don't create any issues, please!")
    return None


class Reinstall:
    def __init__(
        self,
        config: Config,
        output: Output,
        installer: FormulaInstallerLike,
        migrator: MigratorLike,
        cleanup: CleanupLike,
        cask_installer: CaskInstallerLike,
        stdin: Optional[TextIO] = None,
        tools_installed: Callable[[], bool] = development_tools_installed,
    ) -> None:
        self.config = config
        self.output = output
        self.installer = installer
        self.migrator = migrator
        self.cleanup = cleanup
        self.cask_installer = cask_installer
        self.stdin = stdin or sys.stdin
        self.tools_installed = tools_installed

    def run(self, formulae: Sequence[PackageLike], casks: Sequence[Cask],
            options: ReinstallOptions, cask_options: Optional[CaskOptions] = None) -> int:
        """Run the whole command and return the process exit status."""
        error = preflight(formulae, options, self.config, self.output, self.tools_installed)
        if error is not None:
            self.output.onoe(str(error))
            return 1

        if formulae:
            if options.ask and self.confirm(formulae, options) is Decision.ABORT:
                return 0
            self.reinstall_formulae(formulae, options)

        if casks:
            self.cask_installer.reinstall_casks(list(casks), cask_options or CaskOptions())

        self.cleanup.periodic_clean()
        self.output.display_messages(display_times=options.display_times)
        return 0

    def confirm(self, formulae: Sequence[PackageLike], options: ReinstallOptions) -> Decision:
        self.output.ohai("Looking for bottles...", essential=True)
        # Only the named formulae are reinstalled, so only they are sized.
        sized = compute_sized_formulae(formulae, check_dependents=False, config=self.config)
        sizes = compute_total_sizes(sized, verbose_fetch=options.debug)

        self.output.print(f"Formulae: {', '.join(str(f) for f in sized)}\n")
        self.output.print(f"Download Size: {disk_usage_readable(sizes.download)}")
        self.output.print(f"Install Size:  {disk_usage_readable(sizes.installed)}")
        if sizes.net != 0:
            self.output.print(f"Net Install Size: {disk_usage_readable(sizes.net)}")

        return ask_input(self.stdin, self.output)

    def reinstall_formulae(self, formulae: Sequence[PackageLike], options: ReinstallOptions) -> None:
        """Reinstall every unpinned formula in order, then upgrade outdated dependents."""
        for formula in formulae:
            if formula.pinned:
                self.output.onoe(f"{formula} is pinned. You must unpin it to reinstall.")
                continue
            self.migrator.migrate_if_needed(formula, force=options.force)
            self.installer.reinstall_formula(formula, options)
            self.cleanup.install_formula_clean(formula)

        self.installer.check_installed_dependents(formulae, options)
