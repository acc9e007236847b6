import argparse
import sys
from typing import List, Optional

from rich import box
from rich.table import Table

from brewery.api import BrewApi
from brewery.cache import MetadataCache
from brewery.cask import CaskInstaller
from brewery.cellar import Cellar
from brewery.cleanup import Cleanup
from brewery.config import VERSION, Config
from brewery.errors import BreweryError
from brewery.installer import Installer
from brewery.migrator import Migrator
from brewery.output import Output
from brewery.reinstall import CaskOptions, Reinstall, ReinstallOptions

FORMULA_ONLY = ["build_from_source", "interactive", "force_bottle", "keep_tmp", "debug_symbols", "git", "ask"]
CASK_ONLY = ["require_sha", "adopt", "skip_cask_deps", "zap"]
CASK_TOGGLES = ["binaries", "quarantine"]


class Brewery:
    """Wires the Cellar and its collaborators together for one CLI run."""

    def __init__(self, config: Config, output: Output) -> None:
        config.ensure_dirs()
        self.config = config
        self.output = output
        self.metadata_cache = MetadataCache(config.cache_db)
        self.api = BrewApi(self.metadata_cache, log=output.log)
        self.cellar = Cellar(config, self.api, output)
        self.installer = Installer(self.cellar, output)
        self.migrator = Migrator(self.cellar, output)
        self.cleaner = Cleanup(self.cellar, self.metadata_cache, output)
        self.cask_installer = CaskInstaller(self.cellar, output)

    def reinstall(self, args: argparse.Namespace) -> int:
        only = "formula" if args.formula else "cask" if args.cask else None
        formulae, casks = self.cellar.resolve(args.packages, only=only)

        options = ReinstallOptions(
            build_from_source=args.build_from_source,
            force_bottle=args.force_bottle,
            interactive=args.interactive,
            keep_tmp=args.keep_tmp,
            debug_symbols=args.debug_symbols,
            force=args.force,
            debug=args.debug,
            quiet=args.quiet,
            verbose=args.verbose,
            git=args.git,
            ask=args.ask or self.config.ask,
            display_times=args.display_times or self.config.display_install_times,
        )
        cask_options = CaskOptions(
            binaries=args.binaries is not False,
            require_sha=args.require_sha,
            quarantine=args.quarantine is not False,
            adopt=args.adopt,
            skip_cask_deps=args.skip_cask_deps,
            zap=args.zap,
            force=args.force,
        )
        command = Reinstall(self.config, self.output, self.installer, self.migrator, self.cleaner,
                            self.cask_installer)
        return command.run(formulae, casks, options, cask_options)

    def list_installed(self) -> None:
        formulae = self.cellar.inventory["formulae"]
        casks = self.cellar.inventory["casks"]
        if not formulae and not casks:
            self.output.console.print("[yellow]Your Cellar is empty.[/yellow]")
            return

        table = Table(title="Installed Packages", box=box.ROUNDED, header_style="bold magenta")
        table.add_column("Package", style="cyan")
        table.add_column("Version", style="green")
        table.add_column("Kind")
        table.add_column("Path", style="dim")

        for name, info in formulae.items():
            label = f"{name} (pinned)" if info.get("pinned") else name
            table.add_row(label, info.get("version", "?"), "formula", info.get("path", ""))
        for token, info in casks.items():
            table.add_row(token, info.get("version", "?"), "cask", info.get("path", ""))
        self.output.console.print(table)

    def pin(self, names: List[str], pinned: bool) -> None:
        for name in names:
            self.cellar.set_pinned(name, pinned)
            self.output.success(f"{'Pinned' if pinned else 'Unpinned'} {name}")


def build_parser() -> argparse.ArgumentParser:
    shared_args = argparse.ArgumentParser(add_help=False)
    shared_args.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    shared_args.add_argument("-q", "--quiet", action="store_true", help="Only print errors and prompts")
    shared_args.add_argument("-d", "--debug", action="store_true", help="Show bottle metadata fetches")

    parser = argparse.ArgumentParser(
        prog="br",
        parents=[shared_args],
        description="A lightweight, Python-based Package Manager",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p_install = subparsers.add_parser("install", parents=[shared_args], conflict_handler='resolve', help="Install packages")
    p_install.add_argument("packages", nargs="+", help="Package names")
    p_install.add_argument("-f", "--force", action="store_true", help="Pour bottles even if already installed")

    p_reinstall = subparsers.add_parser(
        "reinstall", parents=[shared_args], conflict_handler='resolve',
        help="Uninstall and then reinstall formulae or casks",
        description="Uninstall and then reinstall a formula or cask using the same options it was originally "
                    "installed with. Unless BREWERY_NO_INSTALLED_DEPENDENTS_CHECK is set, outdated dependents "
                    "are upgraded afterwards. Unless BREWERY_NO_INSTALL_CLEANUP is set, old versions of the "
                    "reinstalled formulae are removed and, periodically, all formulae are cleaned up.",
    )
    p_reinstall.add_argument("packages", nargs="+", help="Formula or cask names")
    p_reinstall.add_argument("-f", "--force", action="store_true",
                             help="Install without checking for previously installed or non-migrated versions")
    p_reinstall.add_argument("--display-times", action="store_true",
                             help="Print install times for each package at the end of the run")

    kind = p_reinstall.add_mutually_exclusive_group()
    kind.add_argument("--formula", "--formulae", action="store_true", help="Treat all named arguments as formulae")
    kind.add_argument("--cask", "--casks", action="store_true", help="Treat all named arguments as casks")

    formula_opts = p_reinstall.add_argument_group("formula options")
    formula_opts.add_argument("-s", "--build-from-source", action="store_true",
                              help="Compile the formula from source even if a bottle is available")
    formula_opts.add_argument("-i", "--interactive", action="store_true",
                              help="Download and patch the formula, then open a shell")
    formula_opts.add_argument("--force-bottle", action="store_true",
                              help="Install from a bottle for the newest macOS if none exists for this one")
    formula_opts.add_argument("--keep-tmp", action="store_true",
                              help="Retain the temporary files created during installation")
    formula_opts.add_argument("--debug-symbols", action="store_true",
                              help="Generate debug symbols on build (requires --build-from-source)")
    formula_opts.add_argument("-g", "--git", action="store_true",
                              help="Create a Git repository, useful for creating patches")
    formula_opts.add_argument("--ask", action="store_true",
                              help="Show download, install and net install size and ask before reinstalling")

    cask_opts = p_reinstall.add_argument_group("cask options")
    cask_opts.add_argument("--binaries", action=argparse.BooleanOptionalAction, default=None,
                           help="Enable/disable linking of helper executables (default: enabled)")
    cask_opts.add_argument("--require-sha", action="store_true", help="Require all casks to have a checksum")
    cask_opts.add_argument("--quarantine", action=argparse.BooleanOptionalAction, default=None,
                           help="Enable/disable quarantining of downloads (default: enabled)")
    cask_opts.add_argument("--adopt", action="store_true",
                           help="Adopt existing identical artifacts; cannot be combined with --force")
    cask_opts.add_argument("--skip-cask-deps", action="store_true", help="Skip installing cask dependencies")
    cask_opts.add_argument("--zap", action="store_true",
                           help="Remove all files associated with a cask before reinstalling it")

    subparsers.add_parser("list", parents=[shared_args], conflict_handler='resolve', help="List installed packages")
    p_pin = subparsers.add_parser("pin", parents=[shared_args], conflict_handler='resolve',
                                  help="Protect formulae from reinstall and upgrade")
    p_pin.add_argument("packages", nargs="+")
    p_unpin = subparsers.add_parser("unpin", parents=[shared_args], conflict_handler='resolve', help="Unpin formulae")
    p_unpin.add_argument("packages", nargs="+")
    subparsers.add_parser("cleanup", parents=[shared_args], conflict_handler='resolve',
                          help="Remove old versions and stale downloads")

    return parser


def validate_reinstall_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if args.build_from_source and args.force_bottle:
        parser.error("options --build-from-source and --force-bottle are mutually exclusive")
    if args.adopt and args.force:
        parser.error("options --adopt and --force are mutually exclusive")
    if args.debug_symbols and not args.build_from_source:
        parser.error("option --debug-symbols requires --build-from-source")

    if args.cask:
        used = [name for name in FORMULA_ONLY if getattr(args, name)]
        if used:
            parser.error(f"--cask cannot be combined with --{used[0].replace('_', '-')}")
    if args.formula:
        used = [name for name in CASK_ONLY if getattr(args, name)]
        used += [name for name in CASK_TOGGLES if getattr(args, name) is not None]
        if used:
            parser.error(f"--formula cannot be combined with cask option --{used[0].replace('_', '-')}")


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)
    if args.command == "reinstall":
        validate_reinstall_args(parser, args)

    output = Output(verbose=args.verbose or args.debug, quiet=args.quiet)
    try:
        brew = Brewery(Config.from_env(), output)

        if args.command == "install":
            brew.installer.install_formulae(args.packages, force=args.force)
        elif args.command == "reinstall":
            sys.exit(brew.reinstall(args))
        elif args.command == "list":
            brew.list_installed()
        elif args.command == "pin":
            brew.pin(args.packages, True)
        elif args.command == "unpin":
            brew.pin(args.packages, False)
        elif args.command == "cleanup":
            brew.cleaner.cleanup()
    except BreweryError as e:
        output.onoe(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
