from typing import Dict, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, DownloadColumn, Progress, SpinnerColumn, TextColumn, TransferSpeedColumn
from rich.table import Table


class Output:
    """Console wrapper carrying verbosity and the messages shown at the end of a run."""

    def __init__(self, verbose: bool = False, quiet: bool = False, console: Optional[Console] = None) -> None:
        self.console = console or Console()
        self.verbose = verbose
        self.quiet = quiet
        self.install_times: Dict[str, float] = {}

    def log(self, message: str):
        if self.verbose:
            self.console.print(f"[dim]DEBUG: {escape(message)}[/dim]")

    def print(self, message: str = "", essential: bool = True):
        if essential or not self.quiet:
            self.console.print(message, markup=False, highlight=False)

    def ohai(self, message: str, essential: bool = False):
        if essential or not self.quiet:
            self.console.print(f"[bold blue]==>[/bold blue] [bold]{escape(message)}[/bold]")

    def success(self, message: str):
        if not self.quiet:
            self.console.print(f"[green]✓ {escape(message)}[/green]")

    def opoo(self, message: str):
        self.console.print(f"[yellow]Warning:[/yellow] {escape(message)}")

    def onoe(self, message: str):
        self.console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def status(self, message: str):
        return self.console.status(message)

    def progress(self) -> Progress:
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=self.console,
            disable=self.quiet,
        )

    def record_time(self, name: str, seconds: float):
        self.install_times[name] = seconds

    def display_messages(self, display_times: bool = False) -> None:
        if not display_times or not self.install_times:
            return

        table = Table(title="Install Times", box=box.SIMPLE)
        table.add_column("Package", style="cyan")
        table.add_column("Time", style="green", justify="right")
        for name, seconds in self.install_times.items():
            table.add_row(name, f"{seconds:.3f}s")
        self.console.print(table)
