"""Console logging with levels and tagged output."""

from typing import Optional

from rich.console import Console
from rich.markup import escape

LEVELS = ["debug", "info", "warning", "error"]

console = Console(highlight=False)


class Logger:
    """Leveled logger that prints [INFO]/[OK]/[WARN]/[ERROR] tagged lines."""

    def __init__(self, level: str = "info", out: Optional[Console] = None):
        self.console = out or console
        self.set_level(level)

    def set_level(self, level: str) -> None:
        level = (level or "info").lower()
        if level == "warn":
            level = "warning"
        self.level = level if level in LEVELS else "info"

    def _enabled(self, level: str) -> bool:
        return LEVELS.index(level) >= LEVELS.index(self.level)

    def debug(self, message: str):
        if self._enabled("debug"):
            self.console.print(f"[dim]{escape(message)}[/dim]")

    def info(self, message: str):
        if self._enabled("info"):
            self.console.print(f"[INFO]  {message}", markup=False)

    def ok(self, message: str):
        if self._enabled("info"):
            self.console.print(f"[green]\\[OK]    {escape(message)}[/green]")

    def warn(self, message: str):
        if self._enabled("warning"):
            self.console.print(f"[yellow]\\[WARN]  {escape(message)}[/yellow]")

    def error(self, message: str):
        self.console.print(f"[red]\\[ERROR] {escape(message)}[/red]")

    def echo(self, message: str = ""):
        """Untagged output, always shown."""
        self.console.print(message, markup=False)

    def section(self, message: str):
        rule = "=" * 42
        self.console.print(f"\n[bold]{rule}\n{escape(message)}\n{rule}[/bold]")

    def step(self, number: int, total: Optional[int], message: str):
        label = f"Step {number}/{total}" if total else f"Step {number}"
        self.console.print(f"\n[cyan]{label}:[/cyan] {escape(message)}")


log = Logger()
