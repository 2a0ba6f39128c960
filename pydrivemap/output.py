"""Console output for the command line interface."""

import json
from typing import Any, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from .mapping.node import DirectoryMapping
from .utils import format_size


class OutputFormatter:
    """Formats messages, tables and trees for the terminal.

    In quiet mode only errors are shown. In JSON mode human-readable messages
    are suppressed and commands report through :meth:`output_json`.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(soft_wrap=True, highlight=False)
        self.err_console = Console(stderr=True, soft_wrap=True, highlight=False)

    @property
    def _silent(self) -> bool:
        return self.quiet or self.json_output

    def print(self, message: str = "") -> None:
        if not self._silent:
            self.console.print(escape(message))

    def info(self, message: str) -> None:
        if not self._silent:
            self.console.print(escape(message))

    def success(self, message: str) -> None:
        if not self._silent:
            self.console.print(f"[green]✓[/green] {escape(message)}")

    def warning(self, message: str) -> None:
        if not self._silent:
            self.err_console.print(f"[yellow]Warning:[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error:[/red] {escape(message)}")

    def format_size(self, size_bytes: int) -> str:
        return format_size(size_bytes)

    def output_json(self, data: Any) -> None:
        """Print data as JSON on stdout (also in quiet mode)."""
        click.echo(json.dumps(data, indent=2, default=str))

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a two-column key/value table."""
        if self._silent:
            return
        table = Table(title=title, show_header=False, title_justify="left")
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in items:
            table.add_row(escape(key), escape(value))
        self.console.print(table)

    def print_tree(
        self, root: DirectoryMapping, label: Optional[str] = None
    ) -> None:
        """Print a mapping tree; synced mappings are highlighted."""
        if self._silent:
            return

        def node_label(node: DirectoryMapping) -> str:
            name = escape(node.name or str(node.local_path))
            text = f"{name} [dim]({escape(node.remote_id)})[/dim]"
            if node.sync:
                text = f"[green]{text}[/green]"
            if not node.subdirs_up_to_date:
                text += " [yellow]…[/yellow]"
            return text

        tree = Tree(escape(label) if label else node_label(root))
        stack: list[tuple[DirectoryMapping, Tree]] = [(root, tree)]
        while stack:
            node, branch = stack.pop()
            for child in node.children:
                stack.append((child, branch.add(node_label(child))))
        self.console.print(tree)
