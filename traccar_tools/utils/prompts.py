"""
Traccar Tools
Copyright (C) 2024 Traccar Tools contributors

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

"""
Terminal adapters. The pipelines never prompt; they take `confirmed` or a
selection value, and only the menu in index.py talks to the operator
through these helpers.
"""

from typing import Callable, Sequence

from rich.console import Console
from rich.table import Table

from .index import log_message

console = Console(highlight=False)


def confirm(message: str, reader: Callable[[str], str] = input) -> bool:
    """Ask a y/n question until answered. The answer is written to the tool log."""
    while True:
        answer = reader(f"{message} [y/n]: ").strip().lower()
        if answer.startswith("y"):
            log_message(f"User confirmed: {message}")
            return True
        if answer.startswith("n"):
            log_message(f"User declined: {message}")
            return False
        console.print("Please answer y or n.")


def show_candidates(title: str, items: Sequence[str]) -> None:
    table = Table("#", title, show_edge=False)
    for i, item in enumerate(items, start=1):
        table.add_row(str(i), item)
    console.print(table)


def error(message: str) -> None:
    console.print(f"[red]✗ {message}[/red]")


def warning(message: str) -> None:
    console.print(f"[yellow]⚠ {message}[/yellow]")


def success(message: str) -> None:
    console.print(f"[green]✓ {message}[/green]")
