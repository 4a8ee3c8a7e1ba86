# Copyright 2026 The aigate Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Console and logging utilities for rich terminal output."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

# Global console instance shared across the application
console = Console()

# Diagnostics go to stderr so streamed completions on stdout stay clean
err_console = Console(stderr=True)


def configure_logging(level: str | int = "INFO") -> None:
    """Route stdlib logging through rich.

    Args:
        level: Logging level name or number
    """
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    err_console.print(f"[yellow]⚠[/yellow] {message}")


def print_info(message: str) -> None:
    console.print(f"[cyan]ℹ[/cyan] {message}")


__all__ = [
    "console",
    "err_console",
    "configure_logging",
    "print_success",
    "print_error",
    "print_warning",
    "print_info",
]
