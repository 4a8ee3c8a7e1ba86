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

"""Main CLI application entry point for aigate.

All commands are organized in separate modules under `aigate.cli.commands/`.
"""

from __future__ import annotations

import typer

from aigate import __version__
from aigate.cli.commands import complete, providers, serve
from aigate.utils.console import console

# Create main app
app = typer.Typer(
    name="aigate",
    help="aigate - AI provider routing and streaming gateway\n\nRoutes completions across Anthropic, OpenAI and Gemini with automatic fallback.",
    add_completion=True,
    rich_markup_mode="rich",
    no_args_is_help=True,
)

# Register commands
app.command()(serve)
app.command()(complete)
app.command()(providers)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"aigate version: [bold cyan]{__version__}[/bold cyan]")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(  # noqa: ARG001 - Used by Typer callback
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    aigate - AI provider routing and streaming gateway.
    """
    pass


def run() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    run()
