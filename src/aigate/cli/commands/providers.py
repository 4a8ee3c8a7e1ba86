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

"""Providers command: show adapter configuration and health."""

from __future__ import annotations

from typing import Any

from rich.table import Table

from aigate.llm.routing import Gateway
from aigate.utils.config import get_settings
from aigate.utils.console import console

_STATE_STYLES = {"healthy": "green", "degraded": "yellow", "disabled": "red"}


def build_providers_table(status: dict[str, Any]) -> Table:
    """Render router status as a table."""
    table = Table(title="Providers", show_lines=False)
    table.add_column("Priority", style="dim", justify="right")
    table.add_column("Provider", style="cyan", no_wrap=True)
    table.add_column("Model", style="green")
    table.add_column("State")
    table.add_column("Streaming", justify="center")
    table.add_column("Images", justify="center")

    for name, info in status["adapters"].items():
        state = info["health"]["state"]
        if not info["available"]:
            state_text = "[red]no credentials[/red]"
        else:
            style = _STATE_STYLES.get(state, "white")
            state_text = f"[{style}]{state}[/{style}]"
        table.add_row(
            str(info["priority"]),
            name,
            info["model"],
            state_text,
            "✓" if info["supports_streaming"] else "-",
            "✓" if info["supports_image_input"] else "-",
        )
    return table


def providers() -> None:
    """
    Show configured providers in fallback order.

    Example:
        aigate providers
    """
    gateway = Gateway.from_settings(get_settings())
    status = gateway.router.get_status()

    console.print(build_providers_table(status))
    primary = status["primary_provider"]
    if primary:
        console.print(f"\nPrimary provider: [bold cyan]{primary}[/bold cyan]")
    else:
        console.print("\n[yellow]⚠ No provider is available; configure an API key[/yellow]")
