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

"""Serve command: run the HTTP gateway under uvicorn."""

from __future__ import annotations

import typer

from aigate.utils.config import get_settings
from aigate.utils.console import configure_logging, console


def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """
    Run the HTTP gateway.

    Exposes POST /completions, POST /completions/stream and GET /health.

    Example:
        aigate serve --host 0.0.0.0 --port 8080
    """
    from aigate.api.server import run_server

    settings = get_settings()
    configure_logging(settings.log_level)

    configured = settings.configured_providers()
    if configured:
        console.print(f"[green]✓[/green] Providers configured: {', '.join(configured)}")
    else:
        console.print(
            "[yellow]⚠ No provider API keys found; set AIGATE_ANTHROPIC_API_KEY, "
            "AIGATE_OPENAI_API_KEY or AIGATE_GEMINI_API_KEY[/yellow]"
        )
    console.print(f"[bold cyan]aigate[/bold cyan] listening on http://{host}:{port}")

    try:
        run_server(host=host, port=port, reload=reload)
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠ Interrupted by user[/yellow]")
        raise typer.Exit(code=130)
