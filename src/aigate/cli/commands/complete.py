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

"""Complete command: one-off completion through the fallback chain."""

from __future__ import annotations

import asyncio

import typer

from aigate.core.models import CompletionRequest, CompletionResult
from aigate.llm.routing import FallbackRouter, Gateway, StreamEventType
from aigate.utils.config import get_settings
from aigate.utils.console import configure_logging, console, err_console


async def run_complete(router: FallbackRouter, request: CompletionRequest, stream: bool) -> bool:
    """Route request and print the outcome.

    Args:
        router: Router over the configured adapters
        request: Completion request
        stream: Print fragments as they arrive instead of the aggregate

    Returns:
        True if a provider produced the completion
    """
    result: CompletionResult | None = None
    if stream:
        async for event in router.route_stream(request):
            if event.type == StreamEventType.FRAGMENT:
                console.print(event.content, end="", markup=False, highlight=False)
            else:
                result = event.result
        console.print()
    else:
        result = await router.route(request)
        if result.success:
            console.print(result.content, markup=False, highlight=False)

    if result is None:
        return False
    if result.success:
        err_console.print(f"[dim]{result.provider} · {result.model}[/dim]")
        return True

    kind = result.error_kind.value if result.error_kind else "Error"
    err_console.print(f"[red]✗ {kind}: {result.error}[/red]")
    if result.attempts:
        err_console.print(f"[dim]Attempted: {', '.join(result.attempts)}[/dim]")
    return False


async def _complete(request: CompletionRequest, stream: bool) -> bool:
    gateway = Gateway.from_settings(get_settings())
    try:
        return await run_complete(gateway.router, request, stream)
    finally:
        await gateway.close()


def complete(
    prompt: str = typer.Argument(..., help="Prompt to complete"),
    provider: str | None = typer.Option(
        None, "--provider", "-p", help="Preferred provider (anthropic, openai, gemini)"
    ),
    model: str | None = typer.Option(None, "--model", "-m", help="Preferred model"),
    system: str | None = typer.Option(None, "--system", "-s", help="System prompt"),
    stream: bool = typer.Option(False, "--stream", help="Stream fragments as they arrive"),
    max_tokens: int | None = typer.Option(None, "--max-tokens", help="Maximum tokens", min=1),
    temperature: float | None = typer.Option(
        None, "--temperature", "-t", help="Sampling temperature (0.0-2.0)", min=0.0, max=2.0
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
) -> None:
    """
    Complete a prompt using the configured fallback chain.

    Example:
        aigate complete "Summarize RFC 9110" --provider openai --stream
    """
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level)

    request = CompletionRequest(
        prompt=prompt,
        system_prompt=system,
        max_tokens=max_tokens,
        temperature=temperature,
        preferred_provider=provider,
        preferred_model=model,
    )

    try:
        ok = asyncio.run(_complete(request, stream))
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠ Interrupted by user[/yellow]")
        raise typer.Exit(code=130)
    except Exception as e:
        console.print(f"\n[red]✗ Error: {e}[/red]")
        if verbose:
            console.print_exception()
        raise typer.Exit(code=1)

    if not ok:
        raise typer.Exit(code=1)
