"""
llmcore command line.

    llmcore ask "What is a token bucket?" --provider anthropic
    llmcore stream "Write a haiku about retries" -m openai/gpt-4o
    llmcore batch prompts.txt --concurrency 3
    llmcore providers
    llmcore config --path llmcore.yaml
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from llmcore.config.loader import load_settings
from llmcore.config.schema import CoreSettings
from llmcore.context import ExecutionContext
from llmcore.exceptions import ConfigurationError, LLMCoreError
from llmcore.llm.batch import BatchExecutor, BatchOptions, batch_prompts
from llmcore.llm.providers import PROVIDER_CLASSES, ProviderConfig, create_provider
from llmcore.llm.router import Executor
from llmcore.llm.types import ChatRequest, Message
from llmcore.observability.logging_config import configure_logging

app = typer.Typer(
    name="llmcore",
    help="llmcore - provider-agnostic LLM execution core",
    no_args_is_help=True,
)
console = Console()


def _load(config_path: Optional[Path], verbose: bool) -> CoreSettings:
    configure_logging(level=logging.DEBUG if verbose else logging.WARNING)
    try:
        return load_settings(config_path)
    except ConfigurationError as e:
        console.print(Panel(
            f"[red]{e}[/]",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)


def _build_executor(
    settings: CoreSettings,
    provider: Optional[str],
    fallbacks: Optional[list[str]],
) -> Executor:
    name = provider or settings.default_provider
    ps = settings.provider_settings(name)
    try:
        adapter = create_provider(
            name,
            ProviderConfig(
                api_key=ps.api_key,
                base_url=ps.base_url,
                timeout=ps.timeout,
                headers=dict(ps.headers),
            ),
        )
    except ConfigurationError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(code=1)

    return Executor(
        adapter,
        fallbacks=fallbacks if fallbacks is not None else settings.fallbacks,
        context=ExecutionContext.from_settings(settings),
    )


def _request(
    settings: CoreSettings,
    prompt: str,
    model: Optional[str],
    system: str,
    temperature: Optional[float],
    reasoning: Optional[str],
    json_mode: bool,
) -> ChatRequest:
    messages = [Message.system(system)] if system else []
    messages.append(Message.user(prompt))
    return ChatRequest(
        model=model or settings.default_model,
        messages=messages,
        temperature=temperature,
        reasoning=reasoning,
        json_mode=json_mode,
    )


def _fail(error: LLMCoreError) -> None:
    console.print(f"[red]Request failed:[/] {error}")
    raise typer.Exit(code=1)


# =========================================================================
# Commands
# =========================================================================


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="User prompt"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model id"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Provider name"),
    system: str = typer.Option("", "--system", "-s", help="System prompt"),
    fallback: Optional[list[str]] = typer.Option(None, "--fallback", "-f", help="Fallback model (repeatable)"),
    temperature: Optional[float] = typer.Option(None, help="Sampling temperature"),
    reasoning: Optional[str] = typer.Option(None, help="none/minimal/low/medium/high"),
    json_mode: bool = typer.Option(False, "--json", help="Force a JSON response"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML settings file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Send one prompt and print the answer."""
    settings = _load(config_path, verbose)
    executor = _build_executor(settings, provider, fallback)
    request = _request(settings, prompt, model, system, temperature, reasoning, json_mode)

    try:
        response = asyncio.run(executor.send(request))
    except LLMCoreError as e:
        _fail(e)
        return

    console.print(response.content)
    console.print(
        f"[dim]{response.provider} · {response.model} · "
        f"{response.total_tokens} tokens · {response.latency_ms:.0f} ms · "
        f"retries {response.retries}{' · cached' if response.cached else ''}[/]"
    )


@app.command()
def stream(
    prompt: str = typer.Argument(..., help="User prompt"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model id"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Provider name"),
    system: str = typer.Option("", "--system", "-s", help="System prompt"),
    temperature: Optional[float] = typer.Option(None, help="Sampling temperature"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML settings file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Stream the answer to stdout as it arrives."""
    settings = _load(config_path, verbose)
    executor = _build_executor(settings, provider, None)
    request = _request(settings, prompt, model, system, temperature, None, False)

    def emit(text: str) -> None:
        sys.stdout.write(text)
        sys.stdout.flush()

    try:
        response = asyncio.run(executor.stream(request, emit))
    except LLMCoreError as e:
        sys.stdout.write("\n")
        _fail(e)
        return

    sys.stdout.write("\n")
    console.print(f"[dim]{response.model} · ~{response.total_tokens} tokens[/]")


@app.command()
def batch(
    prompts_file: Path = typer.Argument(..., help="File with one prompt per line"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model id"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Provider name"),
    system: str = typer.Option("", "--system", "-s", help="System prompt"),
    concurrency: Optional[int] = typer.Option(None, help="Concurrent requests"),
    timeout: Optional[float] = typer.Option(None, help="Per-request timeout (seconds)"),
    stop_on_error: bool = typer.Option(False, help="Cancel the rest on first failure"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML settings file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Run every prompt in a file concurrently and tabulate the results."""
    settings = _load(config_path, verbose)
    if not prompts_file.exists():
        console.print(f"[red]File not found:[/] {prompts_file}")
        raise typer.Exit(code=1)

    prompts = [line.strip() for line in prompts_file.read_text().splitlines() if line.strip()]
    if not prompts:
        console.print("[yellow]No prompts found.[/]")
        return

    options = BatchOptions.from_settings(settings.batch)
    if concurrency is not None:
        options.concurrency = max(concurrency, 1)
    if timeout is not None:
        options.timeout = timeout
    options.stop_on_error = stop_on_error or options.stop_on_error

    executor = _build_executor(settings, provider, None)
    ops = batch_prompts(model or settings.default_model, prompts, system=system)
    results = asyncio.run(BatchExecutor(executor, options).run(ops))

    table = Table(title=f"Batch: {len(results)} prompts")
    table.add_column("#", style="dim")
    table.add_column("Prompt", style="cyan", max_width=40)
    table.add_column("Result", style="white", max_width=60)
    table.add_column("Tokens", style="yellow", justify="right")
    table.add_column("ms", style="blue", justify="right")

    for result, prompt in zip(results, prompts):
        text = result.content if result.ok else f"[red]{result.error}[/]"
        table.add_row(
            str(result.index + 1),
            prompt,
            text,
            str(result.tokens),
            f"{result.latency_ms:.0f}",
        )

    console.print(table)
    console.print(
        f"Success rate: [bold]{results.success_rate():.0%}[/] · "
        f"tokens: {results.total_tokens()}"
    )
    if results.failed():
        raise typer.Exit(code=1)


@app.command()
def providers():
    """List supported providers and their capabilities."""
    table = Table(title="llmcore - Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Base URL", style="white")
    table.add_column("API key env", style="green")
    table.add_column("Capabilities", style="yellow")

    for kind, cls in PROVIDER_CLASSES.items():
        table.add_row(
            kind.value,
            cls.default_base_url,
            ", ".join(cls.api_key_env) if cls.requires_api_key else "(optional)",
            ", ".join(cls.CAPABILITIES.supported()),
        )

    console.print(table)


@app.command()
def config(
    config_path: Optional[Path] = typer.Option(None, "--path", help="YAML settings file"),
):
    """Validate settings and show the effective configuration."""
    settings = _load(config_path, verbose=False)
    rl = settings.rate_limit
    console.print(Panel(
        f"[green]Configuration valid![/]\n\n"
        f"Default provider: {settings.default_provider}\n"
        f"Default model: {settings.default_model}\n"
        f"Fallbacks: {', '.join(settings.fallbacks) or 'none'}\n"
        f"Cache: {'on' if settings.cache.enabled else 'off'}\n"
        f"Rate limit: {f'{rl.requests_per_second}/s' if rl.enabled else 'off'}\n"
        f"Max retries: {settings.retry.max_retries}\n"
        f"Batch concurrency: {settings.batch.concurrency}",
        title="llmcore settings",
    ))


if __name__ == "__main__":
    app()
