"""llm-arbiter CLI - ask across models, inspect the registry, run the API."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="arbiter",
    help="llm-arbiter: fan prompts out to several LLMs and keep the best answer",
    add_completion=False,
)
console = Console()


def async_run(coro):
    """Run async function."""
    return asyncio.run(coro)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override log level"),
):
    """Configure logging before any command runs."""
    from arbiter.config.logging import configure_logging

    configure_logging(level=log_level)


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Prompt to answer"),
    mode: str = typer.Option("judge", "--mode", "-m", help="Pipeline: judge or select"),
):
    """Answer a prompt through the judge or select pipeline."""
    from arbiter.config import settings
    from arbiter.core import ChatCompletionClient, GeminiClient, RequestCoordinator
    from arbiter.errors import AllProvidersFailed, ArbiterError, ClientError

    if mode not in ("judge", "select"):
        console.print(f"[red]Unknown mode: {mode} (use judge or select)[/red]")
        raise typer.Exit(code=2)

    try:
        settings.require_credentials()
    except ArbiterError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    async def run():
        async with ChatCompletionClient() as chat, GeminiClient() as judge:
            coordinator = RequestCoordinator.build(chat, judge, settings)
            with console.status("[bold green]Thinking..."):
                if mode == "judge":
                    return await coordinator.judge_route(prompt)
                return await coordinator.select_route(prompt)

    try:
        envelope = async_run(run())
    except ClientError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2)
    except AllProvidersFailed:
        console.print("[red]All model providers failed. Try again with a different prompt.[/red]")
        raise typer.Exit(code=3)
    except ArbiterError as exc:
        console.print(f"[red]Model call failed: {exc}[/red]")
        raise typer.Exit(code=4)

    if mode == "judge":
        subtitle = f"{envelope.chosen_model} • {envelope.response_time_ms}ms"
        body = envelope.best_response
    else:
        subtitle = f"{envelope.model.id} • {envelope.response_time_ms}ms"
        body = envelope.response

    console.print(Panel(Markdown(body), title="Answer", subtitle=subtitle))

    if mode == "judge":
        console.print(f"[dim]Candidates: {', '.join(envelope.candidates)}[/dim]")
        if envelope.warning:
            console.print(f"[yellow]{envelope.warning}[/yellow]")
    else:
        analysis = envelope.analysis
        console.print(
            f"[dim]Analysis: coding={analysis.coding:g} reasoning={analysis.reasoning:g} "
            f"math={analysis.math:g} context={analysis.context:g}[/dim]"
        )


@app.command()
def models():
    """List registered models and their benchmark profiles."""
    from arbiter.core.registry import DEFAULT_REGISTRY

    table = Table(title="Registered models")
    table.add_column("Model", style="cyan")
    table.add_column("Expertise")
    table.add_column("Reasoning", justify="right")
    table.add_column("Coding", justify="right")
    table.add_column("Math", justify="right")
    table.add_column("Context", justify="right")
    for d in DEFAULT_REGISTRY:
        b = d.benchmarks
        table.add_row(
            d.id, d.expertise, f"{b.reasoning:g}", f"{b.coding:g}", f"{b.math:g}",
            str(b.context_window),
        )
    console.print(table)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Bind host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Start the llm-arbiter API server."""
    import uvicorn

    from arbiter.config import settings

    bind_host = host or settings.api_host
    bind_port = port or settings.api_port

    console.print(
        Panel.fit(
            f"[bold blue]llm-arbiter API[/bold blue]\n"
            f"http://{bind_host}:{bind_port}",
            subtitle="Ctrl+C to stop",
        )
    )

    uvicorn.run(
        "arbiter.interfaces.api:app",
        host=bind_host,
        port=bind_port,
        reload=reload,
    )


@app.command()
def status():
    """Show effective configuration."""
    from arbiter.config import settings

    console.print(Panel.fit("[bold blue]llm-arbiter Status[/bold blue]"))

    table = Table()
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("NVIDIA key", "✓" if settings.nvidia_api_key else "✗ missing")
    table.add_row("Gemini key", "✓" if settings.gemini_api_key else "✗ missing")
    table.add_row("Chat backend", settings.chat_base_url)
    table.add_row("Judge model", settings.judge_model)
    table.add_row("Fan-out selector", settings.fanout_selector)
    table.add_row("Retries", f"{settings.max_retries} (base delay {settings.retry_base_delay:g}s)")
    table.add_row("Model timeout", f"{settings.model_timeout:g}s")
    table.add_row("Judge timeout", f"{settings.judge_timeout:g}s")
    table.add_row("Cache entries", str(settings.cache_max_entries))
    table.add_row("Environment", settings.environment)

    console.print(table)


if __name__ == "__main__":
    app()
