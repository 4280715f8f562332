"""
CLI for AIPainter.

Type a prompt, get an image back from the Stable Diffusion API.
"""

import asyncio
import click
from datetime import datetime
import json
import logging
from pathlib import Path
import sys
from typing import Optional
from urllib.parse import urlparse

import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from aipainter import __version__
from aipainter.config import Config, GLOBAL_CONFIG_FILE
from aipainter.core.stable_diffusion import GenerationResult, StableDiffusionClient
from aipainter.display import display
from aipainter.models import GenerationOutcome
from aipainter.session import GenerationSession, InvalidPromptError, PROMPT_PLACEHOLDER

console = Console()


def mask_key(key: str) -> str:
    """Show only the last four characters of a secret."""
    if not key:
        return ""
    if len(key) <= 4:
        return "*" * len(key)
    return "*" * (len(key) - 4) + key[-4:]


def image_filename(url: str, index: int, stamp: str) -> str:
    """Local file name for the index-th image of a generation."""
    suffix = Path(urlparse(url).path).suffix.lower()
    if suffix not in (".png", ".jpg", ".jpeg", ".webp", ".gif"):
        suffix = ".png"
    return f"{stamp}-{index + 1}{suffix}"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.ERROR,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


async def _with_spinner(coro, show: bool, description: str) -> GenerationResult:
    if not show:
        return await coro
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(description, total=None)
        return await coro


async def _download_images(client: StableDiffusionClient, urls, output_dir: Path) -> list[str]:
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    paths = []
    for index, url in enumerate(urls):
        try:
            path = await client.download_image(url, output_dir / image_filename(url, index, stamp))
        except (httpx.HTTPError, OSError) as e:
            console.print(f"[yellow]Could not download {escape(url)}: {escape(str(e))}[/yellow]")
            continue
        paths.append(str(path))
    return paths


async def run_generation(
    cfg: Config,
    prompt_text: str,
    negative_prompt: Optional[str],
    model_id: str,
    retries: int,
    output_dir: Optional[Path],
    interactive: bool,
) -> GenerationOutcome:
    """Submit the prompt, offer retries on failure, download the result."""
    async with StableDiffusionClient(api_url=cfg.api.url, timeout=cfg.api.timeout) as client:
        session = GenerationSession(
            client,
            api_key=cfg.api_keys.stablediffusion,
            model_id=model_id,
            retries=retries,
        )

        result = await _with_spinner(
            session.submit(prompt_text, negative_prompt),
            show=interactive,
            description=f"Generating [cyan]{escape(prompt_text)}[/cyan]...",
        )

        while not result.ok and interactive:
            console.print(f"[red]Generation failed ({result.kind.value}): {escape(result.reason)}[/red]")
            if not click.confirm("Try again?", default=True):
                session.cancel()
                break
            result = await _with_spinner(session.retry(), show=True, description="Retrying...")

        outcome = GenerationOutcome.from_result(
            session.last_request, result, attempts=session.last_attempts
        )
        if result.ok and output_dir is not None:
            outcome.image_paths = await _download_images(client, result.image_urls, output_dir)

    return outcome


def _print_outcome(outcome: GenerationOutcome, inline: bool) -> None:
    if not outcome.ok:
        console.print("[dim]Generation cancelled.[/dim]")
        return

    lines = [f"[green]Generated {len(outcome.image_urls)} image(s)[/green]", ""]
    lines += [f"URL: {escape(url)}" for url in outcome.image_urls]
    lines += [f"Saved: {path}" for path in outcome.image_paths]
    console.print(Panel.fit("\n".join(lines), title=escape(outcome.prompt)))

    if inline:
        if not outcome.image_paths:
            console.print("[dim]Inline preview needs downloaded images[/dim]")
        elif not display.enabled:
            console.print("[dim]Inline preview not supported by this terminal[/dim]")
        else:
            for path in display.show_generation(outcome.image_paths):
                console.print(f"[dim]Could not preview {escape(str(path))}[/dim]")


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log requests and raw server responses")
def main(verbose: bool):
    """AIPainter - text-to-image generation from the terminal."""
    _configure_logging(verbose)


@main.command()
@click.argument("prompt", nargs=-1)
@click.option("--negative-prompt", "-n", default=None, help="What the image should not contain")
@click.option("--model", "model_id", default=None, help="Model id (default from config)")
@click.option("--retries", type=click.IntRange(min=0), default=None, help="Extra attempts after a network failure")
@click.option("--output", "-o", "output_dir", type=click.Path(file_okay=False), default=None, help="Directory for downloaded images")
@click.option("--no-download", is_flag=True, help="Only print image URLs")
@click.option("--inline", is_flag=True, default=False, help="Show inline image previews (iTerm2/Kitty/WezTerm)")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON, no prompts or spinner (PROMPT required)")
def generate(
    prompt: tuple,
    negative_prompt: Optional[str],
    model_id: Optional[str],
    retries: Optional[int],
    output_dir: Optional[str],
    no_download: bool,
    inline: bool,
    json_output: bool,
):
    """Generate an image from a prompt."""
    if not prompt and json_output:
        console.print("[red]Error: --json needs the prompt as arguments[/red]")
        sys.exit(1)
    prompt_text = " ".join(prompt) if prompt else click.prompt(PROMPT_PLACEHOLDER)

    cfg = Config.load()
    issues = cfg.validate()
    if issues:
        console.print("[red]Configuration issues:[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
        sys.exit(1)

    try:
        prompt_text = GenerationSession.validate_prompt(prompt_text)
    except InvalidPromptError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    download = cfg.defaults.download_images and not no_download
    outcome = asyncio.run(run_generation(
        cfg,
        prompt_text,
        negative_prompt,
        model_id=model_id or cfg.api.model_id,
        retries=cfg.defaults.retries if retries is None else retries,
        output_dir=Path(output_dir or cfg.defaults.output_dir) if download else None,
        interactive=not json_output,
    ))

    if json_output:
        click.echo(json.dumps(outcome.to_dict(), indent=2))
    else:
        _print_outcome(outcome, inline or cfg.defaults.inline_preview)

    if not outcome.ok:
        sys.exit(1)


@main.command("setup-keys")
@click.option("--key", "api_key", help="Stable Diffusion API key")
@click.option("--model", "model_id", help="Default model id")
@click.option("--url", "api_url", help="Generation endpoint URL")
def setup_keys(api_key: Optional[str], model_id: Optional[str], api_url: Optional[str]):
    """Configure the API key and endpoint."""
    cfg = Config.load()

    if not api_key and not cfg.api_keys.stablediffusion:
        api_key = click.prompt("Stable Diffusion API key", hide_input=True)

    if api_key:
        cfg.api_keys.stablediffusion = api_key
    if model_id:
        cfg.api.model_id = model_id
    if api_url:
        cfg.api.url = api_url

    cfg.save()

    console.print(f"[green]Configuration saved to {GLOBAL_CONFIG_FILE}[/green]")
    console.print(f"  Stable Diffusion: {'[green]configured[/green]' if cfg.api_keys.stablediffusion else '[red]missing[/red]'}")


@main.command("check-keys")
def check_keys():
    """Check API key configuration status."""
    cfg = Config.load()
    issues = cfg.validate()

    console.print("[bold]API Key Status:[/bold]")
    console.print(f"  Stable Diffusion: {'[green]configured[/green]' if cfg.api_keys.stablediffusion else '[red]missing[/red]'}")

    if issues:
        console.print("\n[red]Configuration issues:[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
        sys.exit(1)
    else:
        console.print("\n[green]All required keys configured![/green]")


@main.command("show-config")
def show_config():
    """Show the effective configuration (file + environment)."""
    cfg = Config.load()

    table = Table(title="AIPainter configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("api_keys.stablediffusion", mask_key(cfg.api_keys.stablediffusion) or "[red]missing[/red]")
    table.add_row("api.url", cfg.api.url)
    table.add_row("api.model_id", cfg.api.model_id)
    table.add_row("api.timeout", f"{cfg.api.timeout:g}s")
    table.add_row("defaults.output_dir", cfg.defaults.output_dir)
    table.add_row("defaults.download_images", str(cfg.defaults.download_images))
    table.add_row("defaults.inline_preview", str(cfg.defaults.inline_preview))
    table.add_row("defaults.retries", str(cfg.defaults.retries))

    console.print(table)
    console.print(f"[dim]Config file: {GLOBAL_CONFIG_FILE}[/dim]")


if __name__ == "__main__":
    main()
