"""Command line tool for checking WarpLink links and keys."""

import asyncio
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .client import APIClient
from .errors import WarpLinkError
from .logging import configure_logging, mask_api_key
from .models import ResolvedLink
from .options import WarpLinkOptions
from .sdk import DEFAULT_STATE_PATH, WarpLink, is_valid_api_key_format
from .storage import AttributionCache, FileStore

app = typer.Typer(
    name="warplink",
    help="WarpLink deep link diagnostics",
    add_completion=False,
)
console = Console()


def get_api_key(api_key: str | None) -> str:
    """Resolve the API key from the option or the environment."""
    from dotenv import load_dotenv

    load_dotenv()

    key = api_key or os.getenv("WARPLINK_API_KEY")
    if not key:
        console.print("[red]Error: No API key. Pass --api-key or set WARPLINK_API_KEY.[/red]")
        raise typer.Exit(1)
    if not is_valid_api_key_format(key):
        console.print(f"[red]Error: Invalid API key format: {mask_api_key(key)}[/red]")
        raise typer.Exit(1)
    return key


def _setup(verbose: bool) -> WarpLinkOptions:
    options = WarpLinkOptions.from_env()
    if verbose:
        configure_logging("DEBUG", json_output=False)
        return WarpLinkOptions(
            api_endpoint=options.api_endpoint,
            debug_logging=True,
            match_window_hours=options.match_window_hours,
        )
    return options


@app.command()
def resolve(
    url: str = typer.Argument(..., help="WarpLink URL, e.g. https://aplnk.to/abc123"),
    api_key: str = typer.Option(None, "--api-key", "-k", help="API key (default: $WARPLINK_API_KEY)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable SDK debug logging"),
):
    """Resolve a link and show where it points."""
    key = get_api_key(api_key)
    options = _setup(verbose)

    async def run() -> ResolvedLink:
        sdk = WarpLink()
        sdk.configure(key, options)
        return await sdk.handle_deep_link(url)

    try:
        link = asyncio.run(run())
    except WarpLinkError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    _display_link(link)


@app.command("check-deferred")
def check_deferred(
    state: Path = typer.Option(DEFAULT_STATE_PATH, "--state", "-s", help="SDK state file"),
    api_key: str = typer.Option(None, "--api-key", "-k", help="API key (default: $WARPLINK_API_KEY)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable SDK debug logging"),
):
    """Run the deferred deep link check against a state file."""
    key = get_api_key(api_key)
    options = _setup(verbose)

    async def run() -> ResolvedLink | None:
        sdk = WarpLink(store=FileStore(state))
        sdk.configure(key, options)
        return await sdk.check_deferred_deep_link()

    try:
        link = asyncio.run(run())
    except WarpLinkError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if link is None:
        console.print("[yellow]No deferred deep link[/yellow]")
        return
    _display_link(link)


@app.command("validate-key")
def validate_key(
    api_key: str = typer.Option(None, "--api-key", "-k", help="API key (default: $WARPLINK_API_KEY)"),
):
    """Check an API key with the server."""
    key = get_api_key(api_key)
    options = WarpLinkOptions.from_env()

    try:
        valid = asyncio.run(APIClient(key, options.api_endpoint).validate_api_key())
    except WarpLinkError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not valid:
        console.print(f"[red]Key rejected: {mask_api_key(key)}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Key valid: {mask_api_key(key)}[/green]")


@app.command()
def clear(
    state: Path = typer.Option(DEFAULT_STATE_PATH, "--state", "-s", help="SDK state file"),
):
    """Reset first-launch state and cached attribution."""
    AttributionCache(FileStore(state)).clear_all()
    console.print(f"[green]Cleared {state}[/green]")


@app.command()
def mask(key: str = typer.Argument(..., help="API key to mask")):
    """Print an API key in its log-safe form."""
    console.print(mask_api_key(key))


def _display_link(link: ResolvedLink) -> None:
    table = Table(title="Resolved Link")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Link ID", link.link_id)
    table.add_row("Destination", link.destination)
    table.add_row("App link", link.app_link_url or "-")
    table.add_row("Deferred", "yes" if link.is_deferred else "no")
    table.add_row("Match type", link.match_type.value if link.match_type else "-")
    table.add_row(
        "Confidence",
        f"{link.match_confidence:.2f}" if link.match_confidence is not None else "-",
    )
    for name, value in link.custom_params.items():
        table.add_row(f"param:{name}", str(value))

    console.print(table)


if __name__ == "__main__":
    app()
