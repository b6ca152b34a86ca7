"""`predsettle` command line: settings/logging bootstrap and subcommand groups."""

from pathlib import Path

import typer

from predsettle import __version__
from predsettle.cli import bets, claim, markets, price, resolver
from predsettle.config import configure_logging, get_settings
from predsettle.errors import ConfigError

app = typer.Typer(
    name="predsettle",
    help="Resolve expired oracle-priced markets and settle winning bets.",
    no_args_is_help=True,
    add_completion=False,
)

app.add_typer(resolver.app, name="resolver")
app.add_typer(markets.app, name="markets")
app.add_typer(bets.app, name="bets")
app.add_typer(price.app, name="price")
app.add_typer(claim.app, name="claim")


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"predsettle {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    profile: str | None = typer.Option(None, "--profile", "-p", help="Overlay config/<profile>.toml"),
    config_dir: Path | None = typer.Option(None, "--config-dir", "-C", help="Directory holding default.toml"),
    version: bool = typer.Option(
        False, "--version", callback=_print_version, is_eager=True, help="Print version and exit"
    ),
) -> None:
    """Settings are loaded once here and shared with subcommands via ctx.obj."""
    try:
        settings = get_settings(profile, config_dir)
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1)
    configure_logging(settings)
    ctx.obj = {"settings": settings}


def run() -> None:
    app()


if __name__ == "__main__":
    run()
