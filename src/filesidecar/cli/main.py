"""
Main CLI entry point.

    filesidecar run   ...   keep the download directory in sync until stopped
    filesidecar plan  ...   print what the next pass would change
"""

import typer

from filesidecar import __version__
from filesidecar.cli.plan import plan
from filesidecar.cli.run import run

app = typer.Typer(
    name="filesidecar",
    help="Keep a local directory in sync with a declared set of files.",
    no_args_is_help=False,
)

app.command("run")(run)
app.command("plan")(plan)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"filesidecar version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-v", callback=_print_version, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Keep a local directory in sync with a declared set of files."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
