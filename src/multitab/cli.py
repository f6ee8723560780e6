"""CLI entry point for multitab."""

from __future__ import annotations

import logging
import os

import typer

from multitab import __version__
from multitab.config import MultitabConfig

app = typer.Typer(
    name="multitab",
    help="Several interactive shells in one terminal window, one tab each.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@app.command()
def ui(
    shell: str | None = typer.Option(
        None,
        "--shell",
        "-s",
        help="Shell to run in each tab (default: $MULTITAB_SHELL, $SHELL, then /bin/bash).",
    ),
    cwd: str | None = typer.Option(
        None, "--cwd", "-C", help="Working directory for new shells."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging."),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to a JSON config file."
    ),
) -> None:
    """Launch the multi-tab terminal TUI."""
    from multitab.pty.manager import PTYManager
    from multitab.session.wire import Wire
    from multitab.tui.app import MultitabApp

    setup_logging(verbose)
    config = MultitabConfig.load(config_file)

    if shell:
        config.terminal.shell = shell
    if cwd:
        if not os.path.isdir(cwd):
            typer.echo(f"Error: Not a directory: {cwd}", err=True)
            raise typer.Exit(1)
        config.terminal.cwd = cwd

    wire = Wire()
    manager = PTYManager(
        wire=wire,
        shell=config.terminal.resolve_shell(),
        cwd=config.terminal.cwd,
        env=config.terminal.env,
        term=config.terminal.term,
        buffer_ceiling=config.buffer.ceiling,
        buffer_floor=config.buffer.floor,
    )
    tui_app = MultitabApp(
        manager=manager,
        wire=wire,
        keys=config.keys,
        cols=config.terminal.cols,
        rows=config.terminal.rows,
    )
    tui_app.run()

    if tui_app.return_code:
        raise typer.Exit(tui_app.return_code)


@app.command()
def version() -> None:
    """Print the version."""
    typer.echo(f"multitab v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
