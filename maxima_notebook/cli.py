"""
Author: Konstantin (k0nze) Lübeck
License: BSD 3-Clause License
Copyright (c) 2022 Konstantin (k0nze) Lübeck
"""

import logging
import sys

from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from maxima_notebook.cell import maxima_cell_session
from maxima_notebook.installer import DEFAULT_SOURCE, MacroFileMissing, install_macros, maxima_user_dir
from maxima_notebook.magics import split_cell
from maxima_notebook.maxima_repl import MaximaRepl, NoMaximaPrompt
from maxima_notebook.maxima_session import (
    MaximaNotInstalled,
    MaximaProcessError,
    MaximaSession,
    MaximaTimeout,
)

console = Console()

MAXIMA_ERRORS = (MaximaNotInstalled, MaximaTimeout, MaximaProcessError, NoMaximaPrompt)


def _plain(line: str) -> None:
    # maxima lists use square brackets, keep rich from reading them as markup
    console.print(line, markup=False, highlight=False)


@click.group()
@click.option("--debug", is_flag=True, help="Log maxima's traffic to stderr")
@click.option("--timeout", type=float, default=None, help="Seconds a maxima run may take")
@click.pass_context
def main(ctx: click.Context, debug: bool, timeout: Optional[float]):
    """maxima-notebook: run Maxima from notebooks and the command line."""
    if debug:
        logging.basicConfig(stream=sys.stderr, level=logging.DEBUG)
    ctx.obj = {"debug": debug, "timeout": timeout}


def _session(ctx: click.Context) -> MaximaSession:
    try:
        return MaximaSession(timeout=ctx.obj["timeout"], debug=ctx.obj["debug"])
    except MaximaNotInstalled as e:
        raise click.ClickException(str(e))


@main.command("eval")
@click.argument("command")
@click.option("--float", "as_float", is_flag=True, help="Convert a numeric result to a float")
@click.pass_context
def eval_command(ctx: click.Context, command: str, as_float: bool):
    """Evaluate one Maxima command and print its result."""
    session = _session(ctx)
    try:
        result = session.evaluate_float(command) if as_float else session.evaluate(command)
    except MAXIMA_ERRORS as e:
        raise click.ClickException(str(e))
    _plain(str(result))


@main.command()
@click.argument("path", type=click.File("r"), default="-")
@click.option("--credits", is_flag=True, help="Print Maxima's banner first")
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None, help="Write the transcript to a file")
@click.option("--plot-dir", default="plots", help="Directory plots are saved to")
@click.pass_context
def run(ctx: click.Context, path, credits: bool, output: Optional[str], plot_dir: str):
    """Run a file of Maxima commands (one per line) in one session."""
    commands = split_cell(path.read())
    if not commands:
        console.print("[yellow]No commands to run[/yellow]")
        return

    session = _session(ctx)
    try:
        maxima_cell_session(
            commands,
            credits=credits,
            output_file=output,
            plot_dir=plot_dir,
            session=session,
            out=_plain,
            show_image=lambda data: None,
        )
    except MAXIMA_ERRORS as e:
        raise click.ClickException(str(e))

    if output is not None:
        console.print(f"[dim]Transcript written to[/dim] {output}")


@main.command()
@click.pass_context
def repl(ctx: click.Context):
    """Interactive Maxima session, state is kept between commands."""
    try:
        maxima = MaximaRepl(timeout=ctx.obj["timeout"] or 30, debug=ctx.obj["debug"])
    except MAXIMA_ERRORS as e:
        raise click.ClickException(str(e))

    console.print(Panel(
        "Enter Maxima commands, [bold]:reset[/bold] clears all definitions, "
        "[bold]:quit[/bold] leaves.",
        title="[bold blue]maxima-notebook[/bold blue]",
        border_style="blue",
    ))

    with maxima:
        while True:
            try:
                command = Prompt.ask("[cyan]maxima[/cyan]").strip()
            except EOFError:
                break
            if command in (":quit", ":q"):
                break
            if not command:
                continue

            try:
                if command == ":reset":
                    maxima.reset()
                    console.print("[dim]session reset[/dim]")
                    continue
                result = maxima.raw_command(command)
            except MAXIMA_ERRORS as e:
                raise click.ClickException(str(e))
            if result:
                _plain(result)


@main.command("install-macros")
@click.option("--source", "-s", type=click.Path(file_okay=False), default=DEFAULT_SOURCE, help="Directory holding the macro files")
@click.option("--dest", "-d", type=click.Path(file_okay=False), default=None, help="Destination, defaults to Maxima's user directory")
def install_macros_command(source: str, dest: Optional[str]):
    """Copy the qinf macro files into Maxima's search path."""
    try:
        installed = install_macros(source, dest)
    except MacroFileMissing as e:
        raise click.ClickException(str(e))

    for path in installed:
        console.print(f"[green]installed[/green] {path}")
    console.print(f"[dim]{len(installed)} file(s) copied to {dest or maxima_user_dir()}[/dim]")


if __name__ == "__main__":
    main()
