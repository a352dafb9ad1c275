"""
Author: Konstantin (k0nze) Lübeck
License: BSD 3-Clause License
Copyright (c) 2022 Konstantin (k0nze) Lübeck
"""

import logging
import os
import re

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from IPython.display import Image, display

from maxima_notebook.maxima_session import PLOT_SETUP, MaximaSession, default_session
from maxima_notebook.transcript import (
    format_input_line,
    format_output_line,
    is_plot_command,
    normalize_command,
)

logger = logging.getLogger(__name__)

RESULT_MARKER = "💡 "
PLOT_LABEL = "plot:"
CREDITS_IGNORED = "ℹ️  credits=True is ignored when the cell contains plots."

COMMENT = re.compile(r"/\*.+?\*/", re.DOTALL)
TRAILING_SEMICOLONS = re.compile(r";+$")
TRAILING_TERMINATOR = re.compile(r"[;$]$")

Printer = Callable[[str], None]


def show_png(data: bytes) -> None:
    """displays png data in the notebook output of the running cell"""
    display(Image(data=data, format="png"))


@dataclass
class CellTranscript:
    """Lines shown for a cell and the plots saved while running it."""

    lines: List[str] = field(default_factory=list)
    images: List[Path] = field(default_factory=list)

    def text(self) -> str:
        return "\n".join(self.lines) + "\n"


def _clean(command: str) -> str:
    command = COMMENT.sub("", command).strip()
    return TRAILING_SEMICOLONS.sub("", command).strip()


def maxima_line(
    command: str, session: Optional[MaximaSession] = None, out: Printer = print
) -> str:
    """
    runs a single command and prints maxima's output as is

    Args:
        command (str): maxima command
        session (MaximaSession, optional): session to use. Defaults to the default session.
        out (Printer, optional): print function. Defaults to print.

    Returns:
        str: maxima's output
    """
    session = session or default_session()
    output = session.raw_batch_string(command)
    out(RESULT_MARKER + output.rstrip("\n"))
    return output


def maxima_cell(
    commands: Sequence[str],
    session: Optional[MaximaSession] = None,
    out: Printer = print,
) -> List[str]:
    """
    runs every command in its own maxima process, nothing is shared between
    the commands

    Args:
        commands (Sequence[str]): maxima commands, comments and blank commands are dropped
        session (MaximaSession, optional): session to use. Defaults to the default session.
        out (Printer, optional): print function. Defaults to print.

    Returns:
        List[str]: output of every command
    """
    session = session or default_session()
    outputs = []
    for command in commands:
        command = _clean(command)
        if not command:
            continue
        output = session.raw_batch_string(command)
        out(RESULT_MARKER + output.rstrip("\n"))
        outputs.append(output)
    return outputs


def maxima_joined(
    commands: Sequence[str],
    session: Optional[MaximaSession] = None,
    out: Printer = print,
) -> Optional[str]:
    """
    runs all commands in one maxima process and prints the last result

    Args:
        commands (Sequence[str]): maxima commands
        session (MaximaSession, optional): session to use. Defaults to the default session.
        out (Printer, optional): print function. Defaults to print.

    Returns:
        Optional[str]: last result, None for a cell without commands
    """
    cleaned = [_clean(c) for c in commands]
    cleaned = [c + ";" for c in cleaned if c]
    if not cleaned:
        return None

    session = session or default_session()
    output = session.raw_batch_string(" ".join(cleaned))

    lines = [l.strip() for l in output.splitlines() if l.strip()]
    if not lines:
        return None

    for line in reversed(lines):
        if ":" not in line and not line.startswith("("):
            out(RESULT_MARKER + line)
            return line

    out(lines[-1])
    return lines[-1]


def _plot_file(workdir: Path, index: int) -> Path:
    return workdir / f"maxima_plot_temp_{index}.png"


def rewrite_plot_command(command: str, png_file: Union[str, Path]) -> str:
    """
    makes a plot command write a png file through gnuplot instead of opening
    a window

    Args:
        command (str): plot2d, plot3d, ... command
        png_file (Union[str, Path]): file gnuplot writes the plot to

    Returns:
        str: rewritten command
    """
    cleaned = TRAILING_TERMINATOR.sub("", command.strip()).strip()
    if cleaned.endswith(")"):
        cleaned = (
            cleaned[:-1]
            + ", [gnuplot_term, png], "
            + f'[gnuplot_out_file, "{png_file}"])'
        )
    return cleaned + ";"


def _save_plot(tmp_file: Path, plot_dir: Path, index: int) -> Path:
    plot_dir.mkdir(parents=True, exist_ok=True)
    timestamp = re.sub(r"[:.\- ]", "_", datetime.now().isoformat(timespec="milliseconds"))
    permanent = plot_dir / f"plot_{timestamp}_{index}.png"
    permanent.write_bytes(tmp_file.read_bytes())
    tmp_file.unlink()
    return permanent


def maxima_cell_session(
    commands: Sequence[str],
    credits: bool = False,
    output_file: Optional[Union[str, Path]] = None,
    plot_dir: Union[str, Path] = "plots",
    workdir: Optional[Union[str, Path]] = None,
    session: Optional[MaximaSession] = None,
    out: Printer = print,
    show_image: Callable[[bytes], None] = show_png,
) -> CellTranscript:
    """
    Runs all commands of a notebook cell in one maxima process and prints a
    transcript in maxima's own format, numbered from (%i1) on:

        (%i1) f(x):=x^2;
        (%o1) f(x):=x^2

        (%i2) f(3);
        (%o2) 9

    Plot commands are rewritten to write png files which are displayed in the
    notebook and kept in plot_dir.

    Args:
        commands (Sequence[str]): maxima commands, missing terminators are added
        credits (bool, optional): print maxima's banner first. Ignored for cells with plots.
        output_file (Union[str, Path], optional): file the transcript is written to.
        plot_dir (Union[str, Path], optional): directory for plots, relative to workdir. Defaults to "plots".
        workdir (Union[str, Path], optional): directory for temporary plot files. Defaults to the current directory.
        session (MaximaSession, optional): session to use. Defaults to the default session.
        out (Printer, optional): print function. Defaults to print.
        show_image (Callable[[bytes], None], optional): displays png data. Defaults to IPython's display.

    Raises:
        ValueError: cell without commands

    Returns:
        CellTranscript: printed lines and saved plots
    """
    if not commands:
        raise ValueError("at least one maxima command is required")

    session = session or default_session()
    workdir = Path(workdir) if workdir is not None else Path(os.getcwd())
    plot_dir = workdir / plot_dir
    commands = [normalize_command(c) for c in commands]
    has_plot = any(is_plot_command(c) for c in commands)

    transcript = CellTranscript()

    def emit(line: str) -> None:
        out(line)
        transcript.lines.append(line)

    if credits and has_plot:
        out(CREDITS_IGNORED)
    elif credits:
        for line in session.credits():
            emit(line)
        emit("")

    if has_plot:
        batch_commands = [
            rewrite_plot_command(c, _plot_file(workdir, i)) if is_plot_command(c) else c
            for i, c in enumerate(commands, start=1)
        ]
        result = session.run_batch(batch_commands, extra_setup=PLOT_SETUP)
    else:
        result = session.run_batch(commands)

    for i, command in enumerate(commands, start=1):
        emit(format_input_line(i, command))

        if has_plot and is_plot_command(command):
            emit(format_output_line(i, PLOT_LABEL))
            emit("")

            tmp_file = _plot_file(workdir, i)
            if tmp_file.is_file() and tmp_file.stat().st_size > 0:
                show_image(tmp_file.read_bytes())
                saved = _save_plot(tmp_file, plot_dir, i)
                transcript.images.append(saved)
                logger.debug("plot %d saved to %s", i, saved)

                if output_file is not None:
                    relative = os.path.relpath(saved, workdir)
                    if relative.startswith(".."):
                        relative = str(saved)
                    else:
                        relative = f"./{relative}"
                    transcript.lines.append(f"→ saved to: {relative}")
            else:
                logger.debug("plot %d produced no png file", i)
            continue

        output = result.result(i)
        if output is not None:
            emit(format_output_line(i, output))
        emit("")

    if output_file is not None:
        Path(output_file).write_text(transcript.text(), encoding="utf-8")

    return transcript
