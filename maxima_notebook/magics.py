"""
Author: Konstantin (k0nze) Lübeck
License: BSD 3-Clause License
Copyright (c) 2022 Konstantin (k0nze) Lübeck
"""

from typing import List, Optional

from IPython.core.magic import Magics, cell_magic, line_magic, magics_class
from IPython.core.magic_arguments import argument, magic_arguments, parse_argstring

from maxima_notebook.cell import maxima_cell_session
from maxima_notebook.maxima_session import MaximaSession


def split_cell(cell: str) -> List[str]:
    """one maxima command per non-empty line"""
    return [line.strip() for line in cell.splitlines() if line.strip()]


@magics_class
class MaximaMagics(Magics):
    """
    %maxima <command>  evaluates one command and returns its result
    %%maxima           runs the cell, one command per line, in one maxima process
    """

    def __init__(self, shell=None, session: Optional[MaximaSession] = None):
        super().__init__(shell)
        self._session = session

    @property
    def session(self) -> MaximaSession:
        if self._session is None:
            self._session = MaximaSession()
        return self._session

    @line_magic
    def maxima(self, line: str) -> str:
        return self.session.evaluate(line)

    @magic_arguments()
    @argument("--credits", action="store_true", help="print maxima's banner first")
    @argument("--file", default=None, help="write the transcript to FILE")
    @argument("--plot-dir", default="plots", help="directory plots are saved to")
    @cell_magic("maxima")
    def maxima_cell(self, line: str, cell: str) -> None:
        args = parse_argstring(self.maxima_cell, line)
        commands = split_cell(cell)
        if not commands:
            return

        maxima_cell_session(
            commands,
            credits=args.credits,
            output_file=args.file,
            plot_dir=args.plot_dir,
            session=self.session,
        )


def load_ipython_extension(ipython) -> None:
    ipython.register_magics(MaximaMagics)
