"""
Author: Konstantin (k0nze) Lübeck
License: BSD 3-Clause License
Copyright (c) 2022 Konstantin (k0nze) Lübeck
"""

from maxima_notebook.cell import (
    CellTranscript,
    maxima_cell,
    maxima_cell_session,
    maxima_joined,
    maxima_line,
)
from maxima_notebook.installer import install_macros
from maxima_notebook.magics import MaximaMagics, load_ipython_extension
from maxima_notebook.maxima_repl import MaximaRepl
from maxima_notebook.maxima_session import (
    BatchResult,
    MaximaNotInstalled,
    MaximaSession,
    MaximaTimeout,
    maxima_eval,
    maxima_eval_float,
)

__version__ = "0.1.0"
__all__ = [
    "BatchResult",
    "CellTranscript",
    "MaximaMagics",
    "MaximaNotInstalled",
    "MaximaRepl",
    "MaximaSession",
    "MaximaTimeout",
    "install_macros",
    "load_ipython_extension",
    "maxima_cell",
    "maxima_cell_session",
    "maxima_eval",
    "maxima_eval_float",
    "maxima_joined",
    "maxima_line",
]
