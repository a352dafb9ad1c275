"""
Author: Konstantin (k0nze) Lübeck
License: BSD 3-Clause License
Copyright (c) 2022 Konstantin (k0nze) Lübeck
"""

import logging
import os
import shutil

from pathlib import Path
from typing import List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

# the qinf package and the files it loads
DEFAULT_FILES = (
    "qinf.mac",
    "qinf.lisp",
    "qinf_utils.mac",
    "log2.mac",
    "mmacompat.mac",
)
DEFAULT_SOURCE = "src"


class MacroFileMissing(Exception):
    def __init__(self, missing: Sequence[Path]) -> None:
        super().__init__(missing)
        self.missing = list(missing)

    def __str__(self):
        names = ", ".join(str(p) for p in self.missing)
        return f"macro file(s) not found: {names}"


def maxima_user_dir() -> Path:
    """directory maxima searches for user packages, $MAXIMA_USERDIR or ~/.maxima"""
    user_dir = os.environ.get("MAXIMA_USERDIR")
    if user_dir:
        return Path(user_dir)
    return Path.home() / ".maxima"


def install_macros(
    source_dir: Union[str, Path] = DEFAULT_SOURCE,
    dest_dir: Optional[Union[str, Path]] = None,
    files: Sequence[str] = DEFAULT_FILES,
) -> List[Path]:
    """
    copies maxima macro files into maxima's search path

    Args:
        source_dir (Union[str, Path], optional): directory holding the files. Defaults to "src".
        dest_dir (Union[str, Path], optional): destination. Defaults to maxima_user_dir().
        files (Sequence[str], optional): file names to copy. Defaults to the qinf package.

    Raises:
        MacroFileMissing: a file is missing in source_dir, nothing has been copied

    Returns:
        List[Path]: installed files
    """
    source_dir = Path(source_dir)
    dest_dir = Path(dest_dir) if dest_dir is not None else maxima_user_dir()

    sources = [source_dir / name for name in files]
    missing = [p for p in sources if not p.is_file()]
    if missing:
        raise MacroFileMissing(missing)

    dest_dir.mkdir(parents=True, exist_ok=True)

    installed = []
    for source in sources:
        target = dest_dir / source.name
        logger.debug("copying %s to %s", source, target)
        shutil.copy2(source, target)
        installed.append(target)

    return installed
