"""
Author: Konstantin (k0nze) Lübeck
License: BSD 3-Clause License
Copyright (c) 2022 Konstantin (k0nze) Lübeck
"""

import logging
import os
import shutil
import subprocess
import sys

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import psutil

from maxima_notebook.transcript import (
    extract_credits,
    extract_last_result,
    normalize_command,
    parse_float,
    parse_output_labels,
)

DEFAULT_EXECUTABLE = "maxima"

# one dimensional output on a single (very long) line, optional qinf package
DEFAULT_SETUP = (
    "display2d:false$",
    "linel:32767$",
)
DEFAULT_PACKAGES = ("qinf",)

PLOT_SETUP = ("gnuplot_pipes: true$",)

# keeps GCL based maxima builds from claiming most of the physical memory
GCL_ENV = {
    "GCL_MEM_MULTIPLE": "0.3",
    "GCL_GC_PAGE_THRESH": "0.2",
    "GCL_GC_ALLOC_MIN": "0.01",
    "GCL_GC_PAGE_MAX": "0.5",
}


class MaximaNotInstalled(Exception):
    def __init__(self, executable: str = DEFAULT_EXECUTABLE) -> None:
        super().__init__(executable)
        self.executable = executable

    def __str__(self):
        return f"'{self.executable}' command could not be found on this system."


class MaximaTimeout(Exception):
    def __init__(self, timeout: Optional[float]) -> None:
        super().__init__(timeout)
        self.timeout = timeout

    def __str__(self):
        return f"maxima did not finish within {self.timeout} seconds and was killed."


class MaximaProcessError(Exception):
    def __init__(self, message: str = "maxima process is not running.") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message


def maxima_environment() -> Dict[str, str]:
    """returns a copy of the current environment extended by the GCL memory settings"""
    env = dict(os.environ)
    env.update(GCL_ENV)
    return env


def default_executable() -> str:
    return os.environ.get("MAXIMA_EXECUTABLE", DEFAULT_EXECUTABLE)


def kill_process_tree(pid: int) -> None:
    """
    kills a process (SIGKILL) with pid and all of its children

    Args:
        pid (int): process id of process to kill
    """
    try:
        process = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return

    for proc in process.children(recursive=True):
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass

    try:
        process.kill()
    except psutil.NoSuchProcess:
        pass


@dataclass
class BatchResult:
    """Transcript of one maxima run and the outputs found in it."""

    commands: List[str]
    setup_commands: List[str]
    raw: str
    outputs: Dict[int, str] = field(default_factory=dict)

    def label_for(self, index: int) -> int:
        """output label of the user command at 1-based index"""
        return index + len(self.setup_commands)

    def result(self, index: int) -> Optional[str]:
        """
        returns the output of the user command at index

        Args:
            index (int): 1-based position of the command in the batch

        Returns:
            Optional[str]: output text or None if maxima printed no output for it
        """
        return self.outputs.get(self.label_for(index))

    def results(self) -> List[Optional[str]]:
        return [self.result(i) for i in range(1, len(self.commands) + 1)]


class MaximaSession:
    def __init__(
        self,
        executable: Optional[str] = None,
        setup_commands: Sequence[str] = DEFAULT_SETUP,
        load_packages: Sequence[str] = DEFAULT_PACKAGES,
        timeout: Optional[float] = None,
        debug: bool = False,
    ) -> None:
        """
        Runs batches of commands in maxima, every batch in a fresh maxima
        process so the state is shared between the commands of a batch only

        Raises:
            MaximaNotInstalled: when maxima command can not be found

        Args:
            executable (str, optional): maxima command. Defaults to $MAXIMA_EXECUTABLE or "maxima".
            setup_commands (Sequence[str], optional): commands sent before every batch.
            load_packages (Sequence[str], optional): packages loaded before every batch, a missing package is ignored.
            timeout (float, optional): seconds a batch may take. Defaults to no limit.
            debug (bool, optional): enables debug print outs. Defaults to False.
        """
        self.debug = debug
        if self.debug:
            logging.basicConfig(stream=sys.stderr, level=logging.DEBUG)

        self.executable = executable or default_executable()
        self.timeout = timeout

        self.setup_commands = list(setup_commands) + [
            f'ignore(load("{package}"))$' for package in load_packages
        ]

        if not self.__is_maxima_installed():
            raise MaximaNotInstalled(self.executable)

        self.__debug_message("initialized.")

    def __enter__(self) -> "MaximaSession":
        return self

    def __exit__(self, *exc) -> None:
        pass

    def __debug_message(self, message: str) -> None:
        logging.debug(f"{self.__class__.__name__}: {message}")

    def __is_maxima_installed(self) -> bool:
        """checks if maxima is installed"""
        return shutil.which(self.executable) is not None

    def __communicate(self, args: List[str], stdin_text: Optional[str] = None) -> str:
        """
        starts maxima with args, feeds stdin_text and returns everything maxima printed

        Raises:
            MaximaTimeout: maxima took longer than the session timeout
        """
        self.__debug_message(f"starting {args}")
        process = subprocess.Popen(
            args,
            stdin=subprocess.PIPE if stdin_text is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=maxima_environment(),
        )

        try:
            stdout, _ = process.communicate(
                input=stdin_text.encode() if stdin_text is not None else None,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            self.__debug_message(f"timeout, killing pid {process.pid}")
            kill_process_tree(process.pid)
            process.communicate()
            raise MaximaTimeout(self.timeout)

        if process.returncode:
            self.__debug_message(f"maxima exited with {process.returncode}")

        raw = stdout.decode(errors="replace")
        self.__debug_message(f'received "{raw}"')
        return raw

    def run_batch(
        self, commands: Sequence[str], extra_setup: Sequence[str] = ()
    ) -> BatchResult:
        """
        sends the setup commands followed by the user commands to one maxima
        process and associates every user command with its output label

        Args:
            commands (Sequence[str]): maxima commands, missing terminators are added
            extra_setup (Sequence[str], optional): additional setup commands for this batch

        Raises:
            MaximaTimeout: maxima took longer than the session timeout

        Returns:
            BatchResult: transcript and outputs
        """
        setup = self.setup_commands + list(extra_setup)
        user_commands = [normalize_command(c) for c in commands]

        stdin_text = "".join(line + "\n" for line in setup + user_commands)
        raw = self.__communicate([self.executable, "--quiet"], stdin_text)

        return BatchResult(
            commands=user_commands,
            setup_commands=setup,
            raw=raw,
            outputs=parse_output_labels(raw),
        )

    def evaluate(self, command: str) -> str:
        """
        evaluates a single command and returns its output

        Args:
            command (str): maxima command

        Returns:
            str: maxima result, empty if maxima printed none
        """
        result = self.run_batch([command]).result(1)
        return result if result is not None else ""

    def raw_batch_string(self, command: str) -> str:
        """output of maxima --very-quiet --batch-string without the leading newline"""
        raw = self.__communicate(
            [self.executable, "--very-quiet", f"--batch-string={normalize_command(command)}"]
        )
        return raw[1:]

    def evaluate_batch_string(self, command: str) -> str:
        """
        evaluates command(s) with --batch-string and returns the last result line

        Args:
            command (str): one or more maxima commands

        Returns:
            str: last result or an empty string
        """
        # the trailing newline avoids "premature termination" in GCL builds
        batch = normalize_command(command) + "\n"
        raw = self.__communicate([self.executable, "--very-quiet", f"--batch-string={batch}"])
        return extract_last_result(raw)

    def evaluate_float(self, command: str) -> Union[float, str]:
        return parse_float(self.evaluate_batch_string(command))

    def credits(self) -> List[str]:
        """returns the banner maxima prints on start up"""
        raw = self.__communicate([self.executable, "--batch-string=quit();"])
        return extract_credits(raw)


_default_session: Optional[MaximaSession] = None


def default_session() -> MaximaSession:
    global _default_session
    if _default_session is None:
        _default_session = MaximaSession()
    return _default_session


def maxima_eval(command: str) -> str:
    """evaluates a command with the default session, see MaximaSession.evaluate"""
    return default_session().evaluate(command)


def maxima_eval_float(command: str) -> Union[float, str]:
    return default_session().evaluate_float(command)
