"""
Author: Konstantin (k0nze) Lübeck
License: BSD 3-Clause License
Copyright (c) 2022 Konstantin (k0nze) Lübeck
"""

import logging
import os
import queue
import re
import shutil
import subprocess
import sys
import threading

from enum import Enum
from typing import List, Optional, Sequence

from maxima_notebook.maxima_session import (
    DEFAULT_PACKAGES,
    DEFAULT_SETUP,
    MaximaNotInstalled,
    MaximaProcessError,
    MaximaTimeout,
    default_executable,
    kill_process_tree,
    maxima_environment,
)
from maxima_notebook.transcript import OUTPUT_LABEL, count_statements, normalize_command

INPUT_PROMPT = re.compile(r"\(%i\d+\)")


class MaximaServerNotAcceptingCommand(Exception):
    def __str__(self):
        return "maxima does not accept a command, it is waiting for a response from maxima."


class NoMaximaPrompt(Exception):
    def __str__(self):
        return "maxima did not show an input prompt."


class MaximaReplState(Enum):
    OFFLINE = 0
    WAITING_FOR_COMMAND = 1
    WAITING_FOR_MAXIMA = 2


class MaximaRepl:
    def __init__(
        self,
        executable: Optional[str] = None,
        setup_commands: Sequence[str] = DEFAULT_SETUP,
        load_packages: Sequence[str] = DEFAULT_PACKAGES,
        timeout: Optional[float] = 30,
        debug: bool = False,
    ) -> None:
        """
        Starts a maxima process that stays alive between commands, so
        variables and functions defined by one command are visible to the next

        Raises:
            MaximaNotInstalled: when maxima command can not be found
            NoMaximaPrompt: when maxima does not show its first input prompt

        Args:
            executable (str, optional): maxima command. Defaults to $MAXIMA_EXECUTABLE or "maxima".
            setup_commands (Sequence[str], optional): commands sent after start up and after reset.
            load_packages (Sequence[str], optional): packages loaded after start up, a missing package is ignored.
            timeout (float, optional): seconds to wait for a prompt. Defaults to 30.
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

        self.state = MaximaReplState.OFFLINE
        self.process = None
        self.reader_thread = None
        self.output_queue: "queue.Queue[Optional[str]]" = queue.Queue()

        if shutil.which(self.executable) is None:
            raise MaximaNotInstalled(self.executable)

        self.__start_maxima()

        try:
            self.__read_until_prompt()
        except (MaximaTimeout, MaximaProcessError):
            self.close()
            raise NoMaximaPrompt()

        self.state = MaximaReplState.WAITING_FOR_COMMAND

        try:
            self.__run_setup()
        except (MaximaTimeout, MaximaProcessError):
            self.close()
            raise

        self.__debug_message("initialized.")

    def __enter__(self) -> "MaximaRepl":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __debug_message(self, message: str) -> None:
        logging.debug(f"{self.__class__.__name__}: {message}")

    def __start_maxima(self) -> None:
        """starts the maxima process and a thread that drains its output"""
        self.process = subprocess.Popen(
            [self.executable, "--quiet"],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=maxima_environment(),
            preexec_fn=os.setsid,
        )
        self.__debug_message(f"started maxima with pid {self.process.pid}")

        self.reader_thread = threading.Thread(target=self.__read_output, daemon=True)
        self.reader_thread.start()

    def __read_output(self) -> None:
        """
        forwards maxima's output to the output queue, None marks the end of
        the output; prompts are not terminated by a newline so the raw file
        descriptor is read instead of lines
        """
        fd = self.process.stdout.fileno()
        for chunk in iter(lambda: os.read(fd, 1024), b""):
            text = chunk.decode(errors="replace")
            self.__debug_message(f'maxima: "{text}"')
            self.output_queue.put(text)
        self.output_queue.put(None)

    def __read_until_prompt(self, prompts: int = 1) -> str:
        """
        collects maxima's output until the given number of input prompts
        (%i[0-9]+) showed up, maxima prompts once per statement

        Args:
            prompts (int, optional): number of prompts to wait for. Defaults to 1.

        Raises:
            MaximaTimeout: no prompt within the timeout
            MaximaProcessError: maxima exited

        Returns:
            str: output in front of the last prompt, earlier prompts replaced by newlines
        """
        buffer = ""
        while True:
            try:
                chunk = self.output_queue.get(timeout=self.timeout)
            except queue.Empty:
                raise MaximaTimeout(self.timeout)

            if chunk is None:
                self.state = MaximaReplState.OFFLINE
                raise MaximaProcessError("maxima exited unexpectedly.")

            buffer += chunk
            matches = list(INPUT_PROMPT.finditer(buffer))
            if len(matches) >= prompts:
                return INPUT_PROMPT.sub("\n", buffer[: matches[prompts - 1].start()])

    def __send(self, command: str) -> str:
        statements = count_statements(command)
        self.state = MaximaReplState.WAITING_FOR_MAXIMA
        self.__debug_message(f'sending command to maxima: "{command}"')
        try:
            self.process.stdin.write((command + "\n").encode())
            self.process.stdin.flush()
        except OSError:
            self.state = MaximaReplState.OFFLINE
            raise MaximaProcessError("maxima does not accept input anymore.")

        try:
            response = self.__read_until_prompt(statements)
        except MaximaTimeout:
            self.close()
            raise

        self.state = MaximaReplState.WAITING_FOR_COMMAND
        return response

    def __run_setup(self) -> None:
        for command in self.setup_commands:
            self.__send(command)

    @staticmethod
    def format_response(response: str) -> str:
        """
        removes output labels (%o[0-9]+) from a response, a response without
        output label (e.g. an error message) is returned stripped

        Args:
            response (str): maxima's output for one command

        Returns:
            str: result
        """
        results: List[str] = []
        for line in response.splitlines():
            match = OUTPUT_LABEL.match(line.strip())
            if match is not None:
                results.append(match.group(2).strip())

        if results:
            return "\n".join(results)
        return response.strip()

    def raw_command(self, command_string: str) -> str:
        """
        sends a command as a string to maxima

        Args:
            command_string (str): string containing the command

        Raises:
            MaximaServerNotAcceptingCommand: raised when maxima is busy
            MaximaProcessError: raised when maxima is not running

        Returns:
            str: maxima result
        """
        if self.state == MaximaReplState.OFFLINE:
            raise MaximaProcessError()

        if self.state != MaximaReplState.WAITING_FOR_COMMAND:
            self.__debug_message("maxima is not accepting commands.")
            raise MaximaServerNotAcceptingCommand()

        return self.format_response(self.__send(normalize_command(command_string)))

    def reset(self) -> None:
        """removes all user definitions and runs the setup commands again"""
        self.raw_command("kill(all)$")
        self.__run_setup()

    def close(self) -> None:
        """kills the maxima process and waits for the output thread"""
        if self.process is None:
            return

        kill_process_tree(self.process.pid)
        self.process.wait()
        if self.reader_thread is not None:
            self.reader_thread.join()

        self.process.stdin.close()
        self.process.stdout.close()

        self.process = None
        self.state = MaximaReplState.OFFLINE
