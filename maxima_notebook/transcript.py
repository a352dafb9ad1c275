"""
Author: Konstantin (k0nze) Lübeck
License: BSD 3-Clause License
Copyright (c) 2022 Konstantin (k0nze) Lübeck
"""

import re

from typing import Dict, List, Optional, Union

OUTPUT_LABEL = re.compile(r"^\s*\(%o(\d+)\)\s*(.*)")
INPUT_LABEL = re.compile(r"%i\d+")

PLOT_KEYWORDS = ("plot2d", "plot3d", "draw2d", "draw3d", "wxplot")

# lines of a --batch-string transcript that are never a result
NON_RESULT_PREFIXES = ("(", "incorrect syntax", "batch(")
NON_RESULT_LINES = (";", "^")


def normalize_command(command: str) -> str:
    """
    returns the command with a terminator, ';' is appended if the command
    neither ends with ';' nor '$'

    Args:
        command (str): maxima command

    Returns:
        str: terminated command
    """
    stripped = command.strip()
    if stripped.endswith(";") or stripped.endswith("$"):
        return stripped
    return stripped + ";"


def terminator(command: str) -> str:
    """'$' for silent commands, ';' otherwise"""
    return "$" if command.strip().endswith("$") else ";"


def strip_terminator(command: str) -> str:
    return command.strip().rstrip(";$").strip()


def count_statements(command: str) -> int:
    """
    counts the statement terminators (';' and '$') outside of string
    literals and comments, maxima shows one input prompt per statement

    Args:
        command (str): one or more maxima statements

    Returns:
        int: number of statements, at least 1
    """
    count = 0
    in_string = False
    in_comment = False
    i = 0
    while i < len(command):
        c = command[i]
        if in_comment:
            if command.startswith("*/", i):
                in_comment = False
                i += 1
        elif in_string:
            if c == "\\":
                i += 1
            elif c == '"':
                in_string = False
        elif c == '"':
            in_string = True
        elif command.startswith("/*", i):
            in_comment = True
            i += 1
        elif c in ";$":
            count += 1
        i += 1
    return max(count, 1)


def is_plot_command(command: str) -> bool:
    lower = command.lower()
    return any(keyword in lower for keyword in PLOT_KEYWORDS)


def parse_output_labels(raw: str) -> Dict[int, str]:
    """
    collects all output lines (%o[0-9]+) of a maxima transcript

    Args:
        raw (str): transcript as printed by maxima

    Returns:
        Dict[int, str]: output label number mapped to the text after the label
    """
    outputs = {}
    for line in raw.splitlines():
        match = OUTPUT_LABEL.match(line.strip())
        if match is not None:
            outputs[int(match.group(1))] = match.group(2).strip()
    return outputs


def output_for(raw: str, label: int) -> Optional[str]:
    return parse_output_labels(raw).get(label)


def _printable(raw: str) -> str:
    return "".join(c for c in raw if " " <= c <= "~" or c in "\n\r")


def extract_last_result(raw: str) -> str:
    """
    returns the last line of a --batch-string transcript that looks like a
    result, i.e. it is neither an assignment, a label, an echo of the batch
    call nor a syntax error marker

    Args:
        raw (str): output of maxima --very-quiet --batch-string

    Returns:
        str: result or an empty string
    """
    lines = [l.strip() for l in _printable(raw).splitlines() if l.strip()]

    for line in reversed(lines):
        if ":" in line:
            continue
        if line.startswith(NON_RESULT_PREFIXES):
            continue
        if line in NON_RESULT_LINES:
            continue
        return line
    return ""


def extract_credits(raw: str) -> List[str]:
    """
    returns the banner maxima prints on start up, everything up to the first
    input label

    Args:
        raw (str): output of a maxima run without --quiet

    Returns:
        List[str]: banner lines
    """
    credits = []
    for line in raw.splitlines():
        line = line.rstrip()
        if INPUT_LABEL.search(line):
            break
        if not credits and line == "":
            continue
        credits.append(line)
    return credits


def format_input_line(index: int, command: str) -> str:
    return f"(%i{index}) {strip_terminator(command)}{terminator(command)}"


def format_output_line(index: int, text: str) -> str:
    return f"(%o{index}) {text}"


def parse_float(text: str) -> Union[float, str]:
    """
    converts a maxima result into a float if it is numeric

    Args:
        text (str): maxima result

    Returns:
        Union[float, str]: float value or the unchanged text
    """
    if text == "":
        return text

    try:
        return float(text)
    except ValueError:
        return text
