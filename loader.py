"""Segment loader: turns framed program text into initial values and statements."""

from __future__ import annotations
import re
from typing import List, Pattern, Tuple

from errors import ErrorType, LoadError, SegmentKind


REGISTER_BEGIN = "BEGIN_REGISTER_SEGMENT"
REGISTER_END = "END_REGISTER_SEGMENT"
CODE_BEGIN = "BEGIN_CODE_SEGMENT"
CODE_END = "END_CODE_SEGMENT"

# "index value": a single word token or a double-quoted literal.
VARIABLE_LINE = re.compile(r'^(\d+)[ \t]+(\w+|"[^"\r\n]*")[ \t\r]*$', re.MULTILINE)
# "index statement": the statement runs to the end of the line.
CODE_LINE = re.compile(r"^(\d+)[ \t]+(\S.*?)[ \t\r]*$", re.MULTILINE)

_LINE_BREAK = re.compile(r"\r?\n")


def load_segment(kind: SegmentKind, text: str, line_pattern: Pattern[str]) -> List[str]:
    """Parse the body of one segment into its payloads, in index order.

    Every non-blank line must match ``line_pattern`` and the captured indices
    must run 0, 1, 2, ... The first line that breaks either rule stops the
    parse with a LoadError coded for ``kind``.
    """
    payloads: List[str] = []
    if text.strip() == "":
        return payloads

    if line_pattern.search(text) is None:
        raise LoadError.from_condition(kind, ErrorType.MALFORMED_SEGMENT)

    expected_index = 0
    for line in _LINE_BREAK.split(text):
        if line.strip() == "":
            continue
        match = line_pattern.match(line)
        if match is None:
            raise LoadError.from_condition(kind, ErrorType.MALFORMED_ASSIGNMENT)
        if int(match.group(1)) != expected_index:
            raise LoadError.from_condition(kind, ErrorType.NOT_CHRONOLOGICAL)
        expected_index += 1
        payloads.append(match.group(2))
    return payloads


def load_variable_segment(text: str) -> List[str]:
    return load_segment(SegmentKind.VARIABLE, text, VARIABLE_LINE)


def load_code_segment(text: str) -> List[str]:
    return load_segment(SegmentKind.CODE, text, CODE_LINE)


def extract_segment(source: str, begin: str, end: str, name: str) -> str:
    """Return the text between ``begin`` and the first ``end`` that follows it."""
    start = source.find(begin)
    if start == -1:
        raise LoadError(f"No {name} segment found")
    body_start = start + len(begin)
    stop = source.find(end, body_start)
    if stop == -1:
        raise LoadError(f"{name.capitalize()} segment not fully defined")
    return source[body_start:stop]


def load(source: str) -> Tuple[List[str], List[str]]:
    """Load a whole program.

    Returns ``(variables, statements)``. Raises LoadError on framing, line
    grammar or ordering problems. Loading has no side effects, so loading
    the same text twice yields equal results.
    """
    register_text = extract_segment(source, REGISTER_BEGIN, REGISTER_END, "register")
    code_text = extract_segment(source, CODE_BEGIN, CODE_END, "code")
    variables = load_variable_segment(register_text)
    statements = load_code_segment(code_text)
    return variables, statements


def load_file(path: str) -> Tuple[List[str], List[str]]:
    with open(path, "r", encoding="utf-8") as handle:
        return load(handle.read())
