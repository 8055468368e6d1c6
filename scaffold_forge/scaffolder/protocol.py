"""Decoder for the four-prefix scaffold marker protocol.

A single generated document packs many files using line prefixes::

    $$$$backend/app/          -> current path (text after the last '$')
    &&&&main.py               -> current file name (text after the last '&')
    @@@@                      -> toggle capture; closing a capture emits a block
    ...content lines...       -> captured verbatim while capture is on

Lines outside a capture that carry no marker (the narrative README that
usually precedes the first block) are ignored.

The prefix test is applied to every line in every state.  A path or name
marker inside a capture updates the current path or name and is also kept
as a content line; an ``@@@@`` line inside content always closes the block.
A document that ends mid-capture drops the unfinished block, and a capture
closed without a file name is discarded silently.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Union

PATH_MARKER = "$$$$"
NAME_MARKER = "&&&&"
CAPTURE_MARKER = "@@@@"

# A path value containing this sentinel means "no subdirectory".
ROOT_SENTINEL = "your-project-root"

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True)
class FileBlock:
    """One decoded file: ``relative_path`` is ``""`` or ends with ``/``."""

    relative_path: str
    file_name: str
    content: str

    @property
    def target(self) -> str:
        """Path of the file relative to the output root."""
        return f"{self.relative_path}{self.file_name}"


@dataclass(frozen=True)
class Idle:
    """Capture is off; path and file name may already be set for the next block."""

    path: str = ""
    file_name: str | None = None


@dataclass(frozen=True)
class Capturing:
    """Capture is on; content lines accumulate in ``lines``."""

    path: str = ""
    file_name: str | None = None
    lines: tuple[str, ...] = ()


ParserState = Union[Idle, Capturing]


def normalize_path(value: str) -> str:
    """Normalise a path marker value.

    Values containing the root sentinel collapse to ``""``; any other
    non-empty value is given a trailing ``/``.
    """
    value = value.strip()
    if ROOT_SENTINEL in value:
        return ""
    if value and not value.endswith("/"):
        value += "/"
    return value


def _marker_value(line: str, marker_char: str) -> str:
    """Return everything after the last ``marker_char`` on the line."""
    return line.rpartition(marker_char)[2]


def step(state: ParserState, line: str) -> tuple[ParserState, FileBlock | None]:
    """Advance the parser by one line.

    Returns the next state and the block emitted by this line, if any.  The
    input state is never mutated.
    """
    if line.startswith(PATH_MARKER):
        state = replace(state, path=normalize_path(_marker_value(line, "$")))
        if isinstance(state, Capturing):
            state = replace(state, lines=state.lines + (line,))
        return state, None

    if line.startswith(NAME_MARKER):
        name = _marker_value(line, "&").strip()
        state = replace(state, file_name=name or None)
        if isinstance(state, Capturing):
            state = replace(state, lines=state.lines + (line,))
        return state, None

    if line.startswith(CAPTURE_MARKER):
        if isinstance(state, Idle):
            return Capturing(path=state.path, file_name=state.file_name), None
        block = None
        if state.file_name:
            block = FileBlock(
                relative_path=state.path,
                file_name=state.file_name,
                content="".join(f"{text}\n" for text in state.lines),
            )
        return Idle(), block

    if isinstance(state, Capturing):
        return replace(state, lines=state.lines + (line,)), None

    return state, None


def split_lines(document: str) -> list[str]:
    """Split a document on ``\\n``, ``\\r\\n`` or ``\\r`` without a trailing empty line."""
    if not document:
        return []
    lines = _LINE_BREAK.split(document)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def parse_scaffold(document: str) -> list[FileBlock]:
    """Decode a scaffold document into its ordered file blocks.

    Blocks are returned in order of appearance and are not deduplicated.
    """
    state: ParserState = Idle()
    blocks: list[FileBlock] = []
    for line in split_lines(document):
        state, block = step(state, line)
        if block is not None:
            blocks.append(block)
    return blocks
