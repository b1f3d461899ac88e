"""
Parser for the line-oriented cache command language.

Commands::

    WRITE "key" "value"
    READ "key"
    STAT
    exit

Keys and values are the double-quoted segments of the line, stripped of
surrounding whitespace.  ``STAT`` and ``exit`` are case-insensitive.
"""

import re
from typing import Literal, Optional

from pydantic import BaseModel

_QUOTED = re.compile(r'"([^"]*)"')

CommandKind = Literal["write", "read", "stat", "exit", "invalid", "unknown"]


class Command(BaseModel):
    """A parsed input line.

    Attributes:
        kind: Command type; ``invalid`` for a malformed WRITE/READ,
            ``unknown`` for anything else.
        key: Quoted key for WRITE/READ.
        value: Quoted value for WRITE.
        error: Human-readable reason for ``invalid``/``unknown``.
    """

    kind: CommandKind
    key: Optional[str] = None
    value: Optional[str] = None
    error: Optional[str] = None


def parse_command(line: str) -> Command:
    """Parse a single input line into a :class:`Command`."""
    text = line.strip()
    lowered = text.lower()

    if lowered == "exit":
        return Command(kind="exit")
    if lowered == "stat":
        return Command(kind="stat")

    if text.startswith("WRITE"):
        parts = _QUOTED.findall(text)
        if len(parts) < 2:
            return Command(kind="invalid", error="Invalid WRITE command format.")
        return Command(kind="write", key=parts[0].strip(), value=parts[1].strip())

    if text.startswith("READ"):
        parts = _QUOTED.findall(text)
        if not parts:
            return Command(kind="invalid", error="Invalid READ command format.")
        return Command(kind="read", key=parts[0].strip())

    return Command(
        kind="unknown",
        error="Unknown command. Valid commands are: WRITE, READ, STAT, or exit.",
    )
