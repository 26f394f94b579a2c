"""Helpers shared by the UBI tools: number parsing, byte formatting, text folding."""

from __future__ import annotations

import os
import random
import time
from typing import List, Optional, TextIO, Tuple

RAND_MAX = 2147483647

_SPACE = frozenset(" \t\n\v\f\r")
_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_LONG_LONG_LIMIT = 1 << 63
_FOLD_LIMIT = 1023

_MULTIPLIERS = {
    "KiB": 1024,
    "MiB": 1024 * 1024,
    "GiB": 1024 * 1024 * 1024,
}


def _scan_number(text: str) -> Optional[Tuple[int, str]]:
    """Read a leading integer with C base-0 rules.

    Returns the value and the unparsed remainder, or None when no digits
    could be converted at all.
    """
    i = 0
    n = len(text)
    while i < n and text[i] in _SPACE:
        i += 1
    negative = False
    if i < n and text[i] in "+-":
        negative = text[i] == "-"
        i += 1

    base = 10
    if text.startswith(("0x", "0X"), i) and i + 2 < n and text[i + 2].lower() in _DIGITS[:16]:
        base = 16
        i += 2
    elif i < n and text[i] == "0":
        base = 8

    allowed = _DIGITS[:base]
    start = i
    while i < n and text[i].lower() in allowed:
        i += 1
    if i == start:
        return None

    value = int(text[start:i], base)
    return (-value if negative else value), text[i:]


def parse_number(text: str) -> int:
    """Parse a whole string as an integer in decimal, octal (0...) or hex (0x...).

    Raises ValueError if the string is empty or has anything after the number.
    """
    scanned = _scan_number(text)
    if not text or scanned is None or scanned[1]:
        raise ValueError(f"unable to parse the number '{text}'")
    return scanned[0]


def get_bytes(text: str) -> int:
    """Convert an amount of bytes with an optional KiB, MiB or GiB suffix."""
    scanned = _scan_number(text)
    if scanned is None:
        raise ValueError(f'incorrect amount of bytes: "{text}"')
    value, rest = scanned
    if value < 0 or value >= _LONG_LONG_LIMIT:
        raise ValueError(f'incorrect amount of bytes: "{text}"')
    if rest:
        mult = _MULTIPLIERS.get(rest.lstrip(" \t"))
        if mult is None:
            raise ValueError(
                f'bad size specifier: "{rest}" - should be \'KiB\', \'MiB\' or \'GiB\''
            )
        value *= mult
    return value


def format_bytes(nbytes: int, bracket: bool) -> str:
    """Render an exact byte count followed by an approximate KiB/MiB/GiB size."""
    sep = " (" if bracket else ", "
    out = f"{nbytes} bytes"
    gib = 1024 * 1024 * 1024
    mib = 1024 * 1024
    if nbytes > gib:
        approx = f"{nbytes / gib:.1f} GiB"
    elif nbytes > mib:
        approx = f"{nbytes / mib:.1f} MiB"
    elif nbytes > 1024:
        approx = f"{nbytes / 1024:.1f} KiB"
    else:
        return out
    out += sep + approx
    if bracket:
        out += ")"
    return out


def fold_text(text: str, width: int) -> List[str]:
    """Split text into lines of at most width characters, breaking at spaces."""
    if width > _FOLD_LIMIT:
        return [text]
    if width < 1:
        raise ValueError(f"fold width must be positive, got {width}")

    n = len(text)

    def at(i: int) -> str:
        return text[i] if i < n else ""

    lines: List[str] = []
    start = 0
    pos = 0
    bpos = 0
    while at(start + pos):
        while True:
            c = at(start + pos)
            if not c or c in _SPACE:
                break
            pos += 1
            if pos == width:
                lines.append(text[start:start + pos])
                start += pos
                pos = 0
        while pos < width:
            c = at(start + pos)
            if not c:
                bpos = pos
                break
            if c in _SPACE:
                bpos = pos
            pos += 1
        lines.append(text[start:start + bpos])
        start += bpos
        pos = 0
        while at(start) and at(start) in _SPACE:
            start += 1
    return lines


def print_text(stream: TextIO, text: str, width: int) -> None:
    """Write text to stream folded so no line is wider than width."""
    for line in fold_text(text, width):
        stream.write(line + "\n")


def seed_random() -> int:
    """Seed the random module from the clock and process id; return the seed."""
    now = time.time_ns()
    sec, usec = divmod(now // 1000, 1_000_000)
    seed = (sec + usec) & 0xFFFFFFFF
    seed = (seed * os.getpid()) & 0xFFFFFFFF
    seed %= RAND_MAX
    random.seed(seed)
    return seed