"""
Starfish Initial-Stack Parser
=============================
Turns the ``--stack`` command-line text into a list of floats.

Syntax:
  - Numbers (digits and '.') separated by spaces: ``1 2.5 10``
  - Quoted strings, with ' or ", push one value per byte: ``'olleh'``
  - Inside a string the other quote character is an ordinary byte

Usage:
  from stackinit import parse_stack
  values = parse_stack("10 'olleh'")   # [10.0, 111.0, 108.0, ...]
"""

from __future__ import annotations

NUMBER_CHARS = frozenset(b"0123456789.")
QUOTES = (ord("'"), ord('"'))


class StackSyntaxError(ValueError):
    def __init__(self, pos: int, msg: str):
        self.pos = pos
        super().__init__(f"Invalid initial stack at column {pos}: {msg}")


def _number(text: bytearray, pos: int) -> float:
    try:
        return float(text.decode("ascii"))
    except ValueError:
        raise StackSyntaxError(pos, f"bad number {text.decode('ascii')!r}") from None


def parse_stack(text: str) -> list[float]:
    """Parse initial-stack text.  Raises StackSyntaxError on bad input.

    A number is only flushed by a space or the end of the text, so a
    string glued onto a number (``10'ab'``) is pushed before it.
    """
    out: list[float] = []
    str_mode = 0
    cur = bytearray()
    start = 0

    for pos, b in enumerate(text.encode("utf-8")):
        if str_mode and b != str_mode:
            out.append(float(b))
            continue
        if b == 0x20:
            if cur:
                out.append(_number(cur, start))
                cur = bytearray()
        elif b in QUOTES:
            str_mode = 0 if str_mode else b
        elif b in NUMBER_CHARS:
            if not cur:
                start = pos
            cur.append(b)
        else:
            raise StackSyntaxError(pos, f"unexpected character {chr(b)!r}"
                                   if b < 0x80 else "unexpected non-ASCII byte")

    if cur:
        out.append(_number(cur, start))
    return out
