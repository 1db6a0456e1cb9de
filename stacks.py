"""
Starfish Stack Machine
======================
The nested stack model of *><>.

A program owns an ordered list of stacks, one of which is "active".  Every
value is a 64-bit float.  Each stack also carries a single-slot register
that the ``&`` instruction toggles values in and out of.

Stacks are created and destroyed at run time:

  [   split the top N values off into a new stack (becomes active)
  ]   merge the active stack back into the one below it
  C   push a call frame holding the fish's position
  R   pop a call frame and restore the position from it
  I D move the active-stack pointer up / down
"""

from __future__ import annotations
from typing import Optional


# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class StarfishError(Exception):
    """Base for run-time faults.  Any of these crashes the fish."""
    pass

class StackUnderflowError(StarfishError):
    """Not enough values (or stacks) for the requested operation."""
    pass


# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def to_index(v: float) -> int:
    """Saturating float -> unsigned conversion (NaN and negatives give 0)."""
    if v != v or v <= 0:
        return 0
    if v == float("inf"):
        return 1 << 64
    return int(v)

def to_byte(v: float) -> int:
    """Saturating float -> u8 conversion."""
    return min(to_index(v), 0xFF)


# ---------------------------------------------------------------------------
#  Stack
# ---------------------------------------------------------------------------

class Stack:
    """One *><> stack: a list of floats plus a register.

    The register only counts as filled while ``filled_register`` is set;
    its stale value is kept around otherwise.
    """

    def __init__(self, values: Optional[list[float]] = None):
        self.s: list[float] = [float(v) for v in values] if values else []
        self.register: float = 0.0
        self.filled_register: bool = False

    @classmethod
    def from_string(cls, text: str) -> "Stack":
        """Build a stack from initial-stack syntax, e.g. ``10 'olleh'``."""
        from stackinit import parse_stack
        return cls(parse_stack(text))

    def __len__(self) -> int:
        return len(self.s)

    def __repr__(self) -> str:
        return f"Stack({self.s!r})"

    def to_string(self) -> str:
        return repr(self.s)

    def _need(self, n: int, op: str):
        if len(self.s) < n:
            raise StackUnderflowError(
                f"{op}: need {n} value(s), stack holds {len(self.s)}")

    # -- Primitives --

    def push(self, r: float):
        self.s.append(float(r))

    def pop(self) -> float:
        self._need(1, "pop")
        return self.s.pop()

    def register_toggle(self):
        """``&``: stash the top value, or put the stashed one back."""
        if self.filled_register:
            self.s.append(self.register)
            self.filled_register = False
        else:
            self.register = self.pop()
            self.filled_register = True

    def extend(self):
        """``:`` duplicate the top value."""
        self._need(1, "duplicate")
        self.s.append(self.s[-1])

    def reverse(self):
        """``r``"""
        self.s.reverse()

    def swap_two(self):
        """``$``"""
        self._need(2, "swap")
        self.s[-1], self.s[-2] = self.s[-2], self.s[-1]

    def swap_three(self):
        """``@``: [1,2,3,4] becomes [1,4,2,3]."""
        self._need(3, "rotate")
        self.s[-3], self.s[-2], self.s[-1] = self.s[-1], self.s[-3], self.s[-2]

    def shift_right(self):
        """``}``"""
        self.s.insert(0, self.pop())

    def shift_left(self):
        """``{``"""
        self._need(1, "shift left")
        self.s.append(self.s.pop(0))

    def take(self, count: int) -> list[float]:
        """Remove the top *count* values, oldest first."""
        self._need(count, "take")
        if count == 0:
            return []
        vals = self.s[-count:]
        del self.s[-count:]
        return vals

    def get_bytes(self, count: int) -> bytes:
        """Remove *count* values and return them as bytes, oldest first."""
        return bytes(to_byte(v) for v in self.take(count))


# ---------------------------------------------------------------------------
#  StackMachine
# ---------------------------------------------------------------------------

class StackMachine:
    """The ordered list of stacks plus the active-stack pointer *p*.

    ``compatibility_mode`` reverses stacks on split and merge, matching the
    old fishlanguage.com interpreter.
    """

    def __init__(self, stack: Optional[Stack] = None,
                 compatibility_mode: bool = False):
        self.stacks: list[Stack] = [stack if stack is not None else Stack()]
        self.p: int = 0
        self.compatibility_mode = compatibility_mode

    @property
    def active(self) -> Stack:
        return self.stacks[self.p]

    def __len__(self) -> int:
        return len(self.stacks)

    # -- Active-stack shortcuts --

    def push(self, r: float):
        self.active.push(r)

    def pop(self) -> float:
        return self.active.pop()

    def length(self):
        """``l``"""
        self.push(len(self.active))

    # -- Split / merge --

    def new_stack(self, n: int):
        """``[``: move the top *n* values into a new stack after the active one."""
        vals = self.active.take(n)
        self.p += 1
        self.stacks.insert(self.p, Stack(vals))
        if self.compatibility_mode:
            self.active.reverse()

    def close_stack(self):
        """``]``: append the active stack onto the one below and drop it."""
        if self.p == 0:
            raise StackUnderflowError("merge: no stack below the active one")
        if self.compatibility_mode:
            self.active.reverse()
        old = self.stacks.pop(self.p)
        self.p -= 1
        self.active.s.extend(old.s)

    # -- Call frames --

    def call(self, x: int, y: int) -> tuple[int, int]:
        """``C``: park a frame holding (x, y) under the active stack.

        The caller's stack stays active; the jump target is popped from it
        (y first, then x) and returned.
        """
        self.stacks.insert(self.p, Stack([x, y]))
        self.p += 1
        ty = to_index(self.pop())
        tx = to_index(self.pop())
        return tx, ty

    def ret(self) -> tuple[int, int]:
        """``R``: pop the frame under the active stack and return its (x, y)."""
        if self.p == 0:
            raise StackUnderflowError("return: no call frame")
        self.p -= 1
        y = to_index(self.pop())
        x = to_index(self.pop())
        del self.stacks[self.p]
        return x, y

    # -- Pointer shift --

    def shift_pointer(self, delta: int):
        """``I`` / ``D``"""
        p = self.p + delta
        if not 0 <= p < len(self.stacks):
            raise StackUnderflowError(
                f"stack pointer {p} outside 0..{len(self.stacks) - 1}")
        self.p = p
