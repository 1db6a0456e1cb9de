"""
Starfish Interpreter Core
=========================
A tick-step interpreter for *><> (Starfish), the two-dimensional stack
language descended from ><> (https://esolangs.org/wiki/Starfish).

The program is a rectangular grid of bytes (the codebox).  The instruction
pointer (the fish) swims across it in one of four directions, wrapping
around the edges.  Every tick the byte under the fish is executed and the
fish moves one cell.

Nothing here touches the terminal or exits the process: swim() hands back
the text produced, whether the program halted and how long the host should
sleep, and run-time faults surface as StarfishError exceptions.

Usage:
  from starfish import CodeBox
  cb = CodeBox('"olleh"ooooo;')
  while True:
      output, halted, sleep_ms = cb.swim()
      ...
"""

from __future__ import annotations
import math
import random
import time
from functools import partial
from typing import Callable, NamedTuple, Optional, Sequence, Union

from stacks import (Stack, StackMachine, StarfishError, StackUnderflowError,
                    to_index, to_byte)
from stackinit import parse_stack
from devices import InputQueue, FileRedirect

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

DIR_RIGHT = 0
DIR_DOWN  = 1
DIR_LEFT  = 2
DIR_UP    = 3

DIR_NAMES = ("right", "down", "left", "up")

CRASH_MESSAGE = "something smells fishy..."

SLEEP_UNIT_MS = 100.0   # ``S`` sleeps in tenths of a second

MAX_CODEPOINT = 0x10FFFF
U32_MAX = (1 << 32) - 1
I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1

# Reflection tables: heading -> new heading.  Missing keys leave the
# heading alone (e.g. '|' does nothing to a vertical fish).
MIRRORS = {
    ord("|"):  {DIR_RIGHT: DIR_LEFT, DIR_LEFT: DIR_RIGHT},
    ord("_"):  {DIR_DOWN: DIR_UP, DIR_UP: DIR_DOWN},
    ord("#"):  {DIR_RIGHT: DIR_LEFT, DIR_DOWN: DIR_UP,
                DIR_LEFT: DIR_RIGHT, DIR_UP: DIR_DOWN},
    ord("/"):  {DIR_RIGHT: DIR_UP, DIR_DOWN: DIR_LEFT,
                DIR_LEFT: DIR_DOWN, DIR_UP: DIR_RIGHT},
    ord("\\"): {DIR_RIGHT: DIR_DOWN, DIR_DOWN: DIR_RIGHT,
                DIR_LEFT: DIR_UP, DIR_UP: DIR_LEFT},
}

HEADINGS = {
    ord(">"): DIR_RIGHT,
    ord("v"): DIR_DOWN,
    ord("<"): DIR_LEFT,
    ord("^"): DIR_UP,
}

QUOTE_SINGLE = ord("'")
QUOTE_DOUBLE = ord('"')


# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class UnknownInstructionError(StarfishError):
    def __init__(self, op: int, x: int, y: int):
        self.op = op
        self.x = x
        self.y = y
        super().__init__(f"Unknown instruction {op:#04x} ({chr(op)!r}) at ({x}, {y})")

class CodeBoxBoundsError(StarfishError):
    """A cell outside the codebox was read or written."""
    pass

class InvalidCharacterError(StarfishError):
    """``o`` popped a value that is not a Unicode scalar."""
    pass

class FileRedirectError(StarfishError):
    """``F`` could not decode its path or open/create the file."""
    pass

class HaltError(StarfishError):
    """swim() called on a codebox that has already stopped."""
    pass

class EmptyCodeBoxError(ValueError):
    pass


# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def fdiv(a: float, b: float) -> float:
    """IEEE division: x/0 is ±inf, 0/0 is NaN."""
    try:
        return a / b
    except ZeroDivisionError:
        if a != a or a == 0:
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)

def rem_euclid(a: float, b: float) -> float:
    """Euclidean remainder: always in [0, |b|)."""
    if b == 0 or a != a or b != b or math.isinf(a):
        return math.nan
    r = math.fmod(a, b)
    if r < 0:
        r += abs(b)
    return r

def to_i64(v: float) -> int:
    """Truncate toward zero, saturating to the signed 64-bit range."""
    if v != v:
        return 0
    if v >= I64_MAX:
        return I64_MAX
    if v <= I64_MIN:
        return I64_MIN
    return int(v)

def split_source(source: str | bytes) -> list[bytes]:
    """Split program text into rows of bytes.

    A trailing newline does not start a new row; a '\\r' before a newline
    is dropped.
    """
    if isinstance(source, str):
        source = source.encode("utf-8")
    rows = source.split(b"\n")
    if rows and rows[-1] == b"":
        rows.pop()
    return [row[:-1] if row.endswith(b"\r") else row for row in rows]


class Tick(NamedTuple):
    """What one swim() produced."""
    output: Optional[str]
    halted: bool
    sleep_ms: float

_IDLE = Tick(None, False, 0.0)
_HALT = Tick(None, True, 0.0)


# ---------------------------------------------------------------------------
#  Grid
# ---------------------------------------------------------------------------

class Grid:
    """The codebox: a fixed-size, mutable rectangle of bytes."""

    def __init__(self, source: str | bytes):
        rows = split_source(source)
        self.height = len(rows)
        self.width = max((len(r) for r in rows), default=0)
        if self.width == 0 or self.height == 0:
            raise EmptyCodeBoxError("codebox is empty")
        self.cells: list[bytearray] = [
            bytearray(r.ljust(self.width, b" ")) for r in rows
        ]

    def _check(self, x: int, y: int):
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise CodeBoxBoundsError(
                f"({x}, {y}) outside {self.width}x{self.height} codebox")

    def read(self, x: int, y: int) -> int:
        self._check(x, y)
        return self.cells[y][x]

    def write(self, x: int, y: int, val: int):
        self._check(x, y)
        self.cells[y][x] = val & 0xFF

    def snapshot(self) -> list[bytes]:
        return [bytes(row) for row in self.cells]


# ---------------------------------------------------------------------------
#  Fish (the cursor)
# ---------------------------------------------------------------------------

class Fish:
    """Position, heading and the mode flags that travel with them."""

    def __init__(self):
        self.x: int = 0
        self.y: int = 0
        self.dir: int = DIR_RIGHT
        self.was_left: bool = False
        self.escaped_hook: bool = False
        self.string_mode: int = 0    # 0, or the opening quote byte
        self.deep_sea: bool = False

    @property
    def vertical(self) -> bool:
        return self.dir in (DIR_DOWN, DIR_UP)

    def turn(self, new_dir: int):
        """Set the heading; horizontal headings also update was_left."""
        self.dir = new_dir
        if new_dir == DIR_LEFT:
            self.was_left = True
        elif new_dir == DIR_RIGHT:
            self.was_left = False

    def hook(self):
        """The ` instruction."""
        if self.vertical:
            self.dir = DIR_LEFT if self.was_left else DIR_RIGHT
        elif self.escaped_hook:
            self.dir = DIR_UP
            self.escaped_hook = False
        else:
            self.dir = DIR_DOWN
            self.escaped_hook = True

    def shift(self, width: int, height: int):
        """Move one cell along the heading, wrapping at the edges."""
        if self.dir == DIR_RIGHT:
            self.x += 1
            if self.x >= width:
                self.x = 0
        elif self.dir == DIR_DOWN:
            self.y += 1
            if self.y >= height:
                self.y = 0
        elif self.dir == DIR_LEFT:
            if self.x > 0:
                self.x -= 1
            else:
                self.x = width - 1
        else:
            if self.y > 0:
                self.y -= 1
            else:
                self.y = height - 1


# ---------------------------------------------------------------------------
#  CodeBox
# ---------------------------------------------------------------------------

StackInit = Union[None, str, Stack, Sequence[float]]


class CodeBox:
    """A *><> program complete with its stacks, run one tick at a time.

    *stack* is the initial stack: a Stack, a sequence of numbers, or text
    in --stack syntax (parsed immediately; StackSyntaxError on bad input).
    *compatibility_mode* reverses split/merge results the way the old
    fishlanguage.com interpreter did.
    """

    def __init__(self, script: str | bytes, stack: StackInit = None,
                 compatibility_mode: bool = False, *,
                 stdin: Optional[InputQueue] = None,
                 rng: Optional[random.Random] = None):
        if isinstance(stack, str):
            stack = Stack(parse_stack(stack))
        elif stack is not None and not isinstance(stack, Stack):
            stack = Stack(list(stack))

        self.grid = Grid(script)
        self.fish = Fish()
        self.machine = StackMachine(stack, compatibility_mode)
        self.stdin = stdin if stdin is not None else InputQueue()
        self.files = FileRedirect()
        self.rng = rng if rng is not None else random.Random()

        self.halted: bool = False
        self.tick_count: int = 0

        self._nav: dict[int, Callable[[], None]] = {}
        self._ops: dict[int, Callable[[], Optional[Tick]]] = {}
        self._build_dispatch()

    # -- Dispatch table --

    def _build_dispatch(self):
        fish = self.fish
        nav = self._nav
        nav[ord(" ")] = lambda: None
        for ch, d in HEADINGS.items():
            nav[ch] = partial(fish.turn, d)
        for ch, table in MIRRORS.items():
            nav[ch] = partial(self._mirror, table)
        nav[ord("x")] = self._random_dir
        nav[ord("O")] = self._leave_deep_sea
        nav[ord("`")] = fish.hook

        m = self.machine
        ops = self._ops
        for d in range(10):
            ops[ord("0") + d] = partial(m.push, float(d))
        for d in range(6):
            ops[ord("a") + d] = partial(m.push, float(10 + d))

        ops[ord(";")] = lambda: _HALT
        ops[QUOTE_SINGLE] = partial(self._quote, QUOTE_SINGLE)
        ops[QUOTE_DOUBLE] = partial(self._quote, QUOTE_DOUBLE)

        # arithmetic and comparison
        ops[ord("+")] = partial(self._binop, lambda b, a: b + a)
        ops[ord("-")] = partial(self._binop, lambda b, a: b - a)
        ops[ord("*")] = partial(self._binop, lambda b, a: b * a)
        ops[ord(",")] = partial(self._binop, fdiv)
        ops[ord("%")] = partial(self._binop, rem_euclid)
        ops[ord("=")] = partial(self._binop, lambda b, a: float(b == a))
        ops[ord(")")] = partial(self._binop, lambda b, a: float(b > a))
        ops[ord("(")] = partial(self._binop, lambda b, a: float(b < a))

        # movement
        ops[ord("!")] = self._move
        ops[ord("?")] = self._skip_if_zero
        ops[ord(".")] = self._jump

        # stack
        ops[ord(":")] = lambda: m.active.extend()
        ops[ord("~")] = m.pop
        ops[ord("$")] = lambda: m.active.swap_two()
        ops[ord("@")] = lambda: m.active.swap_three()
        ops[ord("}")] = lambda: m.active.shift_right()
        ops[ord("{")] = lambda: m.active.shift_left()
        ops[ord("r")] = lambda: m.active.reverse()
        ops[ord("&")] = lambda: m.active.register_toggle()
        ops[ord("l")] = m.length
        ops[ord("[")] = lambda: m.new_stack(to_index(m.pop()))
        ops[ord("]")] = m.close_stack
        ops[ord("I")] = partial(m.shift_pointer, 1)
        ops[ord("D")] = partial(m.shift_pointer, -1)
        ops[ord("C")] = self._call
        ops[ord("R")] = self._ret

        # self-modification
        ops[ord("g")] = self._get
        ops[ord("p")] = self._put

        # I/O
        ops[ord("o")] = self._out_char
        ops[ord("n")] = self._out_num
        ops[ord("i")] = self._input
        ops[ord("F")] = self._file

        # *><> extras
        ops[ord("h")] = lambda: m.push(float(time.localtime().tm_hour))
        ops[ord("m")] = lambda: m.push(float(time.localtime().tm_min))
        ops[ord("s")] = lambda: m.push(float(time.localtime().tm_sec))
        ops[ord("S")] = self._sleep
        ops[ord("u")] = self._enter_deep_sea

    # =====================================================================
    #  SWIM: one tick
    # =====================================================================

    def swim(self) -> Tick:
        """Execute the instruction under the fish, then move it.

        Returns Tick(output, halted, sleep_ms).  A StarfishError means the
        program crashed; the codebox is marked halted either way.
        """
        if self.halted:
            raise HaltError("the fish has stopped swimming")
        fish = self.fish
        try:
            r = self.grid.read(fish.x, fish.y)
            if fish.string_mode and r != fish.string_mode:
                self.machine.push(float(r))
                result = _IDLE
            else:
                result = self.exe(r)
        except StarfishError:
            self.halted = True
            raise
        fish.shift(self.grid.width, self.grid.height)
        self.tick_count += 1
        if result.halted:
            self.halted = True
        return result

    def exe(self, r: int) -> Tick:
        """Execute byte *r* as an instruction (no movement)."""
        nav = self._nav.get(r)
        if nav is not None:
            nav()
            return _IDLE
        if self.fish.deep_sea:
            return _IDLE
        op = self._ops.get(r)
        if op is None:
            raise UnknownInstructionError(r, self.fish.x, self.fish.y)
        result = op()
        return result if isinstance(result, Tick) else _IDLE

    def run(self, max_ticks: int = 1_000_000) -> str:
        """Swim until halt or max_ticks, ignoring sleeps.  Returns all output."""
        out: list[str] = []
        for _ in range(max_ticks):
            if self.halted:
                break
            tick = self.swim()
            if tick.output:
                out.append(tick.output)
        return "".join(out)

    # =====================================================================
    #  Instruction bodies
    # =====================================================================

    # -- Navigation (never suppressed by deep sea) --

    def _mirror(self, table: dict[int, int]):
        new_dir = table.get(self.fish.dir)
        if new_dir is not None:
            self.fish.turn(new_dir)

    def _random_dir(self):
        d = self.rng.randrange(4)
        self.fish.dir = d
        self.fish.was_left = d != DIR_RIGHT

    def _leave_deep_sea(self):
        self.fish.deep_sea = False

    def _enter_deep_sea(self):
        self.fish.deep_sea = True

    # -- Strings / arithmetic --

    def _quote(self, q: int):
        if self.fish.string_mode == 0:
            self.fish.string_mode = q
        elif self.fish.string_mode == q:
            self.fish.string_mode = 0

    def _binop(self, fn: Callable[[float, float], float]):
        a = self.machine.pop()
        b = self.machine.pop()
        self.machine.push(fn(b, a))

    # -- Movement --

    def _move(self):
        self.fish.shift(self.grid.width, self.grid.height)

    def _skip_if_zero(self):
        if self.machine.pop() == 0.0:
            self._move()

    def _jump(self):
        y = self.machine.pop()
        x = self.machine.pop()
        self.fish.x = to_index(x)
        self.fish.y = to_index(y)

    def _call(self):
        self.fish.x, self.fish.y = self.machine.call(self.fish.x, self.fish.y)

    def _ret(self):
        self.fish.x, self.fish.y = self.machine.ret()

    # -- Codebox access --

    def _get(self):
        y = to_index(self.machine.pop())
        x = to_index(self.machine.pop())
        self.machine.push(float(self.grid.read(x, y)))

    def _put(self):
        y = to_index(self.machine.pop())
        x = to_index(self.machine.pop())
        val = to_byte(self.machine.pop())
        self.grid.write(x, y, val)

    # -- I/O --

    def _out_char(self) -> Tick:
        v = self.machine.pop()
        cp = min(to_index(v), U32_MAX)
        if cp > MAX_CODEPOINT or 0xD800 <= cp <= 0xDFFF:
            raise InvalidCharacterError(f"{v!r} is not a Unicode scalar value")
        return Tick(chr(cp), False, 0.0)

    def _out_num(self) -> Tick:
        return Tick(str(to_i64(self.machine.pop())), False, 0.0)

    def _input(self):
        if self.files.is_open:
            b = self.files.read_byte()
        else:
            b = self.stdin.poll()
        self.machine.push(-1.0 if b is None else float(b))

    def _file(self):
        count = to_index(self.machine.pop())
        data = self.machine.active.get_bytes(count)
        try:
            self.files.toggle(data)
        except UnicodeDecodeError as e:
            raise FileRedirectError(f"file path is not UTF-8: {data!r}") from e
        except OSError as e:
            raise FileRedirectError(
                f"cannot redirect to {self.files.file_path or data!r}: {e}") from e

    def _sleep(self) -> Tick:
        return Tick(None, False, self.machine.pop() * SLEEP_UNIT_MS)

    # =====================================================================
    #  Host API
    # =====================================================================

    def push(self, r: float):
        self.machine.push(r)

    def pop(self) -> float:
        return self.machine.pop()

    def inject_input(self, data: bytes | str):
        """Feed bytes to ``i`` without a stdin reader."""
        self.stdin.inject_input(data)

    def close(self):
        """Release the redirected file, if any."""
        self.files.close()

    # -- Introspection --

    @property
    def size(self) -> tuple[int, int]:
        return self.grid.width, self.grid.height

    @property
    def width(self) -> int:
        return self.grid.width

    @property
    def height(self) -> int:
        return self.grid.height

    @property
    def position(self) -> tuple[int, int]:
        return self.fish.x, self.fish.y

    @property
    def direction(self) -> int:
        return self.fish.dir

    @property
    def deep_sea(self) -> bool:
        return self.fish.deep_sea

    @property
    def string_mode(self) -> int:
        return self.fish.string_mode

    def code_box(self) -> list[bytes]:
        """Copy of the current codebox rows."""
        return self.grid.snapshot()

    def stack_snapshot(self) -> list[float]:
        """Copy of the active stack, bottom first."""
        return list(self.machine.active.s)

    def string_stack(self) -> str:
        return self.machine.active.to_string()

    def dump_state(self) -> str:
        f = self.fish
        return (f"fish=({f.x},{f.y}) dir={DIR_NAMES[f.dir]} "
                f"stack#{self.machine.p}/{len(self.machine)}={self.string_stack()} "
                f"deep_sea={int(f.deep_sea)} ticks={self.tick_count}")


__all__ = [
    "CodeBox", "Grid", "Fish", "Tick", "Stack", "StackMachine",
    "StarfishError", "StackUnderflowError", "UnknownInstructionError",
    "CodeBoxBoundsError", "InvalidCharacterError", "FileRedirectError",
    "HaltError", "EmptyCodeBoxError", "CRASH_MESSAGE",
    "DIR_RIGHT", "DIR_DOWN", "DIR_LEFT", "DIR_UP",
]
