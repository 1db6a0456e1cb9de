#!/usr/bin/env python3
"""
Starfish Command-Line Host
==========================
Runs a *><> script: loads the codebox, wires stdin to the ``i``
instruction through a background reader, and drives the tick loop.

Provides:
  - Initial stack (--stack "10 'olleh'")
  - Per-tick tracing of the stack and the codebox
  - Extra per-tick delay, and honouring ``S`` sleep requests
  - Compatibility mode for the old fishlanguage.com stack ordering
  - Optional pygame window mirroring the codebox

Usage:
  python cli.py SCRIPT [--stack TEXT] [--output-stack] [--output-codebox]
                       [--delay MS] [--compat] [--display] [--scale N]
"""

from __future__ import annotations
import argparse
import sys
import time
from typing import Optional, TextIO

from starfish import CodeBox, StarfishError, EmptyCodeBoxError, CRASH_MESSAGE
from stackinit import StackSyntaxError
from devices import InputQueue
from display import render_codebox

# Longest single sleep handed to time.sleep (fits a 32-bit time_t); ``S``
# with a huge or infinite count saturates here.
MAX_SLEEP_S = float((1 << 31) - 1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="starfish",
        description="*><> (Starfish) interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  starfish hello.fish\n"
               "  starfish rev.fish --stack \"10 'olleh'\"\n"
               "  starfish clock.fish --output-codebox --delay 50\n"
    )
    parser.add_argument("path", help="Path to *><> script")
    parser.add_argument("-s", "--stack", type=str, default=None,
                        help="Initial stack (example: --stack \"10 'olleh'\")")
    parser.add_argument("-S", "--output-stack", action="store_true",
                        help="Output stack each tick")
    parser.add_argument("-c", "--output-codebox", action="store_true",
                        help="Output codebox each tick")
    parser.add_argument("-d", "--delay", type=int, default=0, metavar="MS",
                        help="Delay between each tick in milliseconds (default: 0)")
    parser.add_argument("--compat", action="store_true",
                        help="Reverse stacks on [ and ] like the old "
                             "fishlanguage.com interpreter")
    parser.add_argument("--display", action="store_true",
                        help="Open a pygame window showing the codebox")
    parser.add_argument("--scale", type=int, default=2, metavar="N",
                        help="Scale factor for the display window (default: 2)")
    return parser


def swim_loop(codebox: CodeBox, out: TextIO, *,
              output_stack: bool = False, output_codebox: bool = False,
              delay_ms: int = 0, display=None,
              sleep=time.sleep) -> int:
    """Tick *codebox* until it halts.  Returns the process exit status.

    Program output goes to *out*.  A crash prints the fixed message on a
    fresh line and returns 1.
    """
    at_line_start = True
    while True:
        if output_codebox:
            out.write(render_codebox(codebox))
        if output_stack:
            out.write(f"Stack: {codebox.string_stack()}\n")

        try:
            output, end, sleep_ms = codebox.swim()
        except StarfishError:
            if not at_line_start:
                out.write("\n")
            out.write(CRASH_MESSAGE + "\n")
            out.flush()
            return 1

        if output:
            out.write(output)
            at_line_start = output.endswith("\n")
        if display is not None:
            display.update(codebox)
        if end:
            out.flush()
            return 0

        if sleep_ms > 0:
            out.flush()
            sleep(min(sleep_ms / 1000.0, MAX_SLEEP_S))
        if delay_ms > 0:
            out.flush()
            sleep(min(delay_ms / 1000.0, MAX_SLEEP_S))


def load_codebox(args: argparse.Namespace,
                 stdin: Optional[InputQueue] = None) -> CodeBox:
    """Build the CodeBox described by parsed CLI arguments."""
    with open(args.path, "rb") as f:
        source = f.read()
    return CodeBox(source, args.stack, args.compat, stdin=stdin)


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    stdin = InputQueue()
    try:
        codebox = load_codebox(args, stdin)
    except OSError as e:
        print(f"Cannot read script: {e}", file=sys.stderr)
        return 1
    except StackSyntaxError as e:
        print(e, file=sys.stderr)
        return 1
    except EmptyCodeBoxError as e:
        print(f"{args.path}: {e}", file=sys.stderr)
        return 1

    stdin.attach(sys.stdin.buffer)

    display = None
    if args.display:
        try:
            from display import CodeboxDisplay
            import pygame  # noqa: F401
            display = CodeboxDisplay(scale=args.scale)
            display.update(codebox)
            display.start()
            print(f"[display] Codebox window opened (scale={args.scale}x)",
                  file=sys.stderr)
        except ImportError as e:
            print(f"[display] pygame not available: {e}", file=sys.stderr)
            print("[display] Install with: pip install pygame", file=sys.stderr)

    try:
        return swim_loop(codebox, sys.stdout,
                         output_stack=args.output_stack,
                         output_codebox=args.output_codebox,
                         delay_ms=args.delay, display=display)
    except KeyboardInterrupt:
        return 130
    finally:
        codebox.close()
        if display is not None:
            display.stop()


if __name__ == "__main__":
    sys.exit(main())
