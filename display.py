"""
Starfish Codebox Display
========================
Two ways of watching the fish swim:

  render_codebox()  text dump of the codebox, the fish's cell marked as
                    ``*c*``.  Used by ``cli.py --output-codebox``.
  CodeboxDisplay    pygame window mirroring the codebox and the active
                    stack.  Runs in a background thread so it doesn't
                    block the tick loop; the host pushes state into it
                    with update() after each tick.

Usage (programmatic):
    from display import CodeboxDisplay
    disp = CodeboxDisplay()
    disp.start()            # launches background thread
    disp.update(codebox)    # after every swim()
    disp.stop()             # clean shutdown

Usage (CLI):
    python cli.py program.fish --display
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from starfish import CodeBox

CURSOR_HOME = "\x1b[0;H"

CELL_PAD = 4             # pixels around each glyph
STATUS_HEIGHT = 24       # pixels for the stack line
BG = (32, 32, 40)
FG = (200, 200, 210)
FISH_BG = (80, 140, 255)
DEEP_SEA_BG = (20, 60, 140)


def render_codebox(codebox: "CodeBox", clear: bool = False) -> str:
    """Text picture of the codebox, one row per line."""
    fx, fy = codebox.position
    lines = []
    for y, row in enumerate(codebox.code_box()):
        cells = []
        for x, b in enumerate(row):
            if x == fx and y == fy:
                cells.append(f"*{chr(b)}*")
            else:
                cells.append(f" {chr(b)} ")
        lines.append("".join(cells))
    text = "\n".join(lines) + "\n"
    return CURSOR_HOME + text if clear else text


def _glyph(b: int) -> str:
    return chr(b) if 0x20 <= b < 0x7F else " "


class CodeboxDisplay:
    """Background-threaded pygame window showing a CodeBox."""

    def __init__(self, scale: int = 2, title: str = "*><>"):
        self.scale = max(1, scale)
        self.title = title
        self.fps = 30
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._started = threading.Event()
        self._lock = threading.Lock()

        # Latest state pushed by the host
        self.rows: list[bytes] = []
        self.position: tuple[int, int] = (0, 0)
        self.stack_text: str = "[]"
        self.deep_sea: bool = False

    # -- public API -------------------------------------------------------

    def update(self, codebox: "CodeBox"):
        """Copy the state the window draws from.  Cheap; call every tick."""
        with self._lock:
            self.rows = codebox.code_box()
            self.position = codebox.position
            self.stack_text = codebox.string_stack()
            self.deep_sea = codebox.deep_sea

    def snapshot(self) -> tuple[list[bytes], tuple[int, int], str, bool]:
        with self._lock:
            return list(self.rows), self.position, self.stack_text, self.deep_sea

    def start(self):
        """Start the display thread.  Returns once the window is open."""
        self._stop_event.clear()
        self._started.clear()
        self._thread = threading.Thread(target=self._run, daemon=True,
                                        name="starfish-display")
        self._thread.start()
        self._started.wait(timeout=5.0)

    def stop(self):
        """Signal the display thread to shut down and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=3.0)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -- internals --------------------------------------------------------

    def _run(self):
        """Main display loop (runs in background thread)."""
        import pygame

        pygame.init()
        pygame.display.set_caption(self.title)
        font = pygame.font.SysFont("monospace", 7 * self.scale)
        test = font.render("M", False, FG)
        cell_w = test.get_width() + CELL_PAD
        cell_h = font.get_linesize() + CELL_PAD

        screen = pygame.display.set_mode((320 * self.scale, 240 * self.scale),
                                         pygame.RESIZABLE)
        clock = pygame.time.Clock()
        self._started.set()

        try:
            while not self._stop_event.is_set():
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        self._stop_event.set()
                        return
                    elif event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE:
                        self._stop_event.set()
                        return

                rows, (fx, fy), stack_text, deep_sea = self.snapshot()
                screen.fill(BG)
                self._draw_grid(pygame, screen, font, rows, fx, fy,
                                cell_w, cell_h, deep_sea)
                label = font.render(f"Stack: {stack_text}", True, FG)
                screen.blit(label, (CELL_PAD,
                                    screen.get_height() - STATUS_HEIGHT))
                pygame.display.flip()
                clock.tick(self.fps)

        except Exception as e:
            print(f"\n[display] error: {e}")
        finally:
            pygame.quit()

    def _draw_grid(self, pygame, screen, font, rows, fx, fy,
                   cell_w, cell_h, deep_sea):
        for y, row in enumerate(rows):
            for x, b in enumerate(row):
                px, py = x * cell_w, y * cell_h
                if x == fx and y == fy:
                    pygame.draw.rect(screen,
                                     DEEP_SEA_BG if deep_sea else FISH_BG,
                                     (px, py, cell_w, cell_h))
                text = font.render(_glyph(b), True, FG)
                screen.blit(text, (px + CELL_PAD // 2, py + CELL_PAD // 2))
