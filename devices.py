"""
Starfish I/O Devices
====================
The two things the ``i`` and ``F`` instructions talk to.

  InputQueue    byte queue behind ``i``.  A background reader thread (or
                the host, via inject_input) feeds it; the interpreter only
                ever polls it, so a tick never blocks on input.
  FileRedirect  the ``F`` two-phase toggle.  The first use opens a file
                and redirects ``i`` to it; the second use overwrites that
                file and returns ``i`` to the input queue.
"""

from __future__ import annotations
import threading
from collections import deque
from typing import BinaryIO, Optional


# ---------------------------------------------------------------------------
#  InputQueue: stdin side of ``i``
# ---------------------------------------------------------------------------

class InputQueue:
    """Non-blocking byte source fed from a stream or by the host."""

    def __init__(self):
        self.rx_buffer: deque[int] = deque()
        self._reader: threading.Thread | None = None

    def inject_input(self, data: bytes | str):
        """Push bytes into the queue (host keyboard, tests, ...)."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        for b in data:
            self.rx_buffer.append(b & 0xFF)

    def poll(self) -> Optional[int]:
        """Next byte, or None if nothing is waiting."""
        if self.rx_buffer:
            return self.rx_buffer.popleft()
        return None

    @property
    def has_rx_data(self) -> bool:
        return len(self.rx_buffer) > 0

    def attach(self, stream: BinaryIO):
        """Start a daemon thread copying *stream* into the queue, byte by byte."""
        if self._reader is not None:
            raise RuntimeError("input queue already has a reader")
        self._reader = threading.Thread(target=self._pump, args=(stream,),
                                        daemon=True, name="starfish-stdin")
        self._reader.start()

    def _pump(self, stream: BinaryIO):
        read = getattr(stream, "read1", stream.read)
        try:
            while True:
                chunk = read(1)
                if not chunk:
                    break
                self.inject_input(chunk)
        except (OSError, ValueError):
            # stream closed under us; stop reading
            pass


# ---------------------------------------------------------------------------
#  FileRedirect: ``F``
# ---------------------------------------------------------------------------

class FileRedirect:
    """At most one open file; while open, ``i`` reads from it.

    Errors are raised as OSError / UnicodeDecodeError; the interpreter
    decides which of them are fatal.
    """

    def __init__(self):
        self.file: Optional[BinaryIO] = None
        self.file_path: str = ""

    @property
    def is_open(self) -> bool:
        return self.file is not None

    def toggle(self, data: bytes):
        """Phase A when nothing is open, phase B otherwise."""
        if self.file is None:
            self.open(data.decode("utf-8"))
        else:
            self.write_back(data)

    def open(self, path: str):
        """Phase A: open *path* for reading, creating it empty if needed."""
        try:
            f = open(path, "rb")
        except OSError:
            open(path, "wb").close()
            f = open(path, "rb")
        self.file = f
        self.file_path = path

    def write_back(self, data: bytes):
        """Phase B: drop the read handle, then overwrite the file with *data*.

        Only creating the file can fail; write errors are dropped.
        """
        self.close()
        # unbuffered, so a failed write surfaces here and not on close()
        with open(self.file_path, "wb", buffering=0) as f:
            view = memoryview(data)
            try:
                while view:
                    view = view[f.write(view):]
            except OSError:
                pass

    def read_byte(self) -> Optional[int]:
        """Next byte from the open file, or None at end-of-file."""
        if self.file is None:
            return None
        try:
            b = self.file.read(1)
        except OSError:
            return None
        return b[0] if b else None

    def close(self):
        if self.file is not None:
            self.file.close()
            self.file = None
