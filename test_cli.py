"""
Command-line host tests: the tick loop and main().
"""

import io
import os
import tempfile
import unittest
from contextlib import redirect_stdout, redirect_stderr
from unittest import mock

from starfish import CodeBox, CRASH_MESSAGE
from cli import build_parser, swim_loop, main, MAX_SLEEP_S


class TestParser(unittest.TestCase):
    def test_defaults(self):
        args = build_parser().parse_args(["prog.fish"])
        self.assertEqual(args.path, "prog.fish")
        self.assertIsNone(args.stack)
        self.assertFalse(args.output_stack)
        self.assertFalse(args.output_codebox)
        self.assertEqual(args.delay, 0)
        self.assertFalse(args.compat)

    def test_short_flags(self):
        args = build_parser().parse_args(
            ["p.fish", "-s", "1 2", "-S", "-c", "-d", "50"])
        self.assertEqual(args.stack, "1 2")
        self.assertTrue(args.output_stack)
        self.assertTrue(args.output_codebox)
        self.assertEqual(args.delay, 50)


class TestSwimLoop(unittest.TestCase):
    def test_output_and_exit_status(self):
        out = io.StringIO()
        self.assertEqual(swim_loop(CodeBox('"olleH"ooooo;'), out), 0)
        self.assertEqual(out.getvalue(), "Hello")

    def test_crash_message_on_fresh_line(self):
        out = io.StringIO()
        self.assertEqual(swim_loop(CodeBox('"a"o~'), out), 1)
        self.assertEqual(out.getvalue(), "a\n" + CRASH_MESSAGE + "\n")

    def test_crash_without_output(self):
        out = io.StringIO()
        self.assertEqual(swim_loop(CodeBox("Z"), out), 1)
        self.assertEqual(out.getvalue(), CRASH_MESSAGE + "\n")

    def test_sleep_request(self):
        slept = []
        swim_loop(CodeBox("5S;"), io.StringIO(), sleep=slept.append)
        self.assertEqual(slept, [0.5])

    def test_delay_every_tick(self):
        slept = []
        swim_loop(CodeBox("12;"), io.StringIO(), delay_ms=20,
                  sleep=slept.append)
        self.assertEqual(slept, [0.02, 0.02])

    def test_infinite_sleep_saturates(self):
        slept = []
        status = swim_loop(CodeBox("90,S;"), io.StringIO(), sleep=slept.append)
        self.assertEqual(status, 0)
        self.assertEqual(slept, [MAX_SLEEP_S])

    def test_nan_sleep_is_skipped(self):
        slept = []
        swim_loop(CodeBox("00,S;"), io.StringIO(), sleep=slept.append)
        self.assertEqual(slept, [])

    def test_output_stack(self):
        out = io.StringIO()
        swim_loop(CodeBox("1;"), out, output_stack=True)
        self.assertEqual(out.getvalue(), "Stack: []\nStack: [1.0]\n")

    def test_output_codebox(self):
        out = io.StringIO()
        swim_loop(CodeBox("1;"), out, output_codebox=True)
        self.assertEqual(out.getvalue(), "*1* ; \n 1 *;*\n")

    def test_display_receives_updates(self):
        seen = []

        class Recorder:
            def update(self, codebox):
                seen.append(codebox.position)

        swim_loop(CodeBox("12;"), io.StringIO(), display=Recorder())
        self.assertEqual(seen, [(1, 0), (2, 0), (0, 0)])


class TestMain(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.stdin = mock.patch("sys.stdin", io.TextIOWrapper(io.BytesIO(b"")))
        self.stdin.start()

    def tearDown(self):
        self.stdin.stop()
        self.tmp.cleanup()

    def _script(self, source) -> str:
        if isinstance(source, str):
            source = source.encode("utf-8")
        path = os.path.join(self.tmp.name, "prog.fish")
        with open(path, "wb") as f:
            f.write(source)
        return path

    def _main(self, argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            status = main(argv)
        return status, out.getvalue(), err.getvalue()

    def test_hello(self):
        status, out, _ = self._main([self._script('"olleH"ooooo;\n')])
        self.assertEqual((status, out), (0, "Hello"))

    def test_initial_stack(self):
        path = self._script("ooooo;")
        status, out, _ = self._main([path, "--stack", "'olleh'"])
        self.assertEqual((status, out), (0, "hello"))

    def test_crash(self):
        status, out, _ = self._main([self._script("~")])
        self.assertEqual(status, 1)
        self.assertEqual(out, CRASH_MESSAGE + "\n")

    def test_bad_stack(self):
        status, out, err = self._main([self._script(";"), "-s", "1 x"])
        self.assertEqual(status, 1)
        self.assertEqual(out, "")
        self.assertIn("column 2", err)

    def test_missing_script(self):
        missing = os.path.join(self.tmp.name, "nope.fish")
        status, _, err = self._main([missing])
        self.assertEqual(status, 1)
        self.assertIn("Cannot read script", err)

    def test_empty_script(self):
        status, _, err = self._main([self._script("")])
        self.assertEqual(status, 1)
        self.assertIn("empty", err)

    def test_non_utf8_script(self):
        # the 0xff cell is jumped over, so only raw bytes need loading
        status, out, err = self._main([self._script(b"!\xff;")])
        self.assertEqual((status, out, err), (0, "", ""))

    def test_non_utf8_instruction_crashes(self):
        status, out, _ = self._main([self._script(b"\xff")])
        self.assertEqual(status, 1)
        self.assertEqual(out, CRASH_MESSAGE + "\n")


if __name__ == "__main__":
    unittest.main()
