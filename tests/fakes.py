"""
Stand-ins for FFmpeg/FFprobe processes used across the test suite.

Encoders reach external tools only through ``spawn_shell`` and
``probe_media`` in ``ffbatch.core.modules.encoders.base``; tests patch those
two names with the helpers below.
"""

import asyncio
import shutil
import tempfile
import unittest
from pathlib import Path
from typing import Callable, List, Optional
from unittest.mock import patch

BASE_MODULE = "ffbatch.core.modules.encoders.base"


def probe_result(duration: str = "10.0") -> dict:
    return {"format": {"duration": duration, "format_name": "matroska,webm"}}


class FakeProcess:
    """Finished process: its whole output is available at once."""

    def __init__(self, output: str = "", returncode: int = 0):
        self.stdout = asyncio.StreamReader()
        if output:
            self.stdout.feed_data(output.encode("utf-8"))
        self.stdout.feed_eof()
        self.returncode = returncode

    async def wait(self) -> int:
        return self.returncode


class ControlledProcess:
    """Process that keeps running until the test calls ``finish()``."""

    def __init__(self, returncode: int = 0):
        self.stdout = asyncio.StreamReader()
        self.returncode = returncode
        self.finished = False

    def write(self, text: str):
        self.stdout.feed_data(text.encode("utf-8"))

    def finish(self, output: str = "", returncode: Optional[int] = None):
        if output:
            self.write(output)
        if returncode is not None:
            self.returncode = returncode
        self.finished = True
        self.stdout.feed_eof()

    async def wait(self) -> int:
        return self.returncode


class FakeShell:
    """Replacement for ``spawn_shell``; records commands and hands out processes."""

    def __init__(self, factory: Callable[[str], object]):
        self._factory = factory
        self.commands: List[str] = []
        self.processes: List[object] = []

    async def __call__(self, command: str):
        self.commands.append(command)
        process = self._factory(command)
        self.processes.append(process)
        return process

    @property
    def running(self) -> List[ControlledProcess]:
        return [p for p in self.processes if isinstance(p, ControlledProcess) and not p.finished]


def patch_probe(duration: str = "10.0"):
    return patch(f"{BASE_MODULE}.probe_media", return_value=probe_result(duration))


def patch_shell(shell: FakeShell):
    return patch(f"{BASE_MODULE}.spawn_shell", new=shell)


async def settle(rounds: int = 20):
    """Let pending tasks and to_thread calls make progress."""
    for _ in range(rounds):
        await asyncio.sleep(0.01)


class EncoderTestCase(unittest.IsolatedAsyncioTestCase):
    """Temporary input file, patched probe and an opt-in fake shell."""

    duration = "10.0"

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.input_file = self.test_dir / "input.mkv"
        self.input_file.write_bytes(b"\x00" * 2048)
        self.output_file = self.test_dir / "out" / "input.mkv"

        probe_patcher = patch_probe(self.duration)
        self.mock_probe = probe_patcher.start()
        self.addCleanup(probe_patcher.stop)

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def use_shell(self, factory: Callable[[str], object]) -> FakeShell:
        shell = FakeShell(factory)
        patcher = patch_shell(shell)
        patcher.start()
        self.addCleanup(patcher.stop)
        return shell

    def loop_task(self, coro) -> asyncio.Task:
        return asyncio.ensure_future(coro)
