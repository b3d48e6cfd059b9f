"""
Unit tests for system_utils module.

Tests file discovery, output path computation and the async filesystem
helpers the encoders await on.
"""

import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from ffbatch.core.modules.system.system_utils import (
    compute_output_paths,
    copy_file,
    ensure_directory,
    find_command,
    get_files_recursive,
    remove_files,
)


class TestFileDiscovery(unittest.TestCase):
    """Test recursive expansion of input paths."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        (self.test_dir / "season 1").mkdir()
        (self.test_dir / "season 1" / "extras").mkdir()
        for name in ("a.mkv", "season 1/b.mkv", "season 1/extras/c.mp4"):
            (self.test_dir / name).write_bytes(b"x")

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_directory_is_walked_recursively(self):
        files = get_files_recursive(self.test_dir)
        self.assertEqual(
            sorted(p.relative_to(self.test_dir).as_posix() for p in files),
            ["a.mkv", "season 1/b.mkv", "season 1/extras/c.mp4"],
        )

    def test_file_yields_itself(self):
        target = self.test_dir / "a.mkv"
        self.assertEqual(get_files_recursive(target), [target])

    def test_nonexistent_path_yields_nothing(self):
        self.assertEqual(get_files_recursive(self.test_dir / "missing"), [])

    def test_accepts_strings(self):
        self.assertEqual(len(get_files_recursive(str(self.test_dir))), 3)


class TestOutputPaths(unittest.TestCase):
    """Test <input dir>/<subdirectory>/<stem>.<extension> computation."""

    def test_relative_subdirectory(self):
        info = compute_output_paths("/videos/show/ep01.avi", "encoded", "mkv")
        self.assertEqual(info.containing_directory, Path("/videos/show/encoded"))
        self.assertEqual(info.file_path, Path("/videos/show/encoded/ep01.mkv"))

    def test_absolute_subdirectory_used_as_is(self):
        info = compute_output_paths("/videos/show/ep01.avi", "/srv/out", "mp4")
        self.assertEqual(info.file_path, Path("/srv/out/ep01.mp4"))

    def test_leading_dot_in_extension(self):
        info = compute_output_paths("/videos/ep01.avi", "out", ".mkv")
        self.assertEqual(info.file_path.name, "ep01.mkv")


class TestAsyncFilesystemHelpers(unittest.IsolatedAsyncioTestCase):
    """Test the to_thread wrappers and temporary file cleanup."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    async def test_ensure_directory_creates_parents(self):
        target = self.test_dir / "a" / "b" / "c"
        await ensure_directory(target)
        self.assertTrue(target.is_dir())
        # already existing is fine
        await ensure_directory(target)

    async def test_copy_file_replaces_destination(self):
        source = self.test_dir / "source.mkv"
        destination = self.test_dir / "destination.mkv"
        source.write_text("new")
        destination.write_text("old")

        await copy_file(source, destination)

        self.assertEqual(destination.read_text(), "new")

    async def test_copy_missing_source_raises(self):
        with self.assertRaises(OSError):
            await copy_file(self.test_dir / "missing.mkv", self.test_dir / "out.mkv")

    def test_remove_files_counts_removed(self):
        present = self.test_dir / "trial.mkv"
        present.write_text("x")

        removed = remove_files([present, self.test_dir / "already-gone.mkv"])

        self.assertEqual(removed, 1)
        self.assertFalse(present.exists())


class TestFindCommand(unittest.TestCase):

    @patch("ffbatch.core.modules.system.system_utils.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_found(self, mock_which):
        self.assertEqual(find_command("ffmpeg"), "/usr/bin/ffmpeg")
        mock_which.assert_called_once_with("ffmpeg")

    @patch("ffbatch.core.modules.system.system_utils.shutil.which", return_value=None)
    def test_missing(self, mock_which):
        self.assertIsNone(find_command("ffprobe"))


if __name__ == '__main__':
    unittest.main()
