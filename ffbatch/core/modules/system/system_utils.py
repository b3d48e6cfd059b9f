"""
System utilities for ffbatch.

This module provides system-level utilities including:
- Subprocess execution (blocking and asyncio based)
- External tool discovery
- File discovery and output path computation
- Async wrappers for the filesystem operations the encoders await on
"""

import asyncio
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from ....utils.logging import get_logger

logger = get_logger("system_utils")

PathLike = Union[str, "os.PathLike[str]"]


def file_exists(path: PathLike) -> bool:
    """Thin existence wrapper to provide a stable patch point for tests.

    Returns False on any OSError instead of propagating transient FS issues.
    """
    try:
        return Path(path).exists()
    except OSError:
        return False


def run_command(cmd: List[str], timeout: int = 30, capture_output: bool = True,
                text: bool = True, check: bool = False) -> subprocess.CompletedProcess:
    """
    Standardized subprocess command runner with consistent error handling.

    Args:
        cmd: Command as list of strings
        timeout: Timeout in seconds (default: 30)
        capture_output: Whether to capture stdout/stderr (default: True)
        text: Whether to use text mode (default: True)
        check: Whether to raise exception on non-zero exit (default: False)

    Returns:
        CompletedProcess object
    """
    logger.cmd(" ".join(shlex.quote(c) for c in cmd))
    try:
        return subprocess.run(
            cmd,
            capture_output=capture_output,
            text=text,
            timeout=timeout,
            check=check
        )
    except subprocess.TimeoutExpired:
        logger.error(f"Command timed out after {timeout}s: {' '.join(cmd[:3])}...")
        raise
    except subprocess.CalledProcessError as e:
        logger.debug(f"Command failed: {' '.join(cmd[:3])}... (exit code: {e.returncode})")
        raise


async def spawn_shell(command: str) -> asyncio.subprocess.Process:
    """Spawn a shell command with stderr merged into stdout.

    Stable patch point for tests that substitute a fake process.
    """
    logger.cmd(command)
    return await asyncio.create_subprocess_shell(
        command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )


def quote_path(path: PathLike) -> str:
    return shlex.quote(str(path))


def find_command(command: str) -> Optional[str]:
    """Find the first executable on PATH for ``command``, or None if missing."""
    return shutil.which(command)


def get_files_recursive(entry: PathLike) -> List[Path]:
    """
    Expand a path into the list of files below it.

    A file yields itself, a directory is walked recursively, and a path that
    does not exist yields an empty list. Relative inputs produce relative paths.
    """
    path = Path(entry)
    try:
        if path.is_file():
            return [path]
        if not path.is_dir():
            return []
    except OSError:
        return []

    files: List[Path] = []
    for child in sorted(path.iterdir()):
        files.extend(get_files_recursive(child))
    return files


@dataclass
class OutputPathInfo:
    """Where an encoder should write its output."""
    containing_directory: Path
    file_path: Path


def compute_output_paths(input_file: PathLike, output_subdirectory: PathLike, extension: str) -> OutputPathInfo:
    """
    Compute ``<input dir>/<output_subdirectory>/<stem>.<extension>``.

    An absolute ``output_subdirectory`` is used as is. ``extension`` is given
    without the leading dot.
    """
    input_path = Path(input_file)
    subdirectory = Path(output_subdirectory)
    directory = subdirectory if subdirectory.is_absolute() else input_path.parent / subdirectory
    return OutputPathInfo(
        containing_directory=directory,
        file_path=directory / f"{input_path.stem}.{extension.lstrip('.')}",
    )


async def ensure_directory(path: PathLike) -> None:
    """Create ``path`` and its parents if they don't exist."""
    await asyncio.to_thread(os.makedirs, path, exist_ok=True)


async def copy_file(source: PathLike, destination: PathLike) -> None:
    """Copy ``source`` over ``destination``, replacing any existing file."""
    await asyncio.to_thread(shutil.copyfile, source, destination)


def remove_files(paths: List[PathLike]) -> int:
    """Best-effort removal of temporary files. Returns how many were removed."""
    removed = 0
    for path in paths:
        try:
            if file_exists(path):
                os.remove(path)
                removed += 1
        except OSError as e:
            logger.warn(f"Failed to remove {path}: {e}")
    if removed:
        logger.cleanup(f"removed {removed} temporary file(s)")
    return removed
