"""
Media utilities for ffbatch.

This module provides media-specific utilities including:
- FFprobe operations for container metadata
- Parsing of FFmpeg progress output
- VMAF score extraction
- FFmpeg command construction for encoding and scoring
"""

import json
import re
import subprocess
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ....utils.logging import get_logger
from ..exceptions import ProbeError
from ..system.system_utils import quote_path, run_command

logger = get_logger("media_utils")

DEFAULT_VMAF_MODEL = "vmaf_v0.6.1"
DEFAULT_VMAF_THREADS = 30

_TIME_TOKEN = re.compile(r"time=(\S+)")
_VMAF_SCORE = re.compile(r"VMAF score: ([0-9.]+)")


def probe_media(ffprobe_path: str, file: Union[str, Path]) -> Optional[Dict[str, Any]]:
    """Run ffprobe on ``file`` and return its ``-show_format`` JSON document.

    Returns None when ffprobe can't be run or its output isn't JSON.
    """
    cmd = [ffprobe_path, "-v", "quiet", "-print_format", "json", "-show_format", str(file)]
    try:
        result = run_command(cmd, timeout=60)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"ffprobe failed for {file}: {e}")
        return None

    try:
        data = json.loads(result.stdout or "")
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def probe_duration(probe_data: Optional[Dict[str, Any]]) -> float:
    """Extract ``format.duration`` in seconds from probe data.

    Raises:
        ProbeError: if the field is missing or not a number.
    """
    duration = ((probe_data or {}).get("format") or {}).get("duration")
    if duration is None:
        raise ProbeError("Could not determine duration of the video.")
    try:
        return float(duration)
    except (TypeError, ValueError):
        raise ProbeError(f"Could not parse duration of the video: {duration!r}")


def parse_ffmpeg_time(time: str) -> Optional[float]:
    """
    Convert an FFmpeg ``HH:MM:SS.frac`` timestamp to seconds.

    No bounds checks are applied, FFmpeg happily reports ``123:45:67.89``.
    Returns None for values such as ``N/A`` that can't be parsed.
    """
    parts = time.strip().split(":")
    if len(parts) != 3:
        return None
    try:
        hours, minutes, seconds = (float(p) for p in parts)
    except ValueError:
        return None
    return hours * 3600 + minutes * 60 + seconds


def extract_progress_time(output: str) -> Optional[str]:
    """Return the last raw ``time=`` token in a chunk of FFmpeg output, if any."""
    matches = _TIME_TOKEN.findall(output)
    return matches[-1] if matches else None


def parse_vmaf_score(output: str) -> Optional[float]:
    """Extract the first ``VMAF score: <float>`` value from FFmpeg/libvmaf output."""
    match = _VMAF_SCORE.search(output)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def build_encode_command(ffmpeg_path: str, input_file: Union[str, Path], ffmpeg_arguments: str,
                         output_file: Union[str, Path]) -> str:
    """Shell command for a plain encode. ``ffmpeg_arguments`` is inserted verbatim."""
    parts = [quote_path(ffmpeg_path), "-y", "-i", quote_path(input_file)]
    if ffmpeg_arguments.strip():
        parts.append(ffmpeg_arguments.strip())
    parts.append(quote_path(output_file))
    return " ".join(parts)


def build_vmaf_command(ffmpeg_path: str, reference_file: Union[str, Path], distorted_file: Union[str, Path],
                       model: str = DEFAULT_VMAF_MODEL, n_threads: int = DEFAULT_VMAF_THREADS) -> str:
    """Shell command that scores ``distorted_file`` against ``reference_file`` with libvmaf."""
    filter_graph = (
        "[0:v]setpts=PTS-STARTPTS[reference]; "
        "[1:v]setpts=PTS-STARTPTS[distorted]; "
        f"[distorted][reference]libvmaf=model=version={model}:n_threads={n_threads}"
    )
    return " ".join([
        quote_path(ffmpeg_path), "-y",
        "-i", quote_path(reference_file),
        "-i", quote_path(distorted_file),
        "-filter_complex", f'"{filter_graph}"',
        "-f", "null", "-",
    ])


def build_crf_arguments(ffmpeg_arguments: str, h265: bool, crf: int) -> str:
    """Append the codec and CRF selection to caller-supplied FFmpeg arguments."""
    codec = "libx265" if h265 else "libx264"
    return f"{ffmpeg_arguments} -c:v {codec} -crf {crf}".strip()
