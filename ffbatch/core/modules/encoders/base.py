"""
Common shape of every encoder entity.

An encoder owns a uuid, the input it was created for, the facts probed from
that input, a four-state lifecycle and an append-only log. The log holds two
interleaved streams:

- internal: raw FFmpeg/FFprobe output, appended verbatim
- external: lines written by ffbatch itself, timestamped and tagged

Both are also emitted as ``log`` events ``(tag, text, is_internal)`` so a
consumer can keep them apart. ``update`` is emitted whenever anything a
report shows may have changed.
"""

import asyncio
import codecs
import json
import os
import uuid
from pathlib import Path
from typing import Optional, Union

from ....utils.logging import format_log_line, get_logger
from ..analysis.media_utils import (
    extract_progress_time,
    parse_ffmpeg_time,
    probe_duration,
    probe_media,
)
from ..exceptions import ProbeError
from ..system.events import EventEmitter
from ..system.system_utils import spawn_shell
from .state import EncoderReport, EncodingState

logger = get_logger("encoders")

LOG_EVENT = "log"
UPDATE_EVENT = "update"

_READ_CHUNK = 64 * 1024


class BaseEncoder(EventEmitter):
    """Identity, probe-at-creation, logging and state bookkeeping shared by all encoders."""

    log_tag = "Encoder"

    def __init__(self, ffprobe_path: str, ffmpeg_path: str, input_file_path: Union[str, Path]):
        super().__init__()
        self._encoder_id = str(uuid.uuid4())
        self._ffprobe_path = ffprobe_path
        self._ffmpeg_path = ffmpeg_path
        self._input_file_path = str(input_file_path)
        self._output_file_path = ""
        self._file_size = 0
        self._duration = 0.0
        self._current_duration = 0.0
        self._progress_buffer = ""
        self._state = EncodingState.PENDING
        self._log = ""
        self._probe_failed = False

    @classmethod
    async def create(cls, ffprobe_path: str, ffmpeg_path: str, input_file_path: Union[str, Path], **kwargs):
        """Construct an encoder and probe its input.

        Never raises for a bad input: the encoder comes back in the Error state
        with the reason in its log.
        """
        encoder = cls(ffprobe_path, ffmpeg_path, input_file_path, **kwargs)
        await encoder._probe_input()
        return encoder

    async def _probe_input(self):
        try:
            self._file_size = os.stat(self._input_file_path).st_size
        except OSError as e:
            self._log_line("Could not determine the size of the input file. It is likely that the file does not exist.")
            self._log_line(str(e))
            self._fail_probe()
            return

        probe_data = await asyncio.to_thread(probe_media, self._ffprobe_path, self._input_file_path)
        if probe_data is not None:
            self._log_internal(json.dumps(probe_data, indent=2) + "\n")

        try:
            self._duration = probe_duration(probe_data)
        except ProbeError as e:
            self._log_line(str(e))
            self._fail_probe()
            return

    def _fail_probe(self):
        self._probe_failed = True
        self._state = EncodingState.ERROR
        logger.debug(f"{self.log_tag} {self._encoder_id[:8]}: probe failed for {self._input_file_path}")

    @property
    def encoder_id(self) -> str:
        return self._encoder_id

    @property
    def input_file_path(self) -> str:
        return self._input_file_path

    @property
    def output_file_path(self) -> str:
        return self._output_file_path

    @property
    def file_size(self) -> int:
        """Size of the input file in bytes."""
        return self._file_size

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def current_duration(self) -> float:
        return self._current_duration

    @property
    def state(self) -> EncodingState:
        return self._state

    @property
    def log(self) -> str:
        return self._log

    @property
    def probe_failed(self) -> bool:
        return self._probe_failed

    @property
    def report(self) -> EncoderReport:
        return EncoderReport(
            encoder_id=self._encoder_id,
            encoding_state=self._state,
            input_file_path=self._input_file_path,
            file_size=self._file_size,
            duration=self._duration,
            current_duration=self._current_duration,
        )

    def reset(self) -> bool:
        """
        Put a finished encoder back into the Pending state.

        Returns False without changing anything while encoding, or when the
        input could not be probed at creation time.
        """
        if self._state == EncodingState.ENCODING or self._probe_failed:
            return False

        self._clear_progress()
        self._state = EncodingState.PENDING
        self._emit_update()
        return True

    def _clear_progress(self):
        self._current_duration = 0.0
        self._output_file_path = ""

    def _emit_update(self):
        self.emit(UPDATE_EVENT)

    def _log_line(self, message: str, tag: Optional[str] = None):
        """Log a line authored by ffbatch (not by FFmpeg/FFprobe)."""
        tag = tag or f"{self.log_tag}/Log"
        # operator lines always start on their own line, even after a partial tool chunk
        if self._log and not self._log.endswith("\n"):
            self._log += "\n"
        self._log += format_log_line(tag, message)
        self.emit(LOG_EVENT, tag, message, False)

    def _log_internal(self, data: str, tag: Optional[str] = None):
        """Log raw output that comes from FFmpeg or FFprobe."""
        tag = tag or f"{self.log_tag}/FFmpeg"
        self._log += data
        self.emit(LOG_EVENT, tag, data, True)

    def _forward_child_log(self, tag: str, text: str, internal: bool):
        """Re-emit a child's log event with the same payload and keep a copy in our log."""
        if internal:
            self._log_internal(text, tag)
        else:
            self._log_line(text, tag)


class ProcessRunnerMixin:
    """Runs one external FFmpeg invocation and feeds its output to the encoder.

    Mixed into ``BaseEncoder`` subclasses that wrap a single process.
    """

    async def _run_process(self, command: str) -> Optional[int]:
        """Spawn ``command``, stream its merged output, and return its exit code.

        Returns None if the process could not be spawned at all.
        """
        self._log_line(f"Starting process with command: {command}")
        try:
            process = await spawn_shell(command)
        except OSError as e:
            self._log_line(f"Could not start process: {e}")
            return None

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._progress_buffer = ""
        while True:
            chunk = await process.stdout.read(_READ_CHUNK)
            if not chunk:
                break
            self._on_process_output(decoder.decode(chunk))
        tail = decoder.decode(b"", final=True)
        if tail:
            self._on_process_output(tail)
        self._update_progress(self._progress_buffer)
        self._progress_buffer = ""

        return await process.wait()

    def _on_process_output(self, data: str):
        if self._state != EncodingState.ENCODING:
            return

        # progress is only read from complete lines; a chunk may end mid-token
        text = self._progress_buffer + data
        cut = max(text.rfind("\r"), text.rfind("\n")) + 1
        self._progress_buffer = text[cut:]
        self._update_progress(text[:cut])

        self._log_internal(data)
        self._emit_update()

    def _update_progress(self, text: str):
        if self._state != EncodingState.ENCODING:
            return

        token = extract_progress_time(text)
        if token is not None:
            seconds = parse_ffmpeg_time(token)
            if seconds is None:
                self._log_line(
                    "Could not parse the current duration of the video. Perhaps encoding has just started "
                    "and the time is N/A, or the video is invalid."
                )
            else:
                self._current_duration = seconds
