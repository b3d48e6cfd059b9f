"""
VMAF scoring of a distorted (encoded) video against its reference.
"""

from pathlib import Path
from typing import Optional, Union

from ....utils.logging import get_logger
from ..analysis.media_utils import (
    DEFAULT_VMAF_MODEL,
    DEFAULT_VMAF_THREADS,
    build_vmaf_command,
    parse_vmaf_score,
)
from ..exceptions import InvalidStateError
from .base import BaseEncoder, ProcessRunnerMixin
from .state import EncoderReport, EncodingState

logger = get_logger("quality_scorer")


class QualityScorer(ProcessRunnerMixin, BaseEncoder):
    """
    FFmpeg run with the built-in libvmaf filter.

    The encoder's input file is the reference; the distorted file is given to
    ``start()``. The score is read from the ``VMAF score: <float>`` line FFmpeg
    prints on exit. A run without a parsable score is an Error even when FFmpeg
    exits with code 0.
    """

    log_tag = "VMAF Scoring Encoder"

    def __init__(self, ffprobe_path: str, ffmpeg_path: str, reference_file_path: Union[str, Path],
                 vmaf_model: str = DEFAULT_VMAF_MODEL, vmaf_threads: int = DEFAULT_VMAF_THREADS):
        super().__init__(ffprobe_path, ffmpeg_path, reference_file_path)
        self._vmaf_model = vmaf_model
        self._vmaf_threads = vmaf_threads
        self._distorted_file_path = ""
        self._score: Optional[float] = None
        self._process_output = ""

    @property
    def reference_file_path(self) -> str:
        return self._input_file_path

    @property
    def distorted_file_path(self) -> str:
        return self._distorted_file_path

    @property
    def score(self) -> Optional[float]:
        """VMAF score of the distorted video; None until scoring succeeded."""
        return self._score

    @property
    def report(self) -> EncoderReport:
        report = super().report
        report.score = self._score
        return report

    async def start(self, distorted_file_path: Union[str, Path]) -> None:
        """
        Score ``distorted_file_path`` against the reference. Returns when FFmpeg exits.

        Raises:
            InvalidStateError: if the scorer is not pending. The state is left unchanged.
        """
        if self._state != EncodingState.PENDING:
            self._log_line(f"Cannot start encoding when the state is not pending. Current state: {self._state.value}")
            raise InvalidStateError(self._state)

        self._state = EncodingState.ENCODING
        self._distorted_file_path = str(distorted_file_path)
        self._process_output = ""

        command = build_vmaf_command(self._ffmpeg_path, self._input_file_path, self._distorted_file_path,
                                     model=self._vmaf_model, n_threads=self._vmaf_threads)
        exit_code = await self._run_process(command)

        self._state = EncodingState.SUCCESS if exit_code == 0 else EncodingState.ERROR
        self._log_line(f"Process exited with code {exit_code}")

        score = parse_vmaf_score(self._process_output)
        if score is None:
            self._log_line("Could not parse the VMAF score from the output.")
            self._state = EncodingState.ERROR
        else:
            self._log_line(f"VMAF score: {score}")
            self._score = score
            logger.vmaf(f"{Path(self._distorted_file_path).name}: VMAF {score:.2f}")

        self._emit_update()

    def _on_process_output(self, data: str):
        if self._state == EncodingState.ENCODING:
            self._process_output += data
        super()._on_process_output(data)

    def _clear_progress(self):
        super()._clear_progress()
        self._score = None
        self._distorted_file_path = ""
        self._process_output = ""
