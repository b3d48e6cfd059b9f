"""
Single FFmpeg encode wrapped as an observable state machine.
"""

from pathlib import Path
from typing import Union

from ....utils.logging import get_logger
from ..analysis.media_utils import build_encode_command
from ..exceptions import InvalidStateError
from .base import BaseEncoder, ProcessRunnerMixin
from .state import EncodingState

logger = get_logger("process_encoder")


class ProcessEncoder(ProcessRunnerMixin, BaseEncoder):
    """Runs ``ffmpeg -y -i <input> <arguments> <output>`` and tracks its progress."""

    log_tag = "Process Encoder"

    async def start(self, ffmpeg_arguments: str, output_file_path: Union[str, Path]) -> None:
        """
        Encode the input with the given FFmpeg arguments. Returns when FFmpeg exits.

        Raises:
            InvalidStateError: if the encoder is not pending. The state is left unchanged.
        """
        if self._state != EncodingState.PENDING:
            self._log_line(f"Cannot start encoding when the state is not pending. Current state: {self._state.value}")
            raise InvalidStateError(self._state)

        # claim the encoder before the first await so a second start() can't slip in
        self._state = EncodingState.ENCODING
        self._output_file_path = str(output_file_path)

        command = build_encode_command(self._ffmpeg_path, self._input_file_path, ffmpeg_arguments,
                                       self._output_file_path)
        exit_code = await self._run_process(command)

        self._state = EncodingState.SUCCESS if exit_code == 0 else EncodingState.ERROR
        self._log_line(f"Process exited with code {exit_code}")
        logger.encoder(f"{Path(self._input_file_path).name}: {self._state.value} (exit code {exit_code})")
        self._emit_update()
