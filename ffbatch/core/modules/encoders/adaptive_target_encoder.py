"""
Adaptive CRF search for a target VMAF score.

The search encodes and scores the input at different CRF values until it
finds two adjacent CRF values whose scores straddle the target. The lower of
the two (the smallest file that still meets the target) is copied to the
output path.

Stages decide which CRF to try next:

- ValidateUpperBound: CRF at the bottom of the domain must reach the target
- ValidateLowerBound: CRF at the top of the domain must not exceed it
- NarrowDown: bisect until about four CRF values remain
- IterateSubset: try every value left in the band
- LinearWalk: walk one CRF at a time towards the target

The boundary check after every trial, not the stage machine, is what ends a
successful search. Scores are assumed to be non-increasing in CRF; if the
external tool violates that, LinearWalk may never find a boundary. Pass
``max_trials`` to bound the search.
"""

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from ....utils.logging import get_logger
from ..analysis.media_utils import DEFAULT_VMAF_MODEL, DEFAULT_VMAF_THREADS, build_crf_arguments
from ..system.events import SubscriptionGroup
from ..system.system_utils import copy_file, ensure_directory, remove_files
from .base import LOG_EVENT, UPDATE_EVENT, BaseEncoder
from .composite_encoder import CompositeEncoder
from .state import AdaptiveTargetEncoderReport, EncoderPhase, EncodingState, SearchStage

logger = get_logger("adaptive_target_encoder")

CRF_MIN = 0
CRF_MAX = 51
# below this band width bisection stops and every value is tried
SUBSET_WIDTH = 4


@dataclass
class TrialSample:
    """One encode-and-score result of the search."""
    quality_parameter: int
    score: float
    file_path: str


class AdaptiveTargetEncoder(BaseEncoder):
    """Searches for the highest CRF whose VMAF score still meets ``target_score``."""

    log_tag = "VMAF Target Video Encoder"

    def __init__(self, ffprobe_path: str, ffmpeg_path: str, input_file_path: Union[str, Path],
                 temp_directory: Union[str, Path] = "",
                 quality_parameter_low: int = CRF_MIN,
                 quality_parameter_high: int = CRF_MAX,
                 vmaf_model: str = DEFAULT_VMAF_MODEL,
                 vmaf_threads: int = DEFAULT_VMAF_THREADS,
                 keep_trial_files: bool = False,
                 max_trials: Optional[int] = None):
        super().__init__(ffprobe_path, ffmpeg_path, input_file_path)
        if quality_parameter_low > quality_parameter_high:
            raise ValueError("quality_parameter_low must not exceed quality_parameter_high")

        self._temp_directory = Path(temp_directory) if temp_directory else Path(input_file_path).parent / ".ffbatch-trials"
        self._domain_low = quality_parameter_low
        self._domain_high = quality_parameter_high
        self._vmaf_model = vmaf_model
        self._vmaf_threads = vmaf_threads
        self._keep_trial_files = keep_trial_files
        self._max_trials = max_trials

        self._child: Optional[CompositeEncoder] = None
        self._child_subscriptions = SubscriptionGroup()
        self._samples: Dict[int, TrialSample] = {}
        self._trial_files: List[str] = []
        self._target_score = 0.0
        self._init_search()

    def _init_search(self):
        self._stage = SearchStage.VALIDATE_UPPER_BOUND
        self._low = self._domain_low
        self._high = self._domain_high
        self._current_parameter = self._domain_low
        self._last_score: Optional[float] = None

    @property
    def quality_parameter_low(self) -> int:
        return self._domain_low

    @property
    def quality_parameter_high(self) -> int:
        return self._domain_high

    @property
    def temp_directory(self) -> Path:
        return self._temp_directory

    @property
    def stage(self) -> SearchStage:
        return self._stage

    @property
    def current_parameter(self) -> int:
        return self._current_parameter

    @property
    def last_score(self) -> Optional[float]:
        return self._last_score

    @property
    def samples(self) -> List[TrialSample]:
        """Recorded trials, sorted by quality parameter."""
        return [self._samples[p] for p in sorted(self._samples)]

    @property
    def child(self) -> Optional[CompositeEncoder]:
        return self._child

    @property
    def phase(self) -> EncoderPhase:
        if self._state == EncodingState.SUCCESS:
            return EncoderPhase.DONE
        if self._child is not None:
            return self._child.phase
        return EncoderPhase.ENCODING

    @property
    def report(self) -> AdaptiveTargetEncoderReport:
        return AdaptiveTargetEncoderReport(
            encoder_id=self._encoder_id,
            encoding_state=self._state,
            input_file_path=self._input_file_path,
            file_size=self._file_size,
            duration=self._duration,
            current_duration=self._current_duration,
            encoding_phase=self.phase,
            score=self._last_score,
            low=self._low,
            high=self._high,
            current_parameter=self._current_parameter,
            stage=self._stage,
        )

    async def start(self, ffmpeg_arguments: str, h265: bool, target_score: float,
                    output_file_path: Union[str, Path]) -> None:
        """
        Run the search and copy the winning trial to ``output_file_path``.

        ``ffmpeg_arguments`` must not select the video codec or CRF; they are
        appended per trial. Calling this on an encoder that is not pending is
        logged and ignored.
        """
        if self._state != EncodingState.PENDING:
            self._log_line(f"Cannot start encoding when the state is not pending. Current state: {self._state.value}")
            return

        self._state = EncodingState.ENCODING
        self._output_file_path = str(output_file_path)
        self._target_score = target_score
        self._samples = {}
        self._init_search()
        logger.search(f"{Path(self._input_file_path).name}: searching CRF {self._low}-{self._high} "
                      f"for VMAF >= {target_score}")

        try:
            await self._search(ffmpeg_arguments, h265)
        finally:
            if not self._keep_trial_files:
                remove_files(self._trial_files)
                self._trial_files = []

    async def _search(self, ffmpeg_arguments: str, h265: bool):
        target = self._target_score
        trials = 0

        while True:
            if self._max_trials is not None and trials >= self._max_trials:
                self._fail(f"No CRF boundary found after {trials} trials. Giving up.")
                return

            if self._stage == SearchStage.VALIDATE_UPPER_BOUND:
                sample = await self._trial(ffmpeg_arguments, h265, self._domain_low)
                if sample is None:
                    return
                if sample.score < target:
                    self._fail(f"VMAF with CRF {sample.quality_parameter} is {sample.score}. "
                               f"It needs to be at least {target}.")
                    return
                self._record(sample)
                self._stage = SearchStage.VALIDATE_LOWER_BOUND

            elif self._stage == SearchStage.VALIDATE_LOWER_BOUND:
                sample = await self._trial(ffmpeg_arguments, h265, self._domain_high)
                if sample is None:
                    return
                if sample.score > target:
                    self._fail(f"VMAF with CRF {sample.quality_parameter} is {sample.score}. "
                               f"It needs to be at most {target}.")
                    return
                self._record(sample)
                self._stage = SearchStage.NARROW_DOWN

            elif self._stage == SearchStage.NARROW_DOWN:
                if self._high - self._low <= SUBSET_WIDTH:
                    self._stage = SearchStage.ITERATE_SUBSET
                    self._current_parameter = self._low
                    continue

                mid = (self._low + self._high) // 2
                sample = await self._trial(ffmpeg_arguments, h265, mid)
                if sample is None:
                    return
                if sample.score > target:
                    # quality to spare, move towards larger CRF values
                    self._low = mid - 1
                else:
                    self._high = mid
                self._record(sample)

            elif self._stage == SearchStage.ITERATE_SUBSET:
                if self._current_parameter > self._high:
                    self._stage = SearchStage.LINEAR_WALK
                    continue

                sample = await self._trial(ffmpeg_arguments, h265, self._current_parameter)
                if sample is None:
                    return
                self._record(sample)
                self._current_parameter += 1

            elif self._stage == SearchStage.LINEAR_WALK:
                if self._last_score is not None and self._last_score < target:
                    next_parameter = self._current_parameter - 1
                else:
                    next_parameter = self._current_parameter + 1

                sample = await self._trial(ffmpeg_arguments, h265, next_parameter)
                if sample is None:
                    return
                self._record(sample)

            trials += 1
            winner = self._find_boundary()
            if winner is not None:
                await self._finish(winner)
                return

    async def _trial(self, ffmpeg_arguments: str, h265: bool, parameter: int) -> Optional[TrialSample]:
        """Encode and score at ``parameter``. Fails the search and returns None on error."""
        self._current_parameter = parameter
        try:
            temp_file = await self._request_temp_file_path(parameter)
        except OSError as e:
            self._fail(f"Could not create {self._temp_directory}: {e}")
            return None

        child = await CompositeEncoder.create(self._ffprobe_path, self._ffmpeg_path, self._input_file_path,
                                              vmaf_model=self._vmaf_model, vmaf_threads=self._vmaf_threads)
        self._set_child(child)
        if child.state != EncodingState.PENDING:
            self._fail("Could not create the encoder. Exiting.")
            return None

        self._trial_files.append(temp_file)
        self._log_line(f"Trying CRF {parameter} ({self._stage.value}).")
        await child.start(build_crf_arguments(ffmpeg_arguments, h265, parameter), temp_file)

        if child.state != EncodingState.SUCCESS or child.score is None:
            self._fail(f"Encoding with CRF {parameter} failed. Exiting.")
            return None

        self._last_score = child.score
        self._log_line(f"CRF {parameter} scored VMAF {child.score}.")
        logger.search(f"{Path(self._input_file_path).name}: CRF {parameter} -> VMAF {child.score:.2f}")
        return TrialSample(quality_parameter=parameter, score=child.score, file_path=temp_file)

    def _record(self, sample: TrialSample):
        self._samples[sample.quality_parameter] = sample

    def _find_boundary(self) -> Optional[TrialSample]:
        """Return the lower-CRF sample of the first adjacent pair straddling the target."""
        ordered = self.samples
        for previous, current in zip(ordered, ordered[1:]):
            if (current.score < self._target_score <= previous.score
                    and current.quality_parameter - previous.quality_parameter == 1):
                return previous
        return None

    async def _finish(self, winner: TrialSample):
        try:
            await copy_file(winner.file_path, self._output_file_path)
        except OSError as e:
            self._fail(f"Could not copy {winner.file_path} to {self._output_file_path}: {e}")
            return

        self._current_parameter = winner.quality_parameter
        self._last_score = winner.score
        self._state = EncodingState.SUCCESS
        self._log_line(f"Found CRF {winner.quality_parameter} with VMAF {winner.score}.")
        logger.result(f"{Path(self._input_file_path).name}: CRF {winner.quality_parameter} "
                      f"(VMAF {winner.score:.2f} >= {self._target_score})")
        self._emit_update()

    def _fail(self, message: str):
        self._state = EncodingState.ERROR
        self._log_line(message)
        logger.warn(f"{Path(self._input_file_path).name}: {message}")
        self._emit_update()

    async def _request_temp_file_path(self, parameter: int) -> str:
        """Fresh trial path ``<temp dir>/<crf>-<uuid><output extension>``; creates the directory."""
        await ensure_directory(self._temp_directory)
        suffix = Path(self._output_file_path).suffix
        return str(self._temp_directory / f"{parameter}-{uuid.uuid4()}{suffix}")

    def reset(self) -> bool:
        """Forget the previous search and return to Pending. Refused (False) while encoding."""
        if self._state == EncodingState.ENCODING or self._probe_failed:
            return False

        self._set_child(None)
        self._samples = {}
        self._init_search()
        self._clear_progress()
        self._state = EncodingState.PENDING
        self._emit_update()
        return True

    def _set_child(self, child: Optional[CompositeEncoder]):
        self._child_subscriptions.cancel_all()
        self._child = child
        if child is not None:
            self._child_subscriptions.add(child.on(LOG_EVENT, self._forward_child_log))
            self._child_subscriptions.add(child.on(UPDATE_EVENT, self._on_child_update))

    def _on_child_update(self):
        if self._child is not None:
            self._current_duration = self._child.current_duration
        self._emit_update()
