"""
Encode-then-score pipeline built from a ProcessEncoder and a QualityScorer.
"""

from pathlib import Path
from typing import Optional, Union

from ....utils.logging import get_logger
from ..analysis.media_utils import DEFAULT_VMAF_MODEL, DEFAULT_VMAF_THREADS
from ..system.events import SubscriptionGroup
from .base import LOG_EVENT, UPDATE_EVENT, BaseEncoder
from .process_encoder import ProcessEncoder
from .quality_scorer import QualityScorer
from .state import EncoderPhase, EncoderReport, EncodingState

logger = get_logger("composite_encoder")


class CompositeEncoder(BaseEncoder):
    """
    Encodes the input, then scores the result against the input with VMAF.

    Each child is owned exclusively and lives in a single slot; replacing or
    dropping a child cancels the subscriptions forwarding its events first.
    The scorer is only created once the encode succeeded.
    """

    log_tag = "Encode And Score Encoder"

    def __init__(self, ffprobe_path: str, ffmpeg_path: str, input_file_path: Union[str, Path],
                 vmaf_model: str = DEFAULT_VMAF_MODEL, vmaf_threads: int = DEFAULT_VMAF_THREADS):
        super().__init__(ffprobe_path, ffmpeg_path, input_file_path)
        self._vmaf_model = vmaf_model
        self._vmaf_threads = vmaf_threads
        self._encoder: Optional[ProcessEncoder] = None
        self._encoder_subscriptions = SubscriptionGroup()
        self._scorer: Optional[QualityScorer] = None
        self._scorer_subscriptions = SubscriptionGroup()
        self._score: Optional[float] = None

    @property
    def score(self) -> Optional[float]:
        """VMAF score of the encoded output; None until scoring succeeded."""
        return self._score

    @property
    def encoder(self) -> Optional[ProcessEncoder]:
        return self._encoder

    @property
    def scorer(self) -> Optional[QualityScorer]:
        return self._scorer

    @property
    def phase(self) -> EncoderPhase:
        if self._state == EncodingState.SUCCESS:
            return EncoderPhase.DONE
        if self._scorer is not None:
            return EncoderPhase.SCORING
        return EncoderPhase.ENCODING

    @property
    def report(self) -> EncoderReport:
        report = super().report
        report.encoding_phase = self.phase
        report.score = self._score
        return report

    async def start(self, ffmpeg_arguments: str, output_file_path: Union[str, Path]) -> None:
        """
        Encode to ``output_file_path`` and score the result. Returns once both steps finished.

        Calling this on an encoder that is not pending is logged and ignored.
        """
        if self._state != EncodingState.PENDING:
            self._log_line(f"Cannot start encoding when the state is not pending. Current state: {self._state.value}")
            return

        self._state = EncodingState.ENCODING
        self._output_file_path = str(output_file_path)

        encoder = await ProcessEncoder.create(self._ffprobe_path, self._ffmpeg_path, self._input_file_path)
        self._set_encoder(encoder)
        if encoder.state == EncodingState.PENDING:
            await encoder.start(ffmpeg_arguments, self._output_file_path)

        if encoder.state != EncodingState.SUCCESS:
            self._finish(EncodingState.ERROR, "Encoding failed; the output will not be scored.")
            return

        scorer = await QualityScorer.create(self._ffprobe_path, self._ffmpeg_path, self._input_file_path,
                                            vmaf_model=self._vmaf_model, vmaf_threads=self._vmaf_threads)
        self._set_scorer(scorer)
        if scorer.state == EncodingState.PENDING:
            await scorer.start(self._output_file_path)

        if scorer.state != EncodingState.SUCCESS:
            self._finish(EncodingState.ERROR, "Scoring failed.")
            return

        self._score = scorer.score
        self._finish(EncodingState.SUCCESS, f"Encoding and scoring complete. Score is {scorer.score}.")

    def reset(self) -> bool:
        """Drop both children and return to Pending. Refused (False) while encoding."""
        if self._state == EncodingState.ENCODING or self._probe_failed:
            return False

        self._set_encoder(None)
        self._set_scorer(None)
        self._clear_progress()
        self._score = None
        self._state = EncodingState.PENDING
        self._emit_update()
        return True

    def _finish(self, state: EncodingState, message: str):
        self._state = state
        self._log_line(message)
        self._emit_update()

    def _set_encoder(self, encoder: Optional[ProcessEncoder]):
        self._encoder_subscriptions.cancel_all()
        self._encoder = encoder
        if encoder is not None:
            self._subscribe(encoder, self._encoder_subscriptions)

    def _set_scorer(self, scorer: Optional[QualityScorer]):
        self._scorer_subscriptions.cancel_all()
        self._scorer = scorer
        if scorer is not None:
            self._subscribe(scorer, self._scorer_subscriptions)

    def _subscribe(self, child: BaseEncoder, group: SubscriptionGroup):
        group.add(child.on(LOG_EVENT, self._forward_child_log))
        group.add(child.on(UPDATE_EVENT, self._on_child_update))

    def _on_child_update(self):
        active = self._scorer or self._encoder
        self._current_duration = active.current_duration if active is not None else 0.0
        self._emit_update()
