"""
Bounded-concurrency dispatch of encoder entities.

A controller owns a queue of encoders of one type. Whenever anything changes
(an encoder reports progress or finishes, encoding is switched on, entries are
added or reset) the scheduling step runs again and starts Pending encoders
until ``concurrency`` of them are busy.

Everything runs on one event loop. Starting an encoder is a fire-and-forget
task: it prepares the output directory, re-checks that the encoder may still
start, then awaits the encoder's ``start()``. Encoders whose output directory
is being prepared count against the concurrency cap.
"""

import asyncio
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Set, Type, Union

from ....utils.logging import get_logger
from ..analysis.media_utils import DEFAULT_VMAF_MODEL, DEFAULT_VMAF_THREADS
from ..encoders.adaptive_target_encoder import AdaptiveTargetEncoder
from ..encoders.base import UPDATE_EVENT, BaseEncoder
from ..encoders.composite_encoder import CompositeEncoder
from ..encoders.process_encoder import ProcessEncoder
from ..encoders.state import EncoderReport, EncodingState
from ..system.events import EventEmitter, SubscriptionGroup
from ..system.system_utils import compute_output_paths, ensure_directory, get_files_recursive

logger = get_logger("dispatcher")

DEFAULT_OUTPUT_SUBDIRECTORY = "ffbatch"
DEFAULT_EXTENSION = "mkv"


class EncoderController(EventEmitter):
    """
    Queue of encoders plus the scheduling step that runs them.

    Emits ``update(encoder_id)`` after every update of one of its encoders.
    Subclasses pick the encoder type and how ``start()`` is called.
    """

    encoder_class: Type[BaseEncoder] = BaseEncoder

    def __init__(self, ffprobe_path: str, ffmpeg_path: str, ffmpeg_arguments: str = "",
                 output_subdirectory: Union[str, Path] = DEFAULT_OUTPUT_SUBDIRECTORY,
                 extension: str = DEFAULT_EXTENSION, concurrency: int = 1):
        super().__init__()
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        self._controller_id = str(uuid.uuid4())
        self._ffprobe_path = ffprobe_path
        self._ffmpeg_path = ffmpeg_path
        self.ffmpeg_arguments = ffmpeg_arguments
        self.output_subdirectory = str(output_subdirectory)
        self.extension = extension
        self._concurrency = concurrency
        self._is_encoding = False

        self._queue: List[BaseEncoder] = []
        self._subscriptions: Dict[str, SubscriptionGroup] = {}
        # encoders whose start task is preparing the output directory
        self._preparing: Set[str] = set()
        # encoders whose output directory could not be created; skipped until reset
        self._unstartable: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._idle_waiters: List[asyncio.Future] = []

    @property
    def controller_id(self) -> str:
        return self._controller_id

    @property
    def is_encoding(self) -> bool:
        return self._is_encoding

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @concurrency.setter
    def concurrency(self, value: int):
        if value < 1:
            raise ValueError(f"concurrency must be at least 1, got {value}")
        self._concurrency = value
        logger.dispatch(f"controller {self._controller_id[:8]}: concurrency set to {value}")
        self.process_actions()

    @property
    def queue(self) -> List[BaseEncoder]:
        """Snapshot of the owned encoders, in dispatch order."""
        return list(self._queue)

    @property
    def encoding_count(self) -> int:
        return sum(1 for e in self._queue if e.state == EncodingState.ENCODING)

    @property
    def is_idle(self) -> bool:
        """True when nothing is running and nothing more will be started."""
        if self._tasks or self._preparing or self.encoding_count:
            return False
        return not self._is_encoding or self._next_pending() is None

    # Queue management

    async def add_encoders(self, paths: List[Union[str, Path]]) -> List[EncoderReport]:
        """
        Create one encoder per file below ``paths`` and append them to the queue.

        Directories are expanded recursively; paths that don't exist add
        nothing. The new encoders are queued longest first. Returns a report
        for every new encoder, including ones whose input could not be probed.
        """
        files = [f for entry in paths for f in get_files_recursive(entry)]
        if not files:
            return []

        encoders = await asyncio.gather(*(self._create_encoder(f) for f in files))
        encoders = sorted(encoders, key=lambda e: e.duration, reverse=True)

        for encoder in encoders:
            self._queue.append(encoder)
            group = SubscriptionGroup()
            group.add(encoder.on(UPDATE_EVENT, self._make_update_listener(encoder.encoder_id)))
            self._subscriptions[encoder.encoder_id] = group

        logger.dispatch(f"controller {self._controller_id[:8]}: added {len(encoders)} encoder(s)")
        self.process_actions()
        return [self._report(e) for e in encoders]

    def reset_encoders(self, encoder_ids: List[str]) -> List[str]:
        """Reset finished encoders to Pending. Encoders that refuse (Encoding) are skipped.

        Raises:
            KeyError: if any id is unknown. Nothing is reset in that case.
        """
        encoders = [self._get(encoder_id) for encoder_id in encoder_ids]
        reset = []
        for encoder in encoders:
            if encoder.reset():
                self._unstartable.discard(encoder.encoder_id)
                reset.append(encoder.encoder_id)

        self.process_actions()
        self._check_idle()
        return reset

    def delete_encoders(self, encoder_ids: List[str]) -> List[str]:
        """Remove encoders from the queue. Encoding encoders stay and are not returned.

        Raises:
            KeyError: if any id is unknown. Nothing is deleted in that case.
        """
        encoders = [self._get(encoder_id) for encoder_id in encoder_ids]
        deleted = []
        for encoder in encoders:
            encoder_id = encoder.encoder_id
            if encoder.state == EncodingState.ENCODING:
                continue
            self._subscriptions.pop(encoder_id).cancel_all()
            self._queue.remove(encoder)
            self._unstartable.discard(encoder_id)
            deleted.append(encoder_id)

        if deleted:
            logger.dispatch(f"controller {self._controller_id[:8]}: deleted {len(deleted)} encoder(s)")
        self._check_idle()
        return deleted

    # Reports

    def get_report_for(self, encoder_id: str) -> EncoderReport:
        return self._report(self._get(encoder_id))

    def get_logs_for(self, encoder_id: str) -> str:
        return self._get(encoder_id).log

    def reports(self) -> List[EncoderReport]:
        return [self._report(e) for e in self._queue]

    # Scheduling

    async def start_encoding(self):
        self._is_encoding = True
        logger.dispatch(f"controller {self._controller_id[:8]}: encoding started")
        self.process_actions()

    async def stop_encoding(self):
        """Stop starting new encoders. Running encoders are left to finish."""
        self._is_encoding = False
        logger.dispatch(f"controller {self._controller_id[:8]}: encoding stopped")
        self.process_actions()
        self._check_idle()

    def process_actions(self):
        """Start Pending encoders while there is capacity. Safe to call at any time."""
        while self._is_encoding and self._occupied() < self._concurrency:
            encoder = self._next_pending()
            if encoder is None:
                break

            self._preparing.add(encoder.encoder_id)
            task = asyncio.get_running_loop().create_task(self._dispatch(encoder))
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    async def wait_until_idle(self):
        """Wait until no encoder is running and none will be started."""
        while not self.is_idle:
            waiter = asyncio.get_running_loop().create_future()
            self._idle_waiters.append(waiter)
            await waiter

    async def _dispatch(self, encoder: BaseEncoder):
        encoder_id = encoder.encoder_id
        output = compute_output_paths(encoder.input_file_path, self.output_subdirectory, self.extension)
        try:
            await ensure_directory(output.containing_directory)
        except OSError as e:
            self._unstartable.add(encoder_id)
            logger.error(f"Could not create {output.containing_directory}: {e}")
            return
        finally:
            self._preparing.discard(encoder_id)

        if not self._can_start(encoder):
            logger.debug(f"controller {self._controller_id[:8]}: {encoder_id[:8]} no longer startable")
            return

        logger.dispatch(f"starting {Path(encoder.input_file_path).name} -> {output.file_path}")
        await self._start_encoder(encoder, str(output.file_path))

    def _can_start(self, encoder: BaseEncoder) -> bool:
        return (self._is_encoding
                and encoder in self._queue
                and encoder.state == EncodingState.PENDING
                and self._occupied() < self._concurrency)

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Encoder task failed: {task.exception()!r}")
        self.process_actions()
        self._check_idle()

    def _occupied(self) -> int:
        return self.encoding_count + len(self._preparing)

    def _next_pending(self) -> Optional[BaseEncoder]:
        for encoder in self._queue:
            if (encoder.state == EncodingState.PENDING
                    and encoder.encoder_id not in self._preparing
                    and encoder.encoder_id not in self._unstartable):
                return encoder
        return None

    def _check_idle(self):
        if not self._idle_waiters or not self.is_idle:
            return
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def _make_update_listener(self, encoder_id: str):
        def on_update():
            self.process_actions()
            self.emit(UPDATE_EVENT, encoder_id)
            self._check_idle()
        return on_update

    def _get(self, encoder_id: str) -> BaseEncoder:
        for encoder in self._queue:
            if encoder.encoder_id == encoder_id:
                return encoder
        raise KeyError(encoder_id)

    def _report(self, encoder: BaseEncoder) -> EncoderReport:
        report = encoder.report
        report.controller_id = self._controller_id
        return report

    # Per encoder type

    def _encoder_options(self) -> dict:
        return {}

    async def _create_encoder(self, input_file_path: Path) -> BaseEncoder:
        return await self.encoder_class.create(self._ffprobe_path, self._ffmpeg_path, input_file_path,
                                               **self._encoder_options())

    async def _start_encoder(self, encoder: BaseEncoder, output_file_path: str):
        raise NotImplementedError


class ProcessEncoderController(EncoderController):
    """Plain FFmpeg transcodes with the controller's arguments."""

    encoder_class = ProcessEncoder

    async def _start_encoder(self, encoder: ProcessEncoder, output_file_path: str):
        await encoder.start(self.ffmpeg_arguments, output_file_path)


class CompositeEncoderController(EncoderController):
    """Transcodes followed by a VMAF score of each output against its input."""

    encoder_class = CompositeEncoder

    def __init__(self, ffprobe_path: str, ffmpeg_path: str, ffmpeg_arguments: str = "",
                 output_subdirectory: Union[str, Path] = DEFAULT_OUTPUT_SUBDIRECTORY,
                 extension: str = DEFAULT_EXTENSION, concurrency: int = 1,
                 vmaf_model: str = DEFAULT_VMAF_MODEL, vmaf_threads: int = DEFAULT_VMAF_THREADS):
        super().__init__(ffprobe_path, ffmpeg_path, ffmpeg_arguments, output_subdirectory, extension, concurrency)
        self.vmaf_model = vmaf_model
        self.vmaf_threads = vmaf_threads

    def _encoder_options(self) -> dict:
        return {"vmaf_model": self.vmaf_model, "vmaf_threads": self.vmaf_threads}

    async def _start_encoder(self, encoder: CompositeEncoder, output_file_path: str):
        await encoder.start(self.ffmpeg_arguments, output_file_path)


class AdaptiveTargetEncoderController(EncoderController):
    """CRF searches for a target VMAF score, one per input file."""

    encoder_class = AdaptiveTargetEncoder

    def __init__(self, ffprobe_path: str, ffmpeg_path: str, ffmpeg_arguments: str = "",
                 output_subdirectory: Union[str, Path] = DEFAULT_OUTPUT_SUBDIRECTORY,
                 extension: str = DEFAULT_EXTENSION, concurrency: int = 1,
                 h265: bool = False, target_score: float = 95.0,
                 temp_directory: Optional[Union[str, Path]] = None,
                 vmaf_model: str = DEFAULT_VMAF_MODEL, vmaf_threads: int = DEFAULT_VMAF_THREADS,
                 keep_trial_files: bool = False, max_trials: Optional[int] = None):
        super().__init__(ffprobe_path, ffmpeg_path, ffmpeg_arguments, output_subdirectory, extension, concurrency)
        self.h265 = h265
        self.target_score = target_score
        self.temp_directory = str(temp_directory) if temp_directory else ""
        self.vmaf_model = vmaf_model
        self.vmaf_threads = vmaf_threads
        self.keep_trial_files = keep_trial_files
        self.max_trials = max_trials

    def _encoder_options(self) -> dict:
        return {
            "temp_directory": self.temp_directory,
            "vmaf_model": self.vmaf_model,
            "vmaf_threads": self.vmaf_threads,
            "keep_trial_files": self.keep_trial_files,
            "max_trials": self.max_trials,
        }

    async def _start_encoder(self, encoder: AdaptiveTargetEncoder, output_file_path: str):
        await encoder.start(self.ffmpeg_arguments, self.h265, self.target_score, output_file_path)
