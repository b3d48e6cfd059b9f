"""
Modules used by ffbatch:

- encoders: observable encoder entities (transcode, score, target search)
- processing: controllers that dispatch encoders under a concurrency cap
- analysis: FFmpeg/FFprobe command builders and output parsers
- system: subprocess, filesystem and event helpers
"""

from .encoders.state import EncodingState, EncoderPhase, SearchStage
from .exceptions import FFBatchError, InvalidStateError, ProbeError
from .processing.dispatcher import (
    AdaptiveTargetEncoderController,
    CompositeEncoderController,
    EncoderController,
    ProcessEncoderController,
)
from .processing.registry import ControllerRegistry

__all__ = [
    "EncodingState",
    "EncoderPhase",
    "SearchStage",
    "FFBatchError",
    "InvalidStateError",
    "ProbeError",
    "EncoderController",
    "ProcessEncoderController",
    "CompositeEncoderController",
    "AdaptiveTargetEncoderController",
    "ControllerRegistry",
]
