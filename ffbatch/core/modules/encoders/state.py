"""
Lifecycle enums and report structures shared by every encoder type.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional


class EncodingState(Enum):
    """Pending -> Encoding -> {Success, Error}. Pending is re-entered only through reset()."""
    PENDING = "Pending"
    ENCODING = "Encoding"
    SUCCESS = "Success"
    ERROR = "Error"

    @property
    def is_terminal(self) -> bool:
        return self in (EncodingState.SUCCESS, EncodingState.ERROR)


class EncoderPhase(Enum):
    """Which child of an encode-and-score pipeline is doing the work."""
    ENCODING = "Encoding"
    SCORING = "Scoring"
    DONE = "Done"


class SearchStage(Enum):
    """
    Stages of the adaptive target search.

    - VALIDATE_UPPER_BOUND: encode at the lowest quality parameter (best quality)
    - VALIDATE_LOWER_BOUND: encode at the highest quality parameter (worst quality)
    - NARROW_DOWN: bisect until about four parameter values remain
    - ITERATE_SUBSET: encode every remaining value in the narrowed band
    - LINEAR_WALK: step one value at a time towards the target
    """
    VALIDATE_UPPER_BOUND = "ValidateUpperBound"
    VALIDATE_LOWER_BOUND = "ValidateLowerBound"
    NARROW_DOWN = "NarrowDown"
    ITERATE_SUBSET = "IterateSubset"
    LINEAR_WALK = "LinearWalk"


@dataclass
class EncoderReport:
    """Snapshot of one encoder for the presentation layer."""
    encoder_id: str
    encoding_state: EncodingState
    input_file_path: str
    file_size: int
    duration: float
    current_duration: float
    controller_id: Optional[str] = None
    encoding_phase: Optional[EncoderPhase] = None
    score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data


@dataclass
class AdaptiveTargetEncoderReport(EncoderReport):
    low: int = 0
    high: int = 0
    current_parameter: int = 0
    stage: Optional[SearchStage] = None
