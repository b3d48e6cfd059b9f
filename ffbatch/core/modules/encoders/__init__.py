from .adaptive_target_encoder import AdaptiveTargetEncoder, TrialSample
from .composite_encoder import CompositeEncoder
from .process_encoder import ProcessEncoder
from .quality_scorer import QualityScorer

__all__ = ["ProcessEncoder", "QualityScorer", "CompositeEncoder", "AdaptiveTargetEncoder", "TrialSample"]
