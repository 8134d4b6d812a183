# Matching stages module
from .stage1_factors import FactorScoringStage
from .stage2_composer import MatchComposerStage
from .stage3_reasoning import ReasoningStage, ReasoningServiceError
from .stage4_blend import AIBlendStage
