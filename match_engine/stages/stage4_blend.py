"""
Stage 4: AI Blend
=================
Blends the rule-based score with the reasoning collaborator's semantic score.

Effort controls how much the semantic score counts:
  high -> 60% AI, medium -> 50% AI, low/none -> 30% AI
Talking points become extra reasons worth 15/10/5 by relevance.
"""

import math
from typing import Optional, Tuple

from ..models.schemas import (
    MatchCalculation,
    MatchOutcome,
    MatchOutcomeStatus,
    MatchReason,
    ReasoningEffort,
    SemanticAnalysis,
)
from ..config.settings import AI_WEIGHT_BY_EFFORT, TALKING_POINT_CONTRIBUTION
from .stage2_composer import sort_reasons


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def blend_weights(effort: ReasoningEffort) -> Tuple[float, float]:
    """Return (rule_weight, ai_weight) for an effort level"""
    ai_weight = AI_WEIGHT_BY_EFFORT[ReasoningEffort(effort).value]
    return 1 - ai_weight, ai_weight


class AIBlendStage:
    """
    Stage 4: Turn a rule-based calculation into a MatchOutcome.
    """

    def blend(
        self,
        calculation: MatchCalculation,
        analysis: SemanticAnalysis,
        effort: ReasoningEffort = ReasoningEffort.MEDIUM,
    ) -> MatchOutcome:
        """
        Blend a semantic analysis into the rule-based result.

        Args:
            calculation: Rule-based result from Stage 2
            analysis: Semantic analysis from Stage 3
            effort: Reasoning effort the analysis was requested with

        Returns:
            AI_ENHANCED MatchOutcome
        """
        rule_weight, ai_weight = blend_weights(effort)
        combined = round_half_up(
            calculation.match_score * rule_weight + analysis.semantic_score * ai_weight
        )

        ai_reasons = [
            MatchReason(
                category="AI Insight",
                reason=tp.content,
                score_contribution=TALKING_POINT_CONTRIBUTION[tp.relevance.value],
            )
            for tp in analysis.talking_points
        ]

        return MatchOutcome(
            status=MatchOutcomeStatus.AI_ENHANCED,
            calculation=calculation,
            rule_based_score=calculation.match_score,
            ai_score=analysis.semantic_score,
            combined_score=combined,
            match_reasons=sort_reasons(list(calculation.match_reasons) + ai_reasons),
            analysis=analysis,
        )

    def fallback(
        self, calculation: MatchCalculation, reason: Optional[str] = None
    ) -> MatchOutcome:
        """Wrap a rule-based calculation unchanged"""
        return MatchOutcome(
            status=MatchOutcomeStatus.RULE_BASED_FALLBACK,
            calculation=calculation,
            rule_based_score=calculation.match_score,
            combined_score=calculation.match_score,
            match_reasons=list(calculation.match_reasons),
            fallback_reason=reason,
        )
