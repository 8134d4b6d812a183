"""
Stage 2: Match Composer
=======================
Combines the five factor scores into a single rule-based match.

Outputs:
- match_score: exact sum of the factor scores
- match_reasons: all factor reasons, highest contribution first
- recommended_approach, why_buy_reasons, objections_anticipated

Pure and deterministic: no clock, no randomness.
"""

from typing import Optional, List, Dict

from ..models.schemas import (
    Product,
    Contact,
    FactorScore,
    MatchCalculation,
    MatchReason,
    MatchTier,
    PricingModel,
)
from ..models.match_config import ScoreWeights
from ..config.settings import (
    EXECUTIVE_KEYWORDS,
    SMALL_COMPANY_KEYWORDS,
    LARGE_COMPANY_KEYWORDS,
    MATCH_TIER_THRESHOLDS,
    MATCH_TIER_LABELS,
    RECOMMENDED_APPROACHES,
    OBJECTION_LIBRARY,
)
from .stage1_factors import FactorScoringStage, FACTOR_ORDER, map_company_size

MAX_WHY_BUY = 5
MAX_OBJECTIONS = 5


def get_match_tier(score: int) -> MatchTier:
    """Map a match score to its fit tier"""
    if score >= MATCH_TIER_THRESHOLDS["high"]:
        return MatchTier.HIGH
    if score >= MATCH_TIER_THRESHOLDS["medium"]:
        return MatchTier.MEDIUM
    return MatchTier.LOW


def get_match_tier_label(tier: MatchTier) -> str:
    return MATCH_TIER_LABELS[tier.value]


def sort_reasons(reasons: List[MatchReason]) -> List[MatchReason]:
    """Highest contribution first; ties keep their incoming order"""
    return sorted(reasons, key=lambda r: r.score_contribution, reverse=True)


class MatchComposerStage:
    """
    Stage 2: Build a MatchCalculation from factor scores.
    """

    def __init__(
        self,
        weights: Optional[ScoreWeights] = None,
        factor_stage: Optional[FactorScoringStage] = None,
    ):
        self.weights = weights or ScoreWeights()
        self.factor_stage = factor_stage or FactorScoringStage(self.weights)

    def process(self, product: Product, contact: Contact) -> MatchCalculation:
        """Score all factors and compose the result"""
        factors = self.factor_stage.process(product, contact)
        return self.compose(product, contact, factors)

    def compose(
        self,
        product: Product,
        contact: Contact,
        factors: Dict[str, FactorScore],
    ) -> MatchCalculation:
        """
        Compose a match from precomputed factor scores.

        Args:
            product: Product being matched
            contact: Contact being matched
            factors: Factor name -> FactorScore

        Returns:
            MatchCalculation (no timestamp, no identifiers)
        """
        match_score = sum(factors[name].score for name in FACTOR_ORDER)

        all_reasons = []
        for name in FACTOR_ORDER:
            all_reasons.extend(factors[name].reasons)

        return MatchCalculation(
            match_score=match_score,
            match_reasons=sort_reasons(all_reasons),
            industry_score=factors["industry"].score,
            company_size_score=factors["company_size"].score,
            title_score=factors["title"].score,
            tags_score=factors["tags"].score,
            status_score=factors["status"].score,
            recommended_approach=self.generate_recommended_approach(contact, match_score),
            why_buy_reasons=self.generate_why_buy_reasons(product, contact),
            objections_anticipated=self.generate_objections(product, contact),
        )

    # =========================================================================
    # Narrative generation
    # =========================================================================

    def generate_recommended_approach(self, contact: Contact, match_score: int) -> str:
        """Pick an outreach approach from the match tier and seniority"""
        tier = get_match_tier(match_score)

        if tier == MatchTier.HIGH:
            title = (contact.title or "").lower()
            if any(k in title for k in EXECUTIVE_KEYWORDS):
                return RECOMMENDED_APPROACHES["high_executive"]
            return RECOMMENDED_APPROACHES["high_peer"]

        if tier == MatchTier.MEDIUM:
            return RECOMMENDED_APPROACHES["medium"]

        return RECOMMENDED_APPROACHES["low"]

    def generate_why_buy_reasons(self, product: Product, contact: Contact) -> List[str]:
        """Reasons the contact should care, in a fixed order"""
        reasons = []
        industry = contact.industry or "their industry"
        company = contact.company or "their company"

        pain_points = [p for p in product.pain_points_addressed if p]
        if pain_points:
            reasons.append(
                f"Addresses common {industry} challenges: {', '.join(pain_points[:2])}"
            )

        advantages = [a for a in product.competitive_advantages if a]
        if advantages:
            reasons.append(f"Unique advantage: {advantages[0]}")

        if product.value_propositions:
            vp = product.value_propositions[0]
            reasons.append(f"{vp.title}: {vp.description}" if vp.description else vp.title)

        use_cases = [u for u in product.use_cases if u]
        if use_cases:
            reasons.append(f"Proven use case: {use_cases[0]}")

        if product.target_company_sizes:
            sizes = "/".join(s.value for s in product.target_company_sizes)
            reasons.append(f"Designed for {sizes} companies like {company}")

        return reasons[:MAX_WHY_BUY]

    def generate_objections(self, product: Product, contact: Contact) -> List[str]:
        """Objections to prepare for, most specific first"""
        objections = []
        label = (contact.company_size or "").lower()
        tiers = map_company_size(label)

        if "startup" in tiers or any(k in label for k in SMALL_COMPANY_KEYWORDS):
            objections.append(OBJECTION_LIBRARY["budget"])

        if "enterprise" in tiers or any(k in label for k in LARGE_COMPANY_KEYWORDS):
            objections.append(OBJECTION_LIBRARY["integration"])
            objections.append(OBJECTION_LIBRARY["procurement"])

        if product.pricing_model == PricingModel.SUBSCRIPTION:
            objections.append(OBJECTION_LIBRARY["ongoing_cost"])

        objections.append(OBJECTION_LIBRARY["current_solution"])
        objections.append(OBJECTION_LIBRARY["implementation"])

        return objections[:MAX_OBJECTIONS]
