"""
Stage 1: Factor Scoring
=======================
Five independent scorers, each bounded by its configured weight.

Factors:
- Industry: target industry overlap
- Company Size: free-form size label mapped to canonical tiers
- Title/Role: target titles (70%) and departments (30%)
- Tags: contact tags against product keywords
- Status: pipeline status qualification level

Shared policy: open targeting earns the full weight, missing contact data
earns 30% (Tags and Status use a 50% neutral score instead). Partial scores
are always floored, using integer arithmetic.
"""

from typing import Optional, List, Dict

from ..models.schemas import (
    Product,
    Contact,
    FactorScore,
    MatchReason,
)
from ..models.match_config import ScoreWeights
from ..config.settings import (
    COMPANY_SIZE_MAPPING,
    QUALIFIED_STATUSES,
    SEMI_QUALIFIED_STATUSES,
)

FACTOR_ORDER = ["industry", "company_size", "title", "tags", "status"]


def _tenths(weight: int, tenths: int) -> int:
    """floor(weight * tenths / 10)"""
    return weight * tenths // 10


def _lower_list(values: List[str]) -> List[str]:
    return [v.strip().lower() for v in values if v and v.strip()]


def _matches_either_way(value: str, target: str) -> bool:
    """Case-folded bidirectional substring match; both sides must be non-empty"""
    if not value or not target:
        return False
    return target in value or value in target


def map_company_size(label: Optional[str]) -> List[str]:
    """Map a free-form size label to canonical tiers ([] when unknown)"""
    if not label:
        return []
    return list(COMPANY_SIZE_MAPPING.get(label.strip().lower(), []))


class FactorScoringStage:
    """
    Stage 1: Score a contact against a product on five factors.
    """

    def __init__(self, weights: Optional[ScoreWeights] = None):
        self.weights = weights or ScoreWeights()

    def process(self, product: Product, contact: Contact) -> Dict[str, FactorScore]:
        """
        Run all five scorers.

        Returns:
            Factor name -> FactorScore, in factor precedence order
        """
        return {
            "industry": self.score_industry(product, contact),
            "company_size": self.score_company_size(product, contact),
            "title": self.score_title(product, contact),
            "tags": self.score_tags(product, contact),
            "status": self.score_status(product, contact),
        }

    # =========================================================================
    # Factor scorers
    # =========================================================================

    def score_industry(self, product: Product, contact: Contact) -> FactorScore:
        """Score industry match"""
        max_score = self.weights.industry
        targets = [t for t in product.target_industries if t and t.strip()]

        if not targets:
            return self._result("industry", "Industry", max_score, max_score,
                                "No industry targeting specified - all industries considered a fit")

        if not contact.industry:
            return self._result("industry", "Industry", _tenths(max_score, 3), max_score,
                                "Contact industry unknown - partial score applied")

        contact_industry = contact.industry.strip().lower()
        for target in targets:
            if _matches_either_way(contact_industry, target.strip().lower()):
                return self._result("industry", "Industry", max_score, max_score,
                                    f"Works in {target} - your primary target industry")

        return self._result("industry", "Industry", 0, max_score,
                            f"{contact.industry} industry not in your target list")

    def score_company_size(self, product: Product, contact: Contact) -> FactorScore:
        """Score company size fit"""
        max_score = self.weights.company_size
        targets = [t.value for t in product.target_company_sizes]

        if not targets:
            return self._result("company_size", "Company Size", max_score, max_score,
                                "No company size targeting specified - all sizes considered a fit")

        if not contact.company_size:
            return self._result("company_size", "Company Size", _tenths(max_score, 3), max_score,
                                "Company size unknown - partial score applied")

        label = contact.company_size.strip().lower()
        mapped = map_company_size(label)
        for target in targets:
            if target in mapped:
                return self._result("company_size", "Company Size", max_score, max_score,
                                    f"Company is {label} - matches your {target} target")

        return self._result("company_size", "Company Size", 0, max_score,
                            f"Company size ({label}) outside your target range")

    def score_title(self, product: Product, contact: Contact) -> FactorScore:
        """Score title and department fit"""
        max_score = self.weights.title
        target_titles = _lower_list(product.target_titles)
        target_depts = _lower_list(product.target_departments)

        if not target_titles and not target_depts:
            return self._result("title", "Title/Role", max_score, max_score,
                                "No title targeting specified - all roles considered a fit")

        title = (contact.title or "").strip().lower()
        department = (contact.department or "").strip().lower()

        if not title and not department:
            return self._result("title", "Title/Role", _tenths(max_score, 3), max_score,
                                "Contact role unknown - partial score applied")

        reasons = []
        matched_title = next(
            (t for t in target_titles if _matches_either_way(title, t)), None
        )
        matched_dept = next(
            (d for d in target_depts
             if _matches_either_way(department, d) or (title and d in title)),
            None,
        )

        if matched_title:
            reasons.append(MatchReason(
                category="Title",
                reason=f'{contact.title} matches target title "{matched_title}"',
                score_contribution=_tenths(max_score, 7),
            ))

        if matched_dept:
            reasons.append(MatchReason(
                category="Department",
                reason=f"Works in {matched_dept} department - key decision area",
                score_contribution=_tenths(max_score, 3),
            ))

        if not reasons:
            return self._result("title", "Title/Role", 0, max_score,
                                f'Role "{contact.title or contact.department}" not in your target list')

        # Floored from the combined tenths, so the score can exceed the sum of
        # the reason contributions (25 vs 17 + 7).
        tenths = (7 if matched_title else 0) + (3 if matched_dept else 0)
        score = min(max_score, _tenths(max_score, tenths))
        return FactorScore(factor="title", score=score, max_score=max_score, reasons=reasons)

    def score_tags(self, product: Product, contact: Contact) -> FactorScore:
        """Score contact tags against product keywords"""
        max_score = self.weights.tags
        tags = [t for t in contact.tags if t and t.strip()]

        if not tags:
            return self._result("tags", "Tags", _tenths(max_score, 5), max_score,
                                "No tags on contact - neutral score")

        keywords = _lower_list(
            product.features
            + product.pain_points_addressed
            + product.use_cases
            + [product.category or ""]
        )

        matched = [
            tag for tag in tags
            if any(_matches_either_way(tag.strip().lower(), kw) for kw in keywords)
        ]

        if not matched:
            return self._result("tags", "Tags", _tenths(max_score, 3), max_score,
                                "Contact tags do not strongly align with product keywords")

        # floor(k/n * W * 1.5)
        score = min(max_score, (len(matched) * max_score * 3) // (len(tags) * 2))
        return self._result("tags", "Tags", score, max_score,
                            f'Tags "{", ".join(matched)}" align with your product focus')

    def score_status(self, product: Product, contact: Contact) -> FactorScore:
        """Score pipeline status qualification"""
        max_score = self.weights.status

        if not contact.status:
            return self._result("status", "Status", _tenths(max_score, 5), max_score,
                                "Contact status unknown - neutral score")

        status = contact.status.strip().lower()

        if any(s in status for s in QUALIFIED_STATUSES):
            return self._result("status", "Status", max_score, max_score,
                                f'Contact is "{contact.status}" - high qualification level')

        if any(s in status for s in SEMI_QUALIFIED_STATUSES):
            return self._result("status", "Status", _tenths(max_score, 6), max_score,
                                f'Contact is "{contact.status}" - moderate qualification')

        return self._result("status", "Status", 0, max_score,
                            f'Contact status "{contact.status}" indicates low readiness')

    # =========================================================================
    # Helpers
    # =========================================================================

    def _result(
        self, factor: str, category: str, score: int, max_score: int, reason: str
    ) -> FactorScore:
        return FactorScore(
            factor=factor,
            score=score,
            max_score=max_score,
            reasons=[MatchReason(category=category, reason=reason, score_contribution=score)],
        )
