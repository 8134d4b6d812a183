"""
Product Match Engine - Main Orchestrator
========================================
Orchestrates the four-stage pipeline:
  Stage 1: Factor Scoring -> Stage 2: Match Composer ->
  Stage 3: Reasoning Collaborator -> Stage 4: AI Blend

Then persists results through a MatchStore, one pair at a time or in
chunks for batch runs. Nothing here raises during scoring: reasoning
failures fall back to the rule-based result, persistence failures are
logged and reported as None / skipped chunks.
"""

import time
from typing import Optional, List, Dict, Any, Callable
from datetime import datetime

from .models.schemas import (
    Product,
    Contact,
    MatchCalculation,
    MatchOutcome,
    MatchResult,
    BatchMatchResult,
    ReasoningEffort,
    SemanticAnalysis,
)
from .models.match_config import MatchConfig, ScoreWeights, create_default_match_config
from .stages.stage1_factors import FactorScoringStage
from .stages.stage2_composer import MatchComposerStage
from .stages.stage3_reasoning import ReasoningStage
from .stages.stage4_blend import AIBlendStage
from .store.match_store import MatchStore, InMemoryMatchStore, MatchStoreError
from .observability.logging import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


def _empty_stats() -> Dict[str, Any]:
    return {
        "total_calculated": 0,
        "ai_enhanced": 0,
        "ai_fallbacks": 0,
        "saved": 0,
        "persistence_failures": 0,
        "batches_run": 0,
        "enriched": 0,
        "enrichment_failures": 0,
    }


class ProductMatchingEngine:
    """
    Main engine scoring contacts against a product.
    """

    def __init__(
        self,
        config: Optional[MatchConfig] = None,
        weights: Optional[ScoreWeights] = None,
        store: Optional[MatchStore] = None,
        reasoning: Optional[ReasoningStage] = None,
        llm_api_key: Optional[str] = None,
        llm_provider: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the matching engine.

        Args:
            config: Match configuration (uses defaults if not provided)
            weights: Score weights, overriding config.weights
            store: Match store (in-memory if not provided)
            reasoning: Reasoning collaborator (built from LLM settings if not provided)
            llm_api_key: API key for the reasoning collaborator's LLM provider
            llm_provider: LLM provider ("openrouter", "openai" or "anthropic")
            clock: Timestamp source for calculated_at
        """
        self.config = (config or create_default_match_config()).model_copy(deep=True)
        if weights is not None:
            self.config.weights = ScoreWeights.model_validate(weights)
        self.weights = self.config.weights

        self.store = store if store is not None else InMemoryMatchStore()
        self.clock = clock or datetime.utcnow

        # Initialize stages
        self.stage1 = FactorScoringStage(self.weights)
        self.stage2 = MatchComposerStage(self.weights, self.stage1)
        self.stage3 = reasoning or ReasoningStage(
            api_key=llm_api_key,
            provider=llm_provider,
            group_size=self.config.batch.ai_group_size,
            group_delay_seconds=self.config.batch.ai_group_delay_seconds,
        )
        self.stage4 = AIBlendStage()

        self.stats = _empty_stats()

    # =========================================================================
    # Single-pair scoring
    # =========================================================================

    def calculate_match(self, product: Product, contact: Contact) -> MatchCalculation:
        """
        Rule-based match for one pair. Pure and deterministic.
        """
        self.stats["total_calculated"] += 1
        return self.stage2.process(product, contact)

    def calculate_ai_enhanced_match(
        self,
        product: Product,
        contact: Contact,
        effort: ReasoningEffort = ReasoningEffort.MEDIUM,
    ) -> MatchOutcome:
        """
        Rule-based match blended with a semantic analysis.

        Never raises on reasoning failures: the outcome is then a
        RULE_BASED_FALLBACK carrying the rule-based result unchanged.
        """
        effort = ReasoningEffort(effort)
        logger.info(
            "Starting AI-enhanced match calculation",
            product_id=product.id,
            contact_id=contact.id,
            reasoning_effort=effort.value,
        )

        calculation = self.calculate_match(product, contact)

        try:
            analysis = self.stage3.analyze_match(product, contact, effort)
        except Exception as e:
            self.stats["ai_fallbacks"] += 1
            logger.warning(
                "AI analysis unavailable, using rule-based match",
                product_id=product.id,
                contact_id=contact.id,
                error=str(e)[:200],
                error_type=type(e).__name__,
                recoverable=getattr(e, "recoverable", True),
            )
            return self.stage4.fallback(calculation, reason=str(e)[:200])

        self.stats["ai_enhanced"] += 1
        return self.stage4.blend(calculation, analysis, effort)

    def calculate_and_save_match(
        self,
        product: Product,
        contact: Contact,
        user_id: Optional[str] = None,
    ) -> Optional[MatchResult]:
        """Calculate a rule-based match and upsert it; None if the store fails"""
        calculation = self.calculate_match(product, contact)
        record = MatchResult.from_calculation(
            product.id, contact.id, calculation, self.clock(), user_id
        )
        return self._save(record)

    def calculate_and_save_ai_enhanced_match(
        self,
        product: Product,
        contact: Contact,
        user_id: Optional[str] = None,
        effort: ReasoningEffort = ReasoningEffort.MEDIUM,
    ) -> Optional[MatchResult]:
        """
        Calculate an AI-enhanced match and upsert it.

        Falls back to exactly what calculate_and_save_match would store when
        the reasoning collaborator fails; None if the store fails.
        """
        outcome = self.calculate_ai_enhanced_match(product, contact, effort)
        record = MatchResult.from_outcome(
            product.id, contact.id, outcome, self.clock(), user_id
        )
        return self._save(record)

    # =========================================================================
    # Batch scoring
    # =========================================================================

    def batch_calculate_matches(
        self,
        product: Product,
        contacts: List[Contact],
        user_id: Optional[str] = None,
        chunk_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchMatchResult:
        """
        Score many contacts against one product, persisting per chunk.

        Args:
            product: Product to match
            contacts: Contacts to score
            user_id: Owner stamped on every record
            chunk_size: Contacts per upsert call (config default if not provided)
            on_progress: Called with (completed, total) after every chunk

        Returns:
            BatchMatchResult holding only records from chunks that saved
        """
        chunk_size = self._resolve_chunk_size(chunk_size)

        def build(contact: Contact) -> MatchResult:
            calculation = self.calculate_match(product, contact)
            return MatchResult.from_calculation(
                product.id, contact.id, calculation, self.clock(), user_id
            )

        return self._run_chunks(product, contacts, chunk_size, build, on_progress)

    def batch_calculate_ai_enhanced_matches(
        self,
        product: Product,
        contacts: List[Contact],
        user_id: Optional[str] = None,
        effort: ReasoningEffort = ReasoningEffort.LOW,
        chunk_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_analysis_progress: Optional[ProgressCallback] = None,
    ) -> BatchMatchResult:
        """
        Batch scoring with a separate, up-front semantic analysis phase.

        The reasoning collaborator analyses every contact first; blending
        and chunked persistence then run locally. Contacts without an
        analysis (or every contact, if the analysis phase fails) are stored
        rule-based.
        """
        chunk_size = self._resolve_chunk_size(chunk_size)
        effort = ReasoningEffort(effort)

        logger.info(
            "Starting batch AI-enhanced matching",
            product_id=product.id,
            contact_count=len(contacts),
            reasoning_effort=effort.value,
        )

        analyses: Dict[str, SemanticAnalysis] = {}
        try:
            analyses = self.stage3.batch_analyze_matches(
                product, contacts, on_progress=on_analysis_progress, effort=effort
            )
        except Exception as e:
            logger.warning(
                "Batch AI analysis unavailable, using rule-based matches",
                product_id=product.id,
                error=str(e)[:200],
                error_type=type(e).__name__,
                recoverable=getattr(e, "recoverable", True),
            )

        def build(contact: Contact) -> MatchResult:
            calculation = self.calculate_match(product, contact)
            analysis = analyses.get(contact.id)
            if analysis is None:
                self.stats["ai_fallbacks"] += 1
                outcome = self.stage4.fallback(calculation, reason="No AI analysis")
            else:
                self.stats["ai_enhanced"] += 1
                outcome = self.stage4.blend(calculation, analysis, effort)
            return MatchResult.from_outcome(
                product.id, contact.id, outcome, self.clock(), user_id
            )

        result = self._run_chunks(product, contacts, chunk_size, build, on_progress)
        result.ai_enhanced = sum(1 for c in contacts if c.id in analyses)

        logger.info(
            "Batch AI-enhanced matching complete",
            product_id=product.id,
            total_matches=result.saved,
            ai_enhanced_count=result.ai_enhanced,
        )
        return result

    # =========================================================================
    # Enrichment
    # =========================================================================

    def enrich_match_with_web_research(
        self,
        product: Product,
        contact: Contact,
    ) -> Optional[MatchResult]:
        """
        Attach company research to an already-saved match.

        Stores {type: {data, sources, fetched_at}} in ai_enrichment_data and
        stamps ai_processed_at. Failures (no saved match, reasoning or store
        errors) are logged and return None.
        """
        logger.info(
            "Enriching match with web research",
            product_id=product.id,
            contact_id=contact.id,
        )

        try:
            record = self.store.get(product.id, contact.id)
            if record is None:
                raise MatchStoreError(f"No saved match for {product.id}/{contact.id}")

            enrichments = self.stage3.enrich_contact(product, contact)
            fetched_at = self.clock()
            record.ai_enrichment_data = {
                e.type: {
                    "data": e.data,
                    "sources": [s.model_dump() for s in e.sources],
                    "fetched_at": fetched_at.isoformat(),
                }
                for e in enrichments
            }
            record.ai_processed_at = fetched_at
            saved = self.store.upsert(record)
        except Exception as e:
            self.stats["enrichment_failures"] += 1
            logger.error(
                "Match enrichment failed",
                product_id=product.id,
                contact_id=contact.id,
                error=str(e)[:200],
                error_type=type(e).__name__,
                recoverable=getattr(e, "recoverable", True),
            )
            return None

        self.stats["enriched"] += 1
        logger.info(
            "Match enrichment complete",
            product_id=product.id,
            contact_id=contact.id,
            enrichment_types=list(record.ai_enrichment_data),
        )
        return saved

    # =========================================================================
    # Configuration & statistics
    # =========================================================================

    def update_weights(self, weights: ScoreWeights):
        """Replace the score weights and rebuild the scoring stages"""
        self.config.update(weights=ScoreWeights.model_validate(weights))
        self.weights = self.config.weights
        self.stage1 = FactorScoringStage(self.weights)
        self.stage2 = MatchComposerStage(self.weights, self.stage1)

    def get_stats(self) -> Dict[str, Any]:
        """Get engine statistics"""
        stats = self.stats.copy()
        ai_attempts = stats["ai_enhanced"] + stats["ai_fallbacks"]
        if ai_attempts > 0:
            stats["ai_fallback_rate"] = round(stats["ai_fallbacks"] / ai_attempts * 100, 1)
        return stats

    def reset_stats(self):
        """Reset engine statistics"""
        self.stats = _empty_stats()

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _resolve_chunk_size(self, chunk_size: Optional[int]) -> int:
        if chunk_size is None:
            chunk_size = self.config.batch.chunk_size
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
        return chunk_size

    def _save(self, record: MatchResult) -> Optional[MatchResult]:
        """Upsert one record, logging and returning None on failure"""
        try:
            saved = self.store.upsert(record)
        except Exception as e:
            self.stats["persistence_failures"] += 1
            logger.error(
                "Error saving match",
                product_id=record.product_id,
                contact_id=record.contact_id,
                error=str(e)[:200],
                error_type=type(e).__name__,
            )
            return None

        if saved is not None:
            self.stats["saved"] += 1
        return saved

    def _run_chunks(
        self,
        product: Product,
        contacts: List[Contact],
        chunk_size: int,
        build: Callable[[Contact], MatchResult],
        on_progress: Optional[ProgressCallback],
    ) -> BatchMatchResult:
        """Compute and persist contacts chunk by chunk"""
        start_time = time.time()
        self.stats["batches_run"] += 1

        total = len(contacts)
        saved: List[MatchResult] = []
        chunks = 0
        failed_chunks = 0

        for start in range(0, total, chunk_size):
            chunk = contacts[start:start + chunk_size]
            records = [build(contact) for contact in chunk]
            chunks += 1

            try:
                stored = self.store.upsert_many(records)
            except Exception as e:
                failed_chunks += 1
                self.stats["persistence_failures"] += 1
                logger.error(
                    "Error in batch save",
                    product_id=product.id,
                    chunk_index=chunks - 1,
                    chunk_size=len(records),
                    error=str(e)[:200],
                    error_type=type(e).__name__,
                )
            else:
                saved.extend(stored)
                self.stats["saved"] += len(stored)

            if on_progress:
                on_progress(min(start + chunk_size, total), total)

        total_time = (time.time() - start_time) * 1000

        return BatchMatchResult(
            product_id=product.id,
            processed=total,
            saved=len(saved),
            chunks=chunks,
            failed_chunks=failed_chunks,
            processing_time_ms=round(total_time, 2),
            results=saved,
        )


# =============================================================================
# Convenience Functions
# =============================================================================

def create_engine(
    weights: Optional[Dict[str, int]] = None,
    chunk_size: Optional[int] = None,
    store: Optional[MatchStore] = None,
    llm_api_key: Optional[str] = None,
) -> ProductMatchingEngine:
    """
    Factory function to create a matching engine with common settings.

    Args:
        weights: Per-factor weight overrides (merged onto defaults)
        chunk_size: Default batch chunk size
        store: Match store
        llm_api_key: API key for the reasoning collaborator
    """
    config = create_default_match_config(weights=weights, chunk_size=chunk_size)
    return ProductMatchingEngine(config=config, store=store, llm_api_key=llm_api_key)


def quick_match(product_data: Dict[str, Any], contact_data: Dict[str, Any]) -> MatchCalculation:
    """
    Quick rule-based match from plain dictionaries.
    """
    engine = ProductMatchingEngine()
    return engine.calculate_match(Product(**product_data), Contact(**contact_data))
