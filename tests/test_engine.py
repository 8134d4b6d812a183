import math

import pytest
from structlog.testing import capture_logs

from conftest import (
    FIXED_NOW,
    FailingReasoning,
    FakeReasoning,
    RecordingStore,
    build_contact,
)
from match_engine.engine import ProductMatchingEngine, create_engine, quick_match
from match_engine.models.match_config import create_default_match_config
from match_engine.models.schemas import (
    MatchOutcomeStatus,
    SemanticAnalysis,
    TalkingPoint,
)
from match_engine.stages.stage3_reasoning import ReasoningServiceError


def _contacts(n):
    return [build_contact(id=f"c-{i}") for i in range(n)]


# =============================================================================
# Single-pair persistence
# =============================================================================

def test_calculate_and_save_match_stamps_and_stores(make_engine, store, product, contact):
    engine = make_engine()

    saved = engine.calculate_and_save_match(product, contact, user_id="user-1")

    assert saved is not None
    assert saved.key == ("prod-1", "contact-1")
    assert saved.user_id == "user-1"
    assert saved.calculated_at == FIXED_NOW
    assert saved.match_score == 100
    assert saved.ai_processed_at is None
    assert store.get("prod-1", "contact-1") == saved


def test_repeated_saves_overwrite_same_key(make_engine, store, product, contact):
    engine = make_engine()

    engine.calculate_and_save_match(product, contact)
    engine.calculate_and_save_match(product, build_contact(status="closed-lost"))

    assert len(store) == 1
    assert store.get("prod-1", "contact-1").status_score == 0


def test_save_failure_returns_none_and_logs(make_engine, product, contact):
    engine = make_engine(store=RecordingStore(fail_single=True))

    with capture_logs() as logs:
        saved = engine.calculate_and_save_match(product, contact)

    assert saved is None
    assert any(
        log["event"] == "Error saving match" and log["log_level"] == "error" for log in logs
    )
    assert engine.get_stats()["persistence_failures"] == 1


# =============================================================================
# AI-enhanced matching
# =============================================================================

def test_ai_enhanced_match_blends_scores(make_engine, product, contact):
    analysis = SemanticAnalysis(
        semantic_score=70,
        ai_confidence=88,
        ai_reasoning="Strong sales-leadership fit",
        talking_points=[TalkingPoint(content="Mention their forecasting push", relevance="high")],
        predicted_conversion=40,
        optimal_outreach_time="Tuesday morning",
    )
    reasoning = FakeReasoning(analysis)
    engine = make_engine(reasoning=reasoning)

    outcome = engine.calculate_ai_enhanced_match(product, contact, effort="high")

    assert outcome.status == MatchOutcomeStatus.AI_ENHANCED
    assert outcome.rule_based_score == 100
    assert outcome.combined_score == 82
    assert any(r.category == "AI Insight" for r in outcome.match_reasons)
    assert reasoning.calls[0][0:2] == ("prod-1", "contact-1")


def test_ai_enhanced_save_includes_ai_fields(make_engine, product, contact):
    analysis = SemanticAnalysis(
        semantic_score=40,
        ai_confidence=77,
        ai_reasoning="Adjacent market",
        predicted_conversion=30,
        optimal_outreach_time="Thursday",
    )
    engine = make_engine(reasoning=FakeReasoning(analysis))

    saved = engine.calculate_and_save_ai_enhanced_match(product, contact, effort="medium")

    assert saved.match_score == 70
    assert saved.industry_score == 30
    assert saved.ai_confidence == 77
    assert saved.ai_reasoning == "Adjacent market"
    assert saved.predicted_conversion == 30
    assert saved.optimal_outreach_time == "Thursday"
    assert saved.ai_processed_at == FIXED_NOW


@pytest.mark.parametrize(
    "error",
    [None, ConnectionError("network unreachable"), RuntimeError("boom")],
)
def test_reasoning_failure_falls_back_to_rule_based(make_engine, product, contact, error):
    engine = make_engine(reasoning=FailingReasoning(error))

    with capture_logs() as logs:
        outcome = engine.calculate_ai_enhanced_match(product, contact)

    rule_based = engine.calculate_match(product, contact)
    assert outcome.is_fallback
    assert outcome.calculation == rule_based
    assert outcome.match_score == rule_based.match_score
    assert outcome.match_reasons == rule_based.match_reasons
    assert any(log["log_level"] == "warning" for log in logs)


def test_fallback_log_reports_whether_error_is_recoverable(make_engine, product, contact):
    error = ReasoningServiceError("no LLM client configured", recoverable=False)
    engine = make_engine(reasoning=FailingReasoning(error))

    with capture_logs() as logs:
        engine.calculate_ai_enhanced_match(product, contact)

    warning = next(log for log in logs if log["log_level"] == "warning")
    assert warning["recoverable"] is False
    assert warning["error_type"] == "ReasoningServiceError"


def test_failed_ai_save_matches_plain_save(product, contact):
    plain_engine = ProductMatchingEngine(
        store=RecordingStore(), reasoning=FailingReasoning(), clock=lambda: FIXED_NOW
    )
    ai_engine = ProductMatchingEngine(
        store=RecordingStore(), reasoning=FailingReasoning(), clock=lambda: FIXED_NOW
    )

    plain = plain_engine.calculate_and_save_match(product, contact)
    enhanced = ai_engine.calculate_and_save_ai_enhanced_match(product, contact)

    assert enhanced.model_dump() == plain.model_dump()
    assert ai_engine.get_stats()["ai_fallbacks"] == 1


# =============================================================================
# Batch runner
# =============================================================================

def test_batch_of_120_uses_three_chunks(make_engine, store, product):
    engine = make_engine()
    progress = []

    result = engine.batch_calculate_matches(
        product,
        _contacts(120),
        chunk_size=50,
        on_progress=lambda done, total: progress.append((done, total)),
    )

    assert store.batch_calls == [50, 50, 20]
    assert progress == [(50, 120), (100, 120), (120, 120)]
    assert result.processed == 120
    assert result.saved == 120
    assert result.chunks == 3
    assert result.failed_chunks == 0


@pytest.mark.parametrize("n,chunk_size", [(0, 50), (1, 50), (50, 50), (51, 50), (7, 3)])
def test_batch_issues_ceil_n_over_c_persistence_calls(make_engine, store, product, n, chunk_size):
    engine = make_engine()

    engine.batch_calculate_matches(product, _contacts(n), chunk_size=chunk_size)

    assert len(store.batch_calls) == math.ceil(n / chunk_size)


def test_failed_chunk_does_not_abort_batch(product):
    store = RecordingStore(fail_calls={1})
    engine = ProductMatchingEngine(store=store, reasoning=FailingReasoning())
    progress = []

    with capture_logs() as logs:
        result = engine.batch_calculate_matches(
            product,
            _contacts(120),
            chunk_size=50,
            on_progress=lambda done, total: progress.append(done),
        )

    assert progress == [50, 100, 120]
    assert result.saved == 70
    assert result.failed_chunks == 1
    assert len(store) == 70
    assert [log["chunk_index"] for log in logs if log["event"] == "Error in batch save"] == [1]


def test_batch_uses_configured_chunk_size(store, product):
    engine = create_engine(chunk_size=10, store=store)

    engine.batch_calculate_matches(product, _contacts(25))

    assert store.batch_calls == [10, 10, 5]


def test_batch_rejects_non_positive_chunk_size(make_engine, store, product):
    engine = make_engine()

    with pytest.raises(ValueError):
        engine.batch_calculate_matches(product, _contacts(3), chunk_size=0)
    assert store.batch_calls == []


def test_ai_batch_blends_contacts_with_analysis(make_engine, store, product):
    reasoning = FakeReasoning(SemanticAnalysis(semantic_score=40), batch_missing={"c-2"})
    engine = make_engine(reasoning=reasoning)
    analysis_progress = []

    result = engine.batch_calculate_ai_enhanced_matches(
        product,
        _contacts(5),
        effort="medium",
        chunk_size=2,
        on_analysis_progress=lambda done, total: analysis_progress.append((done, total)),
    )

    assert store.batch_calls == [2, 2, 1]
    assert analysis_progress == [(5, 5)]
    assert result.ai_enhanced == 4
    assert store.get("prod-1", "c-0").match_score == 70
    assert store.get("prod-1", "c-0").ai_processed_at is not None
    missing = store.get("prod-1", "c-2")
    assert missing.match_score == 100
    assert missing.ai_processed_at is None


def test_ai_batch_survives_analysis_failure(make_engine, store, product):
    engine = make_engine(reasoning=FailingReasoning())

    result = engine.batch_calculate_ai_enhanced_matches(product, _contacts(3), chunk_size=50)

    assert result.saved == 3
    assert result.ai_enhanced == 0
    assert all(r.ai_processed_at is None for r in result.results)


# =============================================================================
# Configuration & helpers
# =============================================================================

def test_update_weights_rebuilds_scoring(make_engine, product, contact):
    engine = make_engine()

    engine.update_weights({"industry": 50, "company_size": 0, "title": 0, "tags": 0, "status": 0})

    assert engine.calculate_match(product, contact).match_score == 50
    assert engine.weights.total == 50


def test_stats_track_fallback_rate(make_engine, product, contact):
    engine = make_engine()

    engine.calculate_ai_enhanced_match(product, contact)
    stats = engine.get_stats()

    assert stats["ai_fallbacks"] == 1
    assert stats["ai_fallback_rate"] == 100.0

    engine.reset_stats()
    assert engine.get_stats()["ai_fallbacks"] == 0


def test_quick_match_from_dicts():
    result = quick_match(
        {"id": "p", "target_industries": ["Healthcare"]},
        {"id": "c", "industry": "Healthcare IT"},
    )

    assert result.industry_score == 30


def test_engines_sharing_a_config_keep_their_own_weights(product, contact):
    shared = create_default_match_config()

    first = ProductMatchingEngine(
        config=shared, weights={"industry": 50}, reasoning=FailingReasoning()
    )
    second = ProductMatchingEngine(
        config=shared, weights={"industry": 0}, reasoning=FailingReasoning()
    )

    assert first.config.weights.industry == 50
    assert first.weights.industry == 50
    assert second.config.weights.industry == 0
    assert shared.weights.industry == 30
    assert first.calculate_match(product, contact).industry_score == 50


def test_update_weights_leaves_callers_config_alone():
    shared = create_default_match_config()
    engine = ProductMatchingEngine(config=shared, reasoning=FailingReasoning())

    engine.update_weights({"industry": 5})

    assert engine.config.weights.industry == 5
    assert shared.weights.industry == 30


# =============================================================================
# Enrichment
# =============================================================================

def test_enrich_saved_match(make_engine, store, product, contact):
    reasoning = FakeReasoning()
    engine = make_engine(reasoning=reasoning)
    engine.calculate_and_save_match(product, contact)

    enriched = engine.enrich_match_with_web_research(product, contact)

    assert enriched is not None
    stored = store.get("prod-1", "contact-1")
    assert stored.ai_processed_at == FIXED_NOW
    assert stored.match_score == 100
    assert stored.ai_enrichment_data == {
        "company_news": {
            "data": {"summary": "Acme opened a Denver office."},
            "sources": [{"url": "https://acme.com/news", "title": "", "domain": "acme.com"}],
            "fetched_at": FIXED_NOW.isoformat(),
        }
    }
    assert engine.get_stats()["enriched"] == 1


def test_enrichment_failure_is_logged_and_leaves_match_unchanged(make_engine, store, product, contact):
    engine = make_engine()
    engine.calculate_and_save_match(product, contact)

    with capture_logs() as logs:
        enriched = engine.enrich_match_with_web_research(product, contact)

    assert enriched is None
    stored = store.get("prod-1", "contact-1")
    assert stored.ai_enrichment_data == {}
    assert stored.ai_processed_at is None
    error = next(log for log in logs if log["event"] == "Match enrichment failed")
    assert error["error_type"] == "ReasoningServiceError"
    assert engine.get_stats()["enrichment_failures"] == 1


def test_enrichment_needs_a_saved_match(make_engine, store, product, contact):
    reasoning = FakeReasoning()
    engine = make_engine(reasoning=reasoning)

    with capture_logs() as logs:
        enriched = engine.enrich_match_with_web_research(product, contact)

    assert enriched is None
    assert len(store) == 0
    assert reasoning.calls == []
    error = next(log for log in logs if log["event"] == "Match enrichment failed")
    assert error["error_type"] == "MatchStoreError"
