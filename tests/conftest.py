from datetime import datetime

import pytest

from match_engine.engine import ProductMatchingEngine
from match_engine.models.schemas import (
    Contact,
    EnrichmentResult,
    EnrichmentSource,
    Product,
    SemanticAnalysis,
)
from match_engine.stages.stage3_reasoning import ReasoningServiceError
from match_engine.store.match_store import InMemoryMatchStore, MatchStoreError

FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0)


def build_product(**overrides):
    data = {
        "id": "prod-1",
        "name": "PipelinePro",
        "category": "SaaS",
        "pricing_model": "subscription",
        "features": ["forecasting", "email sequences"],
        "target_industries": ["SaaS", "Fintech"],
        "target_company_sizes": ["smb", "mid-market"],
        "target_titles": ["VP", "Director"],
        "target_departments": ["Sales"],
        "value_propositions": [
            {"title": "Faster ramp", "description": "New reps productive in 30 days"}
        ],
        "pain_points_addressed": ["manual reporting", "missed follow-ups", "bad data"],
        "competitive_advantages": ["Native CRM sync", "Flat pricing"],
        "use_cases": ["pipeline reviews"],
    }
    data.update(overrides)
    return Product(**data)


def build_contact(**overrides):
    data = {
        "id": "contact-1",
        "name": "Sam Rivera",
        "company": "Acme",
        "industry": "SaaS",
        "company_size": "51-200",
        "title": "VP of Sales",
        "department": "Sales",
        "status": "warm",
        "tags": ["forecasting"],
    }
    data.update(overrides)
    return Contact(**data)


class FakeReasoning:
    """Reasoning collaborator returning canned analyses"""

    def __init__(self, analysis=None, batch_missing=(), enrichments=None):
        self.analysis = analysis or SemanticAnalysis(semantic_score=70)
        self.enrichments = enrichments if enrichments is not None else [
            EnrichmentResult(
                type="company_news",
                data={"summary": "Acme opened a Denver office."},
                sources=[EnrichmentSource(url="https://acme.com/news", domain="acme.com")],
                expires_at=FIXED_NOW,
            )
        ]
        self.batch_missing = set(batch_missing)
        self.calls = []
        self.available = True

    def analyze_match(self, product, contact, effort="high"):
        self.calls.append((product.id, contact.id, effort))
        return self.analysis

    def batch_analyze_matches(self, product, contacts, on_progress=None, effort="medium"):
        results = {
            c.id: self.analysis for c in contacts if c.id not in self.batch_missing
        }
        if on_progress:
            on_progress(len(contacts), len(contacts))
        return results

    def enrich_contact(self, product, contact):
        self.calls.append((product.id, contact.id, "enrich"))
        return self.enrichments


class FailingReasoning:
    """Reasoning collaborator that always errors"""

    available = True

    def __init__(self, error=None):
        self.error = error or ReasoningServiceError("connection reset by peer")

    def analyze_match(self, product, contact, effort="high"):
        raise self.error

    def batch_analyze_matches(self, product, contacts, on_progress=None, effort="medium"):
        raise self.error

    def enrich_contact(self, product, contact):
        raise self.error


class RecordingStore(InMemoryMatchStore):
    """In-memory store recording upsert_many calls, failing selected ones"""

    def __init__(self, fail_calls=(), fail_single=False):
        super().__init__()
        self.fail_calls = set(fail_calls)
        self.fail_single = fail_single
        self.batch_calls = []

    def upsert(self, result):
        if self.fail_single:
            raise MatchStoreError("database unavailable")
        return super().upsert(result)

    def upsert_many(self, results):
        call_index = len(self.batch_calls)
        self.batch_calls.append(len(results))
        if call_index in self.fail_calls:
            raise MatchStoreError(f"chunk {call_index} rejected")
        return super().upsert_many(results)


@pytest.fixture
def product():
    return build_product()


@pytest.fixture
def contact():
    return build_contact()


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def make_engine(store):
    def _make(reasoning=None, **kwargs):
        kwargs.setdefault("store", store)
        return ProductMatchingEngine(
            reasoning=reasoning or FailingReasoning(),
            clock=lambda: FIXED_NOW,
            **kwargs,
        )

    return _make
