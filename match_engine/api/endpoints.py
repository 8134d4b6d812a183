"""
FastAPI Endpoints for the Product Match Engine
==============================================
RESTful API for scoring CRM contacts against sales products.

Base URL: http://localhost:8000

Endpoints:
- GET    /                                   - API info
- GET    /api/health                         - Health check
- POST   /api/match/score                    - Rule-based score (not saved)
- POST   /api/match                          - Score and save one pair
- POST   /api/match/batch                    - Score and save many contacts
- POST   /api/match/enrich                   - Add company research to a saved match
- GET    /api/match/{product_id}             - List saved matches for a product
- GET    /api/match/{product_id}/{contact_id} - Get one saved match
- DELETE /api/match/product/{product_id}     - Delete a product's matches
- GET    /api/weights                        - Current score weights
- POST   /api/weights                        - Replace score weights
- GET    /api/stats                          - Engine statistics
"""

import os
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional
from datetime import datetime
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from ..models.schemas import (
    MatchRequest,
    BatchMatchRequest,
    MatchCalculation,
)
from ..models.match_config import ScoreWeights
from ..stages.stage2_composer import get_match_tier, get_match_tier_label
from ..engine import ProductMatchingEngine
from ..observability.logging import setup_logging, get_logger

# Runs in every uvicorn worker, not only the launching process
setup_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = get_logger(__name__)


# =============================================================================
# FastAPI App Initialization
# =============================================================================

app = FastAPI(
    title="Product Match Engine API",
    description="""
## Contact/Product Fit Scoring

Scores how well each CRM contact fits one of your products.

### Features:
- **Rule-based scoring**: industry, company size, title, tags, status
- **AI blending**: optional semantic score from an LLM via OpenRouter
- **Batch processing**: chunked, idempotent saves with partial-failure tolerance
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware - Allow all origins for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Engine Initialization
# =============================================================================

def get_default_engine() -> ProductMatchingEngine:
    api_key = os.getenv("OPENROUTER_API_KEY")
    return ProductMatchingEngine(llm_api_key=api_key, llm_provider="openrouter")


default_engine = get_default_engine()


# =============================================================================
# Health & Info Endpoints
# =============================================================================

@app.get("/", tags=["Info"])
async def root():
    """API information and available endpoints"""
    return {
        "service": "Product Match Engine",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "endpoints": {
            "Score": "POST /api/match/score",
            "Score & Save": "POST /api/match",
            "Batch": "POST /api/match/batch",
            "Enrich": "POST /api/match/enrich",
            "Matches": "GET /api/match/{product_id}",
            "Weights": "GET|POST /api/weights",
            "Health": "GET /api/health",
        }
    }


@app.get("/api/health", tags=["Info"])
async def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "service": "Product Match Engine",
        "version": "1.0.0",
        "timestamp": datetime.utcnow().isoformat(),
        "llm_configured": default_engine.stage3.available,
    }


# =============================================================================
# Matching Endpoints
# =============================================================================

@app.post("/api/match/score", response_model=MatchCalculation, tags=["Matching"])
async def score_match(request: MatchRequest):
    """
    Rule-based match for one pair, without saving.
    """
    return default_engine.calculate_match(request.product, request.contact)


@app.post("/api/match", tags=["Matching"])
async def save_match(request: MatchRequest):
    """
    Score one pair and save it.

    Set `use_ai: true` to blend in the LLM's semantic score; if the LLM is
    unavailable the rule-based match is saved instead.
    """
    if request.use_ai:
        result = default_engine.calculate_and_save_ai_enhanced_match(
            request.product,
            request.contact,
            user_id=request.user_id,
            effort=request.reasoning_effort,
        )
    else:
        result = default_engine.calculate_and_save_match(
            request.product, request.contact, user_id=request.user_id
        )

    if result is None:
        raise HTTPException(status_code=503, detail="Match could not be saved")

    tier = get_match_tier(result.match_score)
    return {
        "match": result.model_dump(mode="json"),
        "tier": tier.value,
        "tier_label": get_match_tier_label(tier),
        "ai_enhanced": result.ai_processed_at is not None,
    }


@app.post("/api/match/batch", tags=["Matching"])
async def batch_match(request: BatchMatchRequest):
    """
    Score many contacts against one product.

    Results are saved in chunks; a failed chunk is skipped, not fatal.
    """
    if request.use_ai:
        result = default_engine.batch_calculate_ai_enhanced_matches(
            request.product,
            request.contacts,
            user_id=request.user_id,
            effort=request.reasoning_effort,
            chunk_size=request.chunk_size,
        )
    else:
        result = default_engine.batch_calculate_matches(
            request.product,
            request.contacts,
            user_id=request.user_id,
            chunk_size=request.chunk_size,
        )

    return {
        "product_id": result.product_id,
        "total_processed": result.processed,
        "saved": result.saved,
        "chunks": result.chunks,
        "failed_chunks": result.failed_chunks,
        "ai_enhanced": result.ai_enhanced,
        "processing_time_ms": result.processing_time_ms,
        "results": [
            {
                "contact_id": r.contact_id,
                "score": r.match_score,
                "tier": get_match_tier(r.match_score).value,
            }
            for r in result.results
        ],
    }


@app.post("/api/match/enrich", tags=["Matching"])
async def enrich_match(request: MatchRequest):
    """
    Attach company research (news, funding, buying signals, competitors)
    to a saved match. The pair must have been saved first.
    """
    if default_engine.store.get(request.product.id, request.contact.id) is None:
        raise HTTPException(status_code=404, detail="Match not found")

    result = default_engine.enrich_match_with_web_research(request.product, request.contact)
    if result is None:
        raise HTTPException(status_code=503, detail="Match enrichment failed")

    return {
        "match": result.model_dump(mode="json"),
        "enrichment_types": list(result.ai_enrichment_data),
    }


@app.get("/api/match/{product_id}", tags=["Matching"])
async def list_matches(
    product_id: str,
    min_score: Optional[int] = Query(None, description="Minimum match score"),
    max_score: Optional[int] = Query(None, description="Maximum match score"),
):
    """List saved matches for a product, highest score first"""
    matches = default_engine.store.list_for_product(product_id, min_score, max_score)
    return {
        "product_id": product_id,
        "count": len(matches),
        "matches": [m.model_dump(mode="json") for m in matches],
    }


@app.get("/api/match/{product_id}/{contact_id}", tags=["Matching"])
async def get_match(product_id: str, contact_id: str):
    """Get one saved match"""
    match = default_engine.store.get(product_id, contact_id)
    if match is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return match.model_dump(mode="json")


@app.delete("/api/match/product/{product_id}", tags=["Matching"])
async def delete_product_matches(product_id: str):
    """Delete every saved match for a product"""
    removed = default_engine.store.delete_for_product(product_id)
    return {"status": "deleted", "product_id": product_id, "removed": removed}


# =============================================================================
# Configuration Endpoints
# =============================================================================

@app.get("/api/weights", tags=["Configuration"])
async def get_weights():
    """Current score weights"""
    weights = default_engine.weights
    return {**weights.model_dump(), "total": weights.total}


@app.post("/api/weights", tags=["Configuration"])
async def set_weights(weights: ScoreWeights):
    """Replace the score weights"""
    default_engine.update_weights(weights)
    logger.info("Score weights updated", **weights.model_dump())
    return {"status": "updated", **weights.model_dump(), "total": weights.total}


# =============================================================================
# Statistics
# =============================================================================

@app.get("/api/stats", tags=["Info"])
async def get_stats():
    """Get engine statistics"""
    return {"default_engine": default_engine.get_stats()}


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error("Unhandled API error", path=str(request.url.path), error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc),
            "type": type(exc).__name__,
        }
    )
