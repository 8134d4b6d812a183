"""
Configuration settings for the Product Match Engine
"""

import os

# =============================================================================
# LLM CONFIGURATION (OpenRouter)
# =============================================================================

LLM_CONFIG = {
    "provider": os.getenv("LLM_PROVIDER", "openrouter"),  # openrouter, openai, anthropic
    "model": os.getenv("LLM_MODEL", "openai/gpt-4-turbo"),  # OpenRouter model format
    "api_key": os.getenv("OPENROUTER_API_KEY", ""),
    "base_url": os.getenv("LLM_BASE_URL", "https://openrouter.ai/api/v1"),
    "max_tokens": 3000,
    "temperature": 0.3,
    "timeout_seconds": float(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
    # OpenRouter specific headers
    "site_url": os.getenv("OPENROUTER_SITE_URL", "http://localhost:8000"),
    "app_name": os.getenv("OPENROUTER_APP_NAME", "Product Match Engine"),
}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# =============================================================================
# DEFAULT SCORING WEIGHTS
# =============================================================================

DEFAULT_SCORE_WEIGHTS = {
    "industry": 30,
    "company_size": 20,
    "title": 25,
    "tags": 15,
    "status": 10,
}

# =============================================================================
# BATCH PROCESSING
# =============================================================================

BATCH_CONFIG = {
    "chunk_size": int(os.getenv("MATCH_CHUNK_SIZE", "50")),
    "ai_group_size": 5,
    "ai_group_delay_seconds": float(os.getenv("AI_BATCH_DELAY_SECONDS", "0.5")),
}

# =============================================================================
# COMPANY SIZE MAPPING
# =============================================================================

# Free-form contact size labels -> canonical tiers
COMPANY_SIZE_MAPPING = {
    "1-10": ["startup"],
    "11-50": ["startup", "smb"],
    "51-200": ["smb"],
    "201-500": ["smb", "mid-market"],
    "501-1000": ["mid-market"],
    "1001-5000": ["mid-market", "enterprise"],
    "5000+": ["enterprise"],
    "startup": ["startup"],
    "small": ["startup", "smb"],
    "medium": ["smb", "mid-market"],
    "large": ["mid-market", "enterprise"],
    "enterprise": ["enterprise"],
}

# =============================================================================
# KEYWORD LIBRARIES
# =============================================================================

QUALIFIED_STATUSES = ["hot", "warm", "qualified", "opportunity", "proposal"]
SEMI_QUALIFIED_STATUSES = ["new", "contacted", "meeting scheduled"]

EXECUTIVE_KEYWORDS = ["ceo", "cto", "cfo", "coo", "vp", "director", "head", "chief"]

SMALL_COMPANY_KEYWORDS = ["startup", "small"]
LARGE_COMPANY_KEYWORDS = ["enterprise", "large"]

# =============================================================================
# AI BLENDING
# =============================================================================

AI_WEIGHT_BY_EFFORT = {
    "high": 0.6,
    "medium": 0.5,
    "low": 0.3,
    "none": 0.3,
}

TALKING_POINT_CONTRIBUTION = {
    "high": 15,
    "medium": 10,
    "low": 5,
}

# =============================================================================
# MATCH TIERS
# =============================================================================

MATCH_TIER_THRESHOLDS = {
    "high": 80,
    "medium": 50,
}

MATCH_TIER_LABELS = {
    "high": "High Fit",
    "medium": "Medium Fit",
    "low": "Low Fit",
}

# =============================================================================
# OUTREACH TEMPLATES
# =============================================================================

RECOMMENDED_APPROACHES = {
    "high_executive": (
        "Direct outreach with executive-level value proposition. Lead with ROI "
        "metrics and strategic outcomes. Consider warm introduction if available."
    ),
    "high_peer": (
        "Priority outreach recommended. Personalize with specific pain points "
        "and use cases relevant to their role."
    ),
    "medium": (
        "Nurture campaign suggested. Share educational content first, then "
        "follow up with product-specific value after engagement."
    ),
    "low": (
        "Add to awareness campaign. Low-touch approach with broad educational "
        "content until profile data improves."
    ),
}

OBJECTION_LIBRARY = {
    "budget": "Budget constraints - emphasize ROI and flexible pricing",
    "integration": "Integration complexity - highlight existing integrations and support",
    "procurement": "Procurement process - prepare for longer sales cycle",
    "ongoing_cost": "Ongoing costs - demonstrate long-term value over one-time solutions",
    "current_solution": "Current solution satisfaction - focus on gaps and improvement areas",
    "implementation": "Implementation time - clarify onboarding process and timeline",
}
