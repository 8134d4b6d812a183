"""
Stage 3: Reasoning Collaborator
===============================
LLM-backed semantic analysis of a product/contact pair.
This stage is the most expensive and the only one that talks to the network.

Tasks:
- Semantic fit score (0-100) beyond keyword matching
- Talking points and anticipated objections
- Conversion prediction and outreach timing
- Company research (news, funding, buying signals, competitors)

Unavailable clients and API errors raise ReasoningServiceError; callers
decide how to degrade. Unparseable model output degrades here to a
heuristic analysis.
"""

import time
import json
import math
import re
from datetime import datetime, timedelta
from urllib.parse import urlparse
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Dict, Any, List, Callable

from ..models.schemas import (
    Product,
    Contact,
    ReasoningEffort,
    SemanticAnalysis,
    TalkingPoint,
    Objection,
    Relevance,
    EnrichmentResult,
    EnrichmentSource,
)
from ..config.settings import LLM_CONFIG, BATCH_CONFIG
from ..observability.logging import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]

SYSTEM_INSTRUCTIONS = """You are an expert sales intelligence analyst. Analyze the fit between the product and contact.
Return your analysis as valid JSON with this exact structure:
{
  "aiConfidence": number (0-100),
  "aiReasoning": string,
  "semanticScore": number (0-100),
  "talkingPoints": [{"topic": string, "content": string, "relevance": "high"|"medium"|"low"}],
  "anticipatedObjections": [{"objection": string, "response": string, "likelihood": "high"|"medium"|"low"}],
  "predictedConversion": number (0-100),
  "optimalOutreachTime": string,
  "competitivePositioning": string,
  "personalizationInsights": [string]
}
Return ONLY the JSON object, no other text."""

DEFAULT_OUTREACH_TIME = "Tuesday-Thursday, 10am-2pm"

RESEARCH_INSTRUCTIONS = (
    "You are a sales intelligence researcher. Find relevant business information. "
    "Cite every source as a full URL."
)

ENRICHMENT_TTL_DAYS = 7

URL_PATTERN = re.compile(r"https?://[^\s)\]>\"']+")

KEY_FACT_PATTERNS = [
    re.compile(r"(?:founded|established|started)\s+(?:in\s+)?(\d{4})", re.IGNORECASE),
    re.compile(r"(?:raised|secured|received)\s+\$?([\d.]+[MBK]?)", re.IGNORECASE),
    re.compile(r"(?:employs?|has)\s+([\d,]+)\s+(?:employees?|people|staff)", re.IGNORECASE),
    re.compile(
        r"(?:headquartered|based|located)\s+(?:in\s+)?([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)",
        re.IGNORECASE,
    ),
]


class ReasoningServiceError(Exception):
    """Raised when the reasoning collaborator cannot produce an analysis."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class ReasoningStage:
    """
    Stage 3: Semantic match analysis via an LLM provider.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        client: Any = None,
        group_size: int = BATCH_CONFIG["ai_group_size"],
        group_delay_seconds: float = BATCH_CONFIG["ai_group_delay_seconds"],
    ):
        """
        Initialize LLM client.

        Args:
            api_key: API key for LLM provider
            provider: LLM provider ("openrouter", "openai", or "anthropic")
            model: Model name (provider format)
            client: Pre-built client, bypasses provider setup
            group_size: Contacts analysed concurrently in batch mode
            group_delay_seconds: Pause between batch groups
        """
        self.api_key = api_key or LLM_CONFIG.get("api_key")
        self.provider = provider or LLM_CONFIG.get("provider", "openrouter")
        self.model = model or LLM_CONFIG.get("model", "openai/gpt-4-turbo")
        self.base_url = LLM_CONFIG.get("base_url", "https://openrouter.ai/api/v1")
        self.site_url = LLM_CONFIG.get("site_url", "http://localhost:8000")
        self.app_name = LLM_CONFIG.get("app_name", "Product Match Engine")
        self.timeout = LLM_CONFIG.get("timeout_seconds", 60)
        self.group_size = max(1, group_size)
        self.group_delay_seconds = group_delay_seconds
        self.client = client

        if self.client is None:
            self._initialize_client()

    @property
    def available(self) -> bool:
        return self.client is not None

    def _initialize_client(self):
        """Initialize the LLM client based on provider"""
        if not self.api_key:
            return

        if self.provider == "openrouter":
            from openai import OpenAI
            self.client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                default_headers={
                    "HTTP-Referer": self.site_url,
                    "X-Title": self.app_name,
                }
            )
        elif self.provider == "openai":
            from openai import OpenAI
            self.client = OpenAI(api_key=self.api_key, timeout=self.timeout)
        elif self.provider == "anthropic":
            from anthropic import Anthropic
            self.client = Anthropic(api_key=self.api_key, timeout=self.timeout)

    def analyze_match(
        self,
        product: Product,
        contact: Contact,
        effort: ReasoningEffort = ReasoningEffort.HIGH,
    ) -> SemanticAnalysis:
        """
        Analyse semantic fit for one pair.

        Raises:
            ReasoningServiceError: no client configured, or the call failed
        """
        if not self.client:
            raise ReasoningServiceError("No LLM client configured", recoverable=False)

        start_time = time.time()
        effort = ReasoningEffort(effort)
        logger.info(
            "Starting AI match analysis",
            product_id=product.id,
            contact_id=contact.id,
            reasoning_effort=effort.value,
        )

        prompt = self._generate_prompt(product, contact, effort)
        try:
            response = self._call_llm(prompt)
        except Exception as e:
            raise ReasoningServiceError(f"LLM call failed: {str(e)[:200]}") from e

        return self._parse_response(response, product, contact, start_time)

    def batch_analyze_matches(
        self,
        product: Product,
        contacts: List[Contact],
        on_progress: Optional[ProgressCallback] = None,
        effort: ReasoningEffort = ReasoningEffort.MEDIUM,
    ) -> Dict[str, SemanticAnalysis]:
        """
        Analyse many contacts in small concurrent groups.

        Contacts whose analysis fails are left out of the returned map.

        Returns:
            contact_id -> SemanticAnalysis
        """
        if not self.client:
            raise ReasoningServiceError("No LLM client configured", recoverable=False)

        logger.info(
            "Starting batch AI analysis",
            product_id=product.id,
            contact_count=len(contacts),
        )

        results: Dict[str, SemanticAnalysis] = {}
        total = len(contacts)

        with ThreadPoolExecutor(max_workers=self.group_size) as executor:
            for start in range(0, total, self.group_size):
                group = contacts[start:start + self.group_size]
                futures = [
                    (contact, executor.submit(self.analyze_match, product, contact, effort))
                    for contact in group
                ]
                for contact, future in futures:
                    try:
                        results[contact.id] = future.result()
                    except Exception as e:
                        logger.warning(
                            "AI analysis failed for contact",
                            product_id=product.id,
                            contact_id=contact.id,
                            error=str(e)[:200],
                            error_type=type(e).__name__,
                            recoverable=getattr(e, "recoverable", True),
                        )

                if on_progress:
                    on_progress(min(start + self.group_size, total), total)

                if start + self.group_size < total and self.group_delay_seconds > 0:
                    time.sleep(self.group_delay_seconds)

        return results

    def enrich_contact(self, product: Product, contact: Contact) -> List[EnrichmentResult]:
        """
        Research the contact's company: news, funding, buying signals and
        competitors. A failed query is skipped; the others still return.

        Raises:
            ReasoningServiceError: no client configured
        """
        if not self.client:
            raise ReasoningServiceError("No LLM client configured", recoverable=False)

        logger.info(
            "Starting web enrichment for contact",
            product_id=product.id,
            contact_id=contact.id,
            company=contact.company,
        )

        enrichments: List[EnrichmentResult] = []
        for query in self._build_enrichment_queries(product, contact):
            try:
                content = self._call_llm(query["prompt"], system=RESEARCH_INSTRUCTIONS)
            except Exception as e:
                logger.warning(
                    "Enrichment query failed",
                    contact_id=contact.id,
                    enrichment_type=query["type"],
                    error=str(e)[:200],
                )
                continue

            content = (content or "").strip()
            enrichments.append(
                EnrichmentResult(
                    type=query["type"],
                    data={
                        "query": query["query"],
                        "content": content,
                        "summary": _extract_key_summary(content),
                        "key_facts": _extract_key_facts(content),
                    },
                    sources=_extract_sources(content),
                    expires_at=datetime.utcnow() + timedelta(days=ENRICHMENT_TTL_DAYS),
                )
            )

        return enrichments

    def _build_enrichment_queries(
        self, product: Product, contact: Contact
    ) -> List[Dict[str, str]]:
        company = contact.company or "Unknown Company"
        industry = contact.industry or "technology"
        title = product.target_titles[0] if product.target_titles else "technology"

        return [
            {
                "type": "company_news",
                "query": f"{company} recent news announcements",
                "prompt": f"Find recent news about {company}. Focus on business developments, "
                          f"product launches, partnerships, and strategic initiatives.",
            },
            {
                "type": "funding_rounds",
                "query": f"{company} funding investment",
                "prompt": f"Find information about {company}'s funding history, investors, "
                          f"and financial milestones.",
            },
            {
                "type": "buying_signals",
                "query": f"{company} hiring {title}",
                "prompt": f"Find hiring trends and expansion signals at {company} that might "
                          f"indicate buying intent for {product.name or 'our product'}.",
            },
            {
                "type": "competitive_landscape",
                "query": f"{company} competitors {industry}",
                "prompt": f"Identify {company}'s main competitors and market positioning "
                          f"in the {industry} space.",
            },
        ]

    def _generate_prompt(
        self, product: Product, contact: Contact, effort: ReasoningEffort
    ) -> str:
        """Generate the LLM prompt with context"""
        value_props = ", ".join(
            f"{vp.title} ({vp.description})" if vp.description else vp.title
            for vp in product.value_propositions
        )
        sizes = ", ".join(s.value for s in product.target_company_sizes)

        return f"""Analyze the sales fit between this product and contact:

PRODUCT:
- Name: {product.name}
- Description: {product.description or 'Not provided'}
- Target Industries: {', '.join(product.target_industries) or 'All industries'}
- Target Titles: {', '.join(product.target_titles) or 'All titles'}
- Target Company Sizes: {sizes or 'All sizes'}
- Pain Points Addressed: {', '.join(product.pain_points_addressed) or 'Not specified'}
- Value Propositions: {value_props or 'Not specified'}
- Competitive Advantages: {', '.join(product.competitive_advantages) or 'Not specified'}

CONTACT:
- Name: {contact.name or 'Unknown'}
- Title: {contact.title or 'Unknown'}
- Department: {contact.department or 'Unknown'}
- Company: {contact.company or 'Unknown'}
- Industry: {contact.industry or 'Unknown'}
- Company Size: {contact.company_size or 'Unknown'}
- Status: {contact.status or 'Unknown'}
- Tags: {', '.join(contact.tags) or 'None'}

Analyze semantic fit beyond keyword matching. Consider:
1. Industry adjacencies and related markets
2. Title/role implications for decision-making authority
3. Company growth stage and technology adoption patterns
4. Pain point alignment with contact's likely challenges
5. Optimal messaging angles and talking points

Reasoning depth requested: {effort.value}"""

    def _call_llm(self, prompt: str, system: str = SYSTEM_INSTRUCTIONS) -> str:
        """Call the LLM API"""
        if self.provider in ["openrouter", "openai"]:
            # Both OpenRouter and OpenAI use the same SDK interface
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt}
                ],
                temperature=LLM_CONFIG.get("temperature", 0.3),
                max_tokens=LLM_CONFIG.get("max_tokens", 3000),
            )
            return response.choices[0].message.content

        elif self.provider == "anthropic":
            response = self.client.messages.create(
                model=self.model,
                max_tokens=LLM_CONFIG.get("max_tokens", 3000),
                system=system,
                messages=[
                    {"role": "user", "content": prompt}
                ],
            )
            return response.content[0].text

        raise ValueError(f"Unknown provider: {self.provider}")

    def _parse_response(
        self,
        response: str,
        product: Product,
        contact: Contact,
        start_time: float,
    ) -> SemanticAnalysis:
        """Parse LLM response into structured result"""
        processing_time = (time.time() - start_time) * 1000

        try:
            # Clean response (remove markdown code blocks if present)
            clean = (response or "").strip()
            if clean.startswith("```"):
                clean = clean.split("```")[1]
                if clean.startswith("json"):
                    clean = clean[4:]
            clean = clean.strip()

            data = json.loads(clean)

            talking_points = [
                TalkingPoint(
                    topic=tp.get("topic", ""),
                    content=tp["content"],
                    relevance=Relevance(str(tp.get("relevance", "medium")).lower()),
                    source=tp.get("source"),
                )
                for tp in data.get("talkingPoints", [])
                if tp.get("content")
            ]
            objections = [
                Objection(
                    objection=o["objection"],
                    response=o.get("response", ""),
                    likelihood=Relevance(str(o.get("likelihood", "medium")).lower()),
                )
                for o in data.get("anticipatedObjections", [])
                if o.get("objection")
            ]

            return SemanticAnalysis(
                semantic_score=_clamp_percent(data.get("semanticScore"), 50),
                ai_confidence=_clamp_percent(data.get("aiConfidence"), 50),
                ai_reasoning=data.get("aiReasoning") or "Analysis completed",
                talking_points=talking_points,
                anticipated_objections=objections,
                predicted_conversion=_clamp_percent(data.get("predictedConversion"), 25),
                optimal_outreach_time=data.get("optimalOutreachTime") or DEFAULT_OUTREACH_TIME,
                competitive_positioning=data.get("competitivePositioning") or "",
                personalization_insights=data.get("personalizationInsights") or [],
                processing_time_ms=round(processing_time, 2),
            )

        except (
            json.JSONDecodeError, KeyError, ValueError, TypeError, AttributeError, OverflowError
        ) as e:
            logger.warning(
                "Failed to parse AI match analysis, using fallback",
                product_id=product.id,
                contact_id=contact.id,
                error=str(e)[:100],
            )
            return self._generate_fallback_analysis(product, contact, start_time)

    def _generate_fallback_analysis(
        self, product: Product, contact: Contact, start_time: float
    ) -> SemanticAnalysis:
        """Heuristic analysis used when model output cannot be parsed"""
        processing_time = (time.time() - start_time) * 1000
        industry = (contact.industry or "").lower()
        title = (contact.title or "").lower()

        has_industry_match = bool(industry) and any(
            i.lower() in industry for i in product.target_industries if i
        )
        has_title_match = bool(title) and any(
            t.lower() in title for t in product.target_titles if t
        )
        base_score = 50 + (20 if has_industry_match else 0) + (15 if has_title_match else 0)

        return SemanticAnalysis(
            semantic_score=base_score,
            ai_confidence=base_score,
            ai_reasoning="Fallback analysis based on basic matching criteria",
            talking_points=[
                TalkingPoint(
                    topic="Value Introduction",
                    content=f"Introduce {product.name or 'the product'} and its key benefits",
                    relevance=Relevance.HIGH,
                )
            ],
            anticipated_objections=[
                Objection(
                    objection="Budget constraints",
                    response="Focus on ROI and cost savings",
                    likelihood=Relevance.MEDIUM,
                )
            ],
            predicted_conversion=max(10, base_score - 30),
            optimal_outreach_time=DEFAULT_OUTREACH_TIME,
            competitive_positioning="Highlight unique value propositions",
            personalization_insights=["Use contact name", "Reference company"],
            processing_time_ms=round(processing_time, 2),
        )


def _clamp_percent(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    number = float(value)
    if not math.isfinite(number):
        return default
    return max(0, min(100, int(round(number))))


def _extract_key_summary(content: str) -> str:
    sentences = [s.strip() for s in re.split(r"[.!?]+", content) if len(s.strip()) > 20]
    if not sentences:
        return ""
    return ". ".join(sentences[:3]) + "."


def _extract_key_facts(content: str) -> List[str]:
    facts = []
    for pattern in KEY_FACT_PATTERNS:
        match = pattern.search(content)
        if match:
            facts.append(match.group(0))
    return facts


def _extract_sources(content: str) -> List[EnrichmentSource]:
    sources = []
    seen = set()
    for url in URL_PATTERN.findall(content):
        url = url.rstrip(".,;:")
        if url in seen:
            continue
        seen.add(url)
        domain = urlparse(url).netloc.lower()
        if domain.startswith("www."):
            domain = domain[4:]
        sources.append(EnrichmentSource(url=url, title=domain, domain=domain))
    return sources
