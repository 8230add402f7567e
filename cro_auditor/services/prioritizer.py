"""
Priority scoring of discovered pages.

Each page gets an integer importance score in [0, 100]. The homepage is
always 100; other pages are scored by the AI advisor when it answers and
by a fixed heuristic otherwise. The outcome records which path produced
the score.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cro_auditor.config import settings
from cro_auditor.integrations.ai_advisor import AIAdvisor
from cro_auditor.models.audit import Audit
from cro_auditor.models.page import DiscoveredPage, PageType, ScoreSource

logger = logging.getLogger(__name__)

TYPE_BASE_SCORES: dict[PageType, int] = {
    PageType.HOMEPAGE: 100,
    PageType.PRICING: 95,
    PageType.CHECKOUT: 95,
    PageType.PRODUCT: 90,
    PageType.LANDING: 85,
    PageType.CONTACT: 70,
    PageType.ABOUT: 50,
    PageType.BLOG: 40,
    PageType.OTHER: 30,
}

TYPE_REASONS: dict[PageType, str] = {
    PageType.HOMEPAGE: "Homepage is the primary entry point and sets first impressions",
    PageType.PRICING: "Pricing page directly influences purchase decisions",
    PageType.CHECKOUT: "Checkout page is the final conversion step",
    PageType.PRODUCT: "Product pages drive purchasing decisions",
    PageType.LANDING: "Landing page designed for conversion",
}

SCORING_PROMPT = """You are an expert CRO consultant analyzing website pages for conversion impact.
Score pages 0-100 based on their likely influence on business outcomes.

High scores (80-100): Direct revenue impact (homepage, pricing, checkout, key landing pages)
Medium scores (50-79): Supporting conversion (product pages, contact, trust-building)
Low scores (0-49): Informational/utility (blog, help docs, legal pages)

Consider: page type, conversion elements (forms/CTAs), site depth, content signals.
Respond with JSON: { "score": 85, "reasoning": "..." }"""

STRATEGY_PROMPT = """You are a CRO strategist explaining audit priorities to a client.
Write a 2-3 sentence summary explaining which pages matter most and why.
Be specific and business-focused. No jargon."""


@dataclass
class ScoredPage:
    """Score plus where it came from."""
    source: ScoreSource
    value: int
    reasoning: Optional[str] = None


@dataclass
class PrioritizationResult:
    summary: str
    focus_pages: list[dict[str, Any]] = field(default_factory=list)
    ai_insights: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def clamp_score(value: int) -> int:
    return max(0, min(100, value))


def heuristic_score(page_type: PageType, metadata: dict[str, Any]) -> int:
    """Fallback score: type base, depth penalty, form/button/nav bonuses."""
    score = TYPE_BASE_SCORES.get(PageType(page_type), TYPE_BASE_SCORES[PageType.OTHER])
    score -= int(metadata.get("depth") or 0) * 10
    score += int(metadata.get("form_count") or 0) * 5
    score += int(metadata.get("button_count") or 0) * 2
    if metadata.get("has_nav"):
        score += 10
    return clamp_score(score)


def parse_ai_score(result: Any) -> Optional[int]:
    if not isinstance(result, dict) or result.get("score") is None:
        return None
    try:
        return clamp_score(int(float(result["score"])))
    except (TypeError, ValueError):
        return None


def build_summary(pages: list[DiscoveredPage]) -> str:
    if not pages:
        return "No high-priority pages identified."

    types: list[str] = []
    for page in pages:
        if page.page_type.value not in types:
            types.append(page.page_type.value)

    return (
        f"Based on site structure and conversion potential, {len(pages)} high-impact pages identified. "
        f"Focus areas: {', '.join(types)}. These pages are most likely to influence visitor decisions."
    )


def page_reasoning(page: DiscoveredPage) -> dict[str, Any]:
    reasons = []
    if page.page_type in TYPE_REASONS:
        reasons.append(TYPE_REASONS[page.page_type])

    metadata = page.metadata_dict
    form_count = metadata.get("form_count") or 0
    if form_count > 0:
        reasons.append(f"Contains {form_count} forms")
    if (metadata.get("button_count") or 0) > 3:
        reasons.append("Multiple CTAs detected")

    return {
        "url": page.url,
        "type": page.page_type.value,
        "score": page.priority_score,
        "reasoning": ". ".join(reasons),
    }


class PriorityScorer:
    """Scores every discovered page of an audit."""

    def __init__(
        self,
        db: AsyncSession,
        advisor: AIAdvisor,
        threshold: Optional[int] = None,
    ):
        self.db = db
        self.advisor = advisor
        self.threshold = settings.PRIORITY_THRESHOLD if threshold is None else threshold

    async def score(self, url: str, page_type: PageType, metadata: dict[str, Any]) -> ScoredPage:
        if page_type == PageType.HOMEPAGE:
            return ScoredPage(ScoreSource.HEURISTIC, 100)

        user_prompt = f"""Analyze this page:

URL: {url}
Type: {page_type.value}
Depth: {metadata.get('depth')} levels from homepage
Title: {metadata.get('title')}
Forms: {metadata.get('form_count')}
Buttons/CTAs: {metadata.get('button_count')}
Word count: {metadata.get('word_count')}
Has navigation: {metadata.get('has_nav')}

What priority score (0-100) should this page receive?"""

        result = await self.advisor.analyze_with_json(SCORING_PROMPT, user_prompt)
        ai_score = parse_ai_score(result)
        if ai_score is not None:
            return ScoredPage(ScoreSource.AI, ai_score, reasoning=result.get("reasoning"))

        logger.debug(f"Heuristic score used for {url}")
        return ScoredPage(ScoreSource.HEURISTIC, heuristic_score(page_type, metadata))

    async def score_pages(self, audit: Audit) -> PrioritizationResult:
        """Score all pages, persist scores and priority flags, explain the choice."""
        result = await self.db.execute(
            select(DiscoveredPage).where(DiscoveredPage.audit_id == audit.id)
        )
        pages = list(result.scalars().all())

        scored = await asyncio.gather(
            *(self.score(p.url, p.page_type, p.metadata_dict) for p in pages)
        )

        ai_insights = []
        for page, outcome in zip(pages, scored):
            page.priority_score = outcome.value
            page.score_source = outcome.source
            page.is_priority_page = outcome.value >= self.threshold
            if outcome.source == ScoreSource.AI and outcome.reasoning:
                ai_insights.append({
                    "page": page.url,
                    "ai_score": outcome.value,
                    "ai_reasoning": outcome.reasoning,
                })
        await self.db.flush()

        high_priority = sorted(
            (p for p in pages if p.is_priority_page),
            key=lambda p: p.priority_score,
            reverse=True,
        )
        logger.info(f"Scored {len(pages)} pages, {len(high_priority)} high priority")

        summary = await self._strategy_summary(high_priority) or build_summary(high_priority)
        return PrioritizationResult(
            summary=summary,
            focus_pages=[page_reasoning(p) for p in high_priority[:5]],
            ai_insights=ai_insights,
        )

    async def _strategy_summary(self, pages: list[DiscoveredPage]) -> Optional[str]:
        if not pages:
            return None

        page_list = "\n".join(
            f"- {p.url} ({p.page_type.value}, score: {p.priority_score})" for p in pages[:10]
        )
        user_prompt = f"""I've identified these high-priority pages for audit:

{page_list}

Explain to the client why we're focusing on these pages first."""

        return await self.advisor.chat(STRATEGY_PROMPT, user_prompt, temperature=0.8, max_tokens=300)
