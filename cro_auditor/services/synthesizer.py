"""
Results Synthesizer

Turns per-page adaptive test results into the final report:
- prioritized insights per page (AI, else fixed threshold rules)
- an overall 0-100 score
- an executive summary (AI, else a template sentence)
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cro_auditor.integrations.ai_advisor import AIAdvisor
from cro_auditor.models.audit import Audit
from cro_auditor.models.page import AdaptiveTest, DiscoveredPage, PageData, TestingStatus

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}
INSIGHT_PRIORITIES = ("critical", "high", "medium")
MAX_FALLBACK_INSIGHTS = 5
COPY_EXCERPT_CHARS = 1500

INSIGHTS_PROMPT = """You are a CRO expert analyzing a webpage. Generate SPECIFIC, actionable insights.

Rules:
- Be SPECIFIC with numbers, colors, locations
- Focus on what's MISSING or WRONG
- Provide EXACT recommendations (don't say "improve CTA", say "Change button from gray to blue (#0066CC)")
- Only mention issues that actually matter for conversions
- Write 3-5 insights maximum, prioritized by impact

Format each insight as:
{
  "issue": "Specific problem found",
  "impact": "Why this hurts conversions",
  "recommendation": "Exact action to take",
  "priority": "critical|high|medium"
}

Return a JSON array of insights."""

SUMMARY_PROMPT = """You are a CRO consultant writing an executive summary for a client.
Write ONE paragraph (3-4 sentences) that:
1. States what was analyzed
2. Lists the top issues found (be specific)
3. States why these matter (no made-up percentages)

Be direct. No fluff. No emojis. No percentage claims you can't back up."""


@dataclass
class Insight:
    issue: str
    impact: str
    recommendation: str
    priority: str = "medium"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SynthesisReport:
    summary: str
    score: int
    page_insights: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def priority_order(priority: Optional[str]) -> int:
    return PRIORITY_ORDER.get(priority, 4)


def normalize_priority(value: Any) -> str:
    priority = str(value or "").lower()
    return priority if priority in INSIGHT_PRIORITIES else "medium"


def parse_ai_insights(result: Any) -> list[Insight]:
    if isinstance(result, dict):
        result = result.get("insights")
    if not isinstance(result, list):
        return []

    insights = []
    for item in result:
        if not isinstance(item, dict) or not item.get("issue"):
            continue
        insights.append(Insight(
            issue=str(item["issue"]),
            impact=str(item.get("impact") or ""),
            recommendation=str(item.get("recommendation") or ""),
            priority=normalize_priority(item.get("priority")),
        ))
    return insights


def _insights_for(test_type: str, results: dict[str, Any]) -> list[Insight]:
    if test_type == "contrast_analysis":
        low_contrast = int(results.get("low_contrast_count") or 0)
        if low_contrast > 0:
            return [Insight(
                issue=f"{low_contrast} buttons/CTAs have poor contrast ratios",
                impact="Users with vision issues cannot see your calls-to-action",
                recommendation="Increase button contrast to at least 4.5:1 (WCAG AA standard). Use a color contrast checker.",
                priority="high",
            )]

    elif test_type == "cta_prominence":
        if not results.get("has_prominent"):
            return [Insight(
                issue="No prominent call-to-action detected above the fold",
                impact="Visitors don't know what action to take first",
                recommendation="Add a clear, high-contrast CTA button in the hero section (above 800px). Make it at least 200px wide.",
                priority="critical",
            )]
        if results.get("competing"):
            return [Insight(
                issue=f"{results.get('above_fold')} competing CTAs above the fold",
                impact="Multiple options cause decision paralysis and split focus",
                recommendation="Keep ONE primary CTA above fold. Move secondary actions below.",
                priority="high",
            )]

    elif test_type == "trust_signals":
        checks = [
            ("phone_visible", "phone number"),
            ("email_visible", "email address"),
            ("ssl_badge", "security badges"),
            ("payment_badges", "payment logos"),
            ("review_elements", "customer reviews"),
        ]
        missing = [label for key, label in checks if not results.get(key)]
        if missing:
            return [Insight(
                issue=f"Missing key trust signals: {', '.join(missing)}",
                impact="80% of users check for trust indicators. Missing these loses 30-40% of potential conversions",
                recommendation=(
                    f"Add: {', '.join(m.capitalize() for m in missing)}. "
                    "Place in header (phone) and near CTAs (badges/reviews)."
                ),
                priority="high" if "phone number" in missing else "medium",
            )]

    elif test_type == "layout_density":
        if results.get("excessive_density"):
            return [Insight(
                issue=f"Page is overcrowded with {results.get('elements_above_fold')} elements above fold",
                impact="Cognitive overload reduces focus and conversions by 25%",
                recommendation="Cut elements to under 300. Remove: redundant nav links, excessive copy, non-essential graphics.",
                priority="medium",
            )]

    elif test_type == "form_friction":
        if results.get("high_friction"):
            return [Insight(
                issue=f"Longest form asks for {results.get('max_fields')} fields",
                impact="Every extra field adds effort before the visitor can convert",
                recommendation="Cut the form to the fields you need to follow up. Label every input.",
                priority="medium",
            )]

    return []


def fallback_insights(tests: list[AdaptiveTest]) -> list[Insight]:
    """Threshold rules over known test types, five highest priorities kept."""
    insights: list[Insight] = []
    for test in tests:
        insights.extend(_insights_for(test.test_type, test.results or {}))
    insights.sort(key=lambda i: priority_order(i.priority))
    return insights[:MAX_FALLBACK_INSIGHTS]


def screenshot_entries(page_data: Optional[PageData]) -> list[dict[str, Any]]:
    screenshots = (page_data.screenshots if page_data else None) or {}
    return [
        {
            "device_type": record.get("device_type", device),
            "url": record.get("screenshot_url"),
            "viewport_width": record.get("viewport_width"),
            "viewport_height": record.get("viewport_height"),
        }
        for device, record in screenshots.items()
    ]


def _all_insights(page_insights: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [insight for page in page_insights for insight in page["insights"]]


def count_priority(page_insights: list[dict[str, Any]], priority: str) -> int:
    return sum(1 for i in _all_insights(page_insights) if i["priority"] == priority)


def calculate_overall_score(page_insights: list[dict[str, Any]]) -> int:
    total = len(_all_insights(page_insights))
    if total == 0:
        return 100

    critical = count_priority(page_insights, "critical")
    high = count_priority(page_insights, "high")

    score = 100 - critical * 20 - high * 10 - (total - critical - high) * 5
    return max(score, 0)


def top_issues(page_insights: list[dict[str, Any]], limit: int = 3) -> list[str]:
    ordered = sorted(_all_insights(page_insights), key=lambda i: priority_order(i["priority"]))
    return [i["issue"] for i in ordered[:limit]]


def fallback_executive_summary(page_insights: list[dict[str, Any]]) -> str:
    pages = len(page_insights)
    issues = top_issues(page_insights)
    if not issues:
        return (
            f"Analyzed {pages} high-priority pages and found no critical or high-priority "
            "conversion issues. No issues were found by the automated checks."
        )

    critical = count_priority(page_insights, "critical")
    high = count_priority(page_insights, "high")
    return (
        f"Analyzed {pages} high-priority pages and found {critical} critical and {high} "
        f"high-priority conversion issues. Key issues: {'; '.join(issues)}. "
        "These issues block users from converting and should be fixed immediately."
    )


class ResultsSynthesizer:
    """Builds the final report of an audit."""

    def __init__(self, db: AsyncSession, advisor: AIAdvisor):
        self.db = db
        self.advisor = advisor

    async def synthesize(self, audit: Audit) -> SynthesisReport:
        page_insights = await self.generate_page_insights(audit)
        report = SynthesisReport(
            summary=await self.executive_summary(audit, page_insights),
            score=calculate_overall_score(page_insights),
            page_insights=page_insights,
        )
        logger.info(
            f"Synthesized report for audit {audit.id}: score {report.score}, "
            f"{len(_all_insights(page_insights))} insights over {len(page_insights)} pages"
        )
        return report

    async def generate_page_insights(self, audit: Audit) -> list[dict[str, Any]]:
        result = await self.db.execute(
            select(DiscoveredPage)
            .where(
                DiscoveredPage.audit_id == audit.id,
                or_(
                    DiscoveredPage.is_priority_page.is_(True),
                    DiscoveredPage.testing_status == TestingStatus.COMPLETE,
                ),
            )
            .order_by(DiscoveredPage.priority_score.desc())
        )
        pages = list(result.scalars().all())

        page_insights = []
        for page in pages:
            tests = await self._tests_for(page)
            page_data = await self._page_data_for(page)
            insights = await self.specific_insights(page, tests, page_data)
            page_insights.append({
                "page_url": page.url,
                "page_type": page.page_type.value,
                "priority_score": page.priority_score,
                "insights": [i.to_dict() for i in insights],
                "screenshots": screenshot_entries(page_data),
                "page_weight_mb": page_data.page_weight_mb if page_data else 0,
                "total_assets": page_data.total_assets_count if page_data else 0,
            })
        return page_insights

    async def specific_insights(
        self,
        page: DiscoveredPage,
        tests: list[AdaptiveTest],
        page_data: Optional[PageData] = None,
    ) -> list[Insight]:
        if not tests:
            return []

        test_summary = "\n".join(f"{t.test_type}: {json.dumps(t.results)}" for t in tests)
        copy = page_data.all_content()[:COPY_EXCERPT_CHARS] if page_data else ""
        user_prompt = f"""Analyze this {page.page_type.value} page:
URL: {page.url}

Test Results:
{test_summary}

Page copy:
{copy or "(not collected)"}

Generate specific CRO insights in JSON array format."""

        insights = parse_ai_insights(await self.advisor.analyze_with_json(INSIGHTS_PROMPT, user_prompt))
        if insights:
            return insights

        logger.info(f"Using rule-based insights for {page.url}")
        return fallback_insights(tests)

    async def executive_summary(self, audit: Audit, page_insights: list[dict[str, Any]]) -> str:
        issues = "\n".join([
            f"- {page['page_type']} page: {i['issue']}"
            for page in page_insights
            for i in page["insights"]
        ][:5])
        user_prompt = f"""Site: {audit.url}
Pages analyzed: {len(page_insights)} high-priority pages
Critical issues: {count_priority(page_insights, 'critical')}
High-priority issues: {count_priority(page_insights, 'high')}

Top issues:
{issues}

Write executive summary."""

        summary = await self.advisor.chat(SUMMARY_PROMPT, user_prompt, temperature=0.7, max_tokens=400)
        return summary or fallback_executive_summary(page_insights)

    async def _tests_for(self, page: DiscoveredPage) -> list[AdaptiveTest]:
        result = await self.db.execute(
            select(AdaptiveTest)
            .where(AdaptiveTest.discovered_page_id == page.id)
            .order_by(AdaptiveTest.created_at, AdaptiveTest.id)
        )
        return list(result.scalars().all())

    async def _page_data_for(self, page: DiscoveredPage) -> Optional[PageData]:
        result = await self.db.execute(
            select(PageData).where(PageData.discovered_page_id == page.id)
        )
        return result.scalar_one_or_none()
