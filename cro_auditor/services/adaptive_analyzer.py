"""
Adaptive Analyzer

Per selected page:
1. Fetch the document (a failed fetch drops only this page)
2. Collect structured metrics and run the ten micro-tests
3. Summarize the page (AI, else a template sentence)
4. Pick and run adaptive CRO tests (AI, else page-type rules)
5. Collect PageData, screenshots included

Per-page work runs concurrently and returns a PageAnalysis value;
persistence happens afterwards, one page at a time, on the caller's session.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from bs4 import BeautifulSoup
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cro_auditor.config import settings
from cro_auditor.integrations.ai_advisor import AIAdvisor
from cro_auditor.integrations.fetcher import DocumentFetcher, FetchResult
from cro_auditor.integrations.screenshots import ScreenshotService
from cro_auditor.models.audit import AuditQuestion, QuestionStatus, QuestionType
from cro_auditor.models.page import (
    AdaptiveTest,
    DataCollectionStatus,
    DiscoveredPage,
    PageData,
    PageType,
    TestingStatus,
)
from cro_auditor.services.crawler import Fetcher
from cro_auditor.services.page_checks import impact_score, run_adaptive_test, run_simple_tests
from cro_auditor.services.page_metrics import collect_all_metrics, extract_colors, extract_font_families, inline_css

logger = logging.getLogger(__name__)

AVAILABLE_TESTS = {
    "contrast_analysis": "Check WCAG color contrast ratios",
    "cta_prominence": "Measure CTA button size/visibility",
    "trust_signals": "Detect phone, reviews, security badges",
    "layout_density": "Analyze DOM complexity",
    "form_friction": "Evaluate form field count and usability",
    "typography_scan": "Check font sizes, line-height, hierarchy",
    "color_palette": "Analyze color usage and consistency",
}

TYPE_DESCRIPTIONS: dict[PageType, str] = {
    PageType.HOMEPAGE: "main landing page",
    PageType.PRODUCT: "product page",
    PageType.PRICING: "pricing information page",
    PageType.CONTACT: "contact page",
    PageType.BLOG: "blog post or article",
}

SUMMARY_PROMPT = """You are analyzing a webpage. Write a 1-paragraph summary (3-4 sentences) that describes:
1. What this page is (its purpose)
2. Key content/sections present
3. Main call-to-action or goal

Be factual and descriptive. No marketing fluff."""

TEST_STRATEGY_PROMPT = """You are a CRO expert deciding which technical tests to run on a webpage.

Available tests:
{tests}

Select 3-5 tests that will provide the most actionable insights for THIS specific page.
Respond with JSON: {{ "tests": ["contrast_analysis", "cta_prominence"], "reasoning": "..." }}"""


@dataclass
class PageAnalysis:
    """Everything learned about one page, not yet persisted."""
    page_id: UUID
    url: str
    metrics: dict[str, Any]
    simple_tests: list[dict[str, Any]]
    ai_summary: str
    decision_reason: str
    test_results: dict[str, dict[str, Any]] = field(default_factory=dict)
    page_data: dict[str, Any] = field(default_factory=dict)
    collected_at: str = ""

    def analysis_dict(self) -> dict[str, Any]:
        return {
            "comprehensive_metrics": self.metrics,
            "simple_tests": self.simple_tests,
            "ai_summary": self.ai_summary,
            "adaptive_tests": sorted(self.test_results),
            "collected_at": self.collected_at,
        }


def competing_ctas_identified(user_context: list[dict[str, Any]]) -> bool:
    return any(
        c["type"] == QuestionType.COMPETING_ACTIONS.value and "compete" in (c.get("response") or "")
        for c in user_context
    )


def fallback_test_selection(page: DiscoveredPage, user_context: list[dict[str, Any]]) -> list[str]:
    tests = ["contrast_analysis", "cta_prominence"]

    if page.page_type in (PageType.HOMEPAGE, PageType.LANDING):
        tests += ["trust_signals", "layout_density"]
    elif page.page_type in (PageType.PRICING, PageType.CHECKOUT):
        if (page.metadata_dict.get("form_count") or 0) > 0:
            tests.append("form_friction")
        tests.append("trust_signals")
    elif page.page_type == PageType.PRODUCT:
        tests.append("mobile_usability")

    if competing_ctas_identified(user_context):
        tests.append("cta_conflict_analysis")

    return list(dict.fromkeys(tests))


def parse_ai_tests(result: Any) -> list[str]:
    if not isinstance(result, dict) or not isinstance(result.get("tests"), list):
        return []
    return list(dict.fromkeys(str(t) for t in result["tests"] if t))


def fallback_summary(page: DiscoveredPage, document: BeautifulSoup, metrics: dict) -> str:
    type_desc = TYPE_DESCRIPTIONS.get(page.page_type, "page")
    title_tag = document.find("title")
    title = (
        metrics["technical_metrics"].get("meta_description")
        or (title_tag.get_text(strip=True) if title_tag else "")
        or "Untitled"
    )
    word_count = metrics["content_metrics"]["word_count"]

    summary = f"This {type_desc} ({title}) contains {word_count} words"

    form_count = metrics["technical_metrics"]["form_count"]
    if form_count > 0:
        summary += f" and includes {form_count} form{'s' if form_count > 1 else ''} for user input"

    ctas = metrics["ux_metrics"]["cta_buttons"]
    if ctas:
        summary += f". Primary calls-to-action include: {', '.join(c['text'] for c in ctas[:3])}"

    return summary + "."


def collect_page_data(document: BeautifulSoup, fetched: FetchResult, metrics: dict) -> dict[str, Any]:
    """Column values for PageData, screenshots excluded."""
    css_text = inline_css(document)
    body = document.find("body")
    html_tag = document.find("html")
    charset_tag = document.find("meta", charset=True)
    title_tag = document.find("title")

    meta_tags = {}
    for meta in document.find_all("meta"):
        key = meta.get("name") or meta.get("property")
        if key and meta.get("content") is not None:
            meta_tags[key] = meta["content"]

    structured_data = []
    for script in document.find_all("script", type="application/ld+json"):
        try:
            structured_data.append(json.loads(script.get_text()))
        except ValueError:
            logger.debug(f"Skipping invalid JSON-LD block on {fetched.url}")

    assets = metrics["asset_metrics"]
    return {
        "html_content": fetched.raw_body,
        "page_content": " ".join(body.get_text(separator=" ").split()) if body else "",
        "fonts": extract_font_families(document, css_text),
        "colors": extract_colors(css_text),
        "images": [
            {"src": img.get("src"), "alt": img.get("alt")}
            for img in document.find_all("img") if img.get("src")
        ],
        "scripts": assets["script_sources"],
        "stylesheets": assets["stylesheet_sources"],
        "headings": {
            f"h{level}": [h.get_text(strip=True) for h in document.find_all(f"h{level}")]
            for level in range(1, 7)
        },
        "links": [
            {"href": a["href"], "text": a.get_text(strip=True)}
            for a in document.find_all("a", href=True)
        ],
        "meta_title": title_tag.get_text(strip=True) if title_tag else None,
        "meta_description": metrics["technical_metrics"]["meta_description"],
        "meta_tags": meta_tags,
        "structured_data": structured_data,
        "total_page_weight_bytes": fetched.content_length,
        "asset_distribution": {
            "images": assets["image_count"],
            "scripts": assets["script_count"],
            "css": assets["stylesheet_count"],
            "fonts": metrics["visual_metrics"]["custom_fonts_count"],
        },
        "performance_metrics": {
            "load_time_ms": fetched.load_time_ms,
            "status_code": fetched.status_code,
            "html_bytes": fetched.content_length,
            "total_resources": assets["image_count"] + assets["script_count"] + assets["stylesheet_count"],
        },
        "page_metadata": {
            "viewport": metrics["technical_metrics"]["viewport_meta"],
            "lang": html_tag.get("lang") if html_tag else None,
            "charset": charset_tag.get("charset") if charset_tag else None,
        },
    }


class AdaptiveAnalyzer:
    """Collects data and runs adaptive tests over an audit's analysis pages."""

    def __init__(
        self,
        db: AsyncSession,
        advisor: AIAdvisor,
        fetcher: Optional[Fetcher] = None,
        screenshots: Optional[ScreenshotService] = None,
        concurrency: Optional[int] = None,
    ):
        self.db = db
        self.advisor = advisor
        self.fetcher = fetcher or DocumentFetcher()
        self.screenshots = screenshots or ScreenshotService()
        self.semaphore = asyncio.Semaphore(concurrency or settings.CRAWL_CONCURRENCY)

    async def analyze_pages(self, pages: list[DiscoveredPage]) -> list[PageAnalysis]:
        """Analyze pages concurrently, then persist the outcomes in order."""
        contexts = [await self.gather_user_context(page) for page in pages]
        for page in pages:
            page.data_collection_status = DataCollectionStatus.COLLECTING
            page.testing_status = TestingStatus.TESTING
        await self.db.flush()

        outcomes = await asyncio.gather(
            *(self._analyze_limited(page, context) for page, context in zip(pages, contexts))
        )

        completed = []
        for page, analysis in zip(pages, outcomes):
            if analysis is None:
                page.data_collection_status = DataCollectionStatus.FAILED
                page.testing_status = TestingStatus.FAILED
                continue
            await self.persist(page, analysis)
            completed.append(analysis)

        await self.db.flush()
        logger.info(f"Analyzed {len(completed)} of {len(pages)} pages")
        return completed

    async def _analyze_limited(
        self,
        page: DiscoveredPage,
        user_context: list[dict[str, Any]],
    ) -> Optional[PageAnalysis]:
        async with self.semaphore:
            return await self.analyze_page(page, user_context)

    async def analyze_page(
        self,
        page: DiscoveredPage,
        user_context: Optional[list[dict[str, Any]]] = None,
    ) -> Optional[PageAnalysis]:
        user_context = user_context or []
        fetched = await self.fetcher.fetch(page.url)
        if not fetched.success or fetched.document is None:
            logger.warning(f"Failed to fetch page {page.url} for data collection: {fetched.error}")
            return None

        document = fetched.document
        metrics = collect_all_metrics(
            document,
            page.url,
            css_text=inline_css(document),
            inbound_links_count=page.inbound_links_count,
        )
        simple_tests = [r.to_dict() for r in run_simple_tests(page.url, document, metrics)]
        summary = await self.summarize(page, document, metrics)

        selected = await self.select_tests(page, user_context)
        test_results = {test_type: run_adaptive_test(test_type, document) for test_type in selected}

        page_data = collect_page_data(document, fetched, metrics)
        page_data["screenshots"] = await self.screenshots.capture_both(page.url, str(page.id))

        collected_at = datetime.now(timezone.utc).isoformat()
        page_data["page_metadata"] = {**page_data["page_metadata"], "collected_at": collected_at}

        logger.info(f"Collected metrics and {len(test_results)} adaptive tests for {page.url}")
        return PageAnalysis(
            page_id=page.id,
            url=page.url,
            metrics=metrics,
            simple_tests=simple_tests,
            ai_summary=summary,
            decision_reason=f"Selected based on {page.page_type.value} analysis and user context",
            test_results=test_results,
            page_data=page_data,
            collected_at=collected_at,
        )

    async def summarize(self, page: DiscoveredPage, document: BeautifulSoup, metrics: dict) -> str:
        headings = [
            f"{h.name.upper()}: {h.get_text(strip=True)}"
            for h in document.select("h1, h2, h3")[:5]
        ]
        sections = []
        for section in document.select('section, div[class*="section"], article')[:3]:
            heading = section.select_one("h1, h2, h3")
            if heading:
                sections.append(f"- {heading.get_text(strip=True)} ({len(section.get_text(separator=' ').split())} words)")

        form_count = metrics["technical_metrics"]["form_count"]
        ctas = metrics["ux_metrics"]["cta_buttons"][:3]
        title_tag = document.find("title")
        user_prompt = f"""Page: {page.url}
Type: {page.page_type.value}
Title: {metrics['technical_metrics']['meta_description'] or (title_tag.get_text(strip=True) if title_tag else '')}

Heading Structure:
{chr(10).join(headings)}

{f"Contains {form_count} form(s)" if form_count > 0 else "No forms"}
{f"Primary CTAs: {', '.join(c['text'] for c in ctas)}" if ctas else ""}

Key Sections:
{chr(10).join(sections)}

Write a 1-paragraph summary of this page."""

        summary = await self.advisor.chat(SUMMARY_PROMPT, user_prompt, temperature=0.3)
        if summary and summary.strip():
            return summary.strip()
        return fallback_summary(page, document, metrics)

    async def select_tests(self, page: DiscoveredPage, user_context: list[dict[str, Any]]) -> list[str]:
        metadata = page.metadata_dict
        responses = "\n".join(f"Q: {c['type']} - A: {c['response']}" for c in user_context)
        user_prompt = f"""Decide which tests to run:

Page: {page.url}
Type: {page.page_type.value}
Forms: {metadata.get('form_count')}
Buttons: {metadata.get('button_count')}

User told us:
{responses or '(No user input yet)'}

Which tests will be most valuable?"""

        system_prompt = TEST_STRATEGY_PROMPT.format(
            tests="\n".join(f"- {name}: {desc}" for name, desc in AVAILABLE_TESTS.items())
        )
        result = await self.advisor.analyze_with_json(system_prompt, user_prompt)
        tests = parse_ai_tests(result)
        if tests:
            logger.info(f"AI selected tests for {page.url}: {tests} - {result.get('reasoning')}")
            return tests
        return fallback_test_selection(page, user_context)

    async def gather_user_context(self, page: DiscoveredPage) -> list[dict[str, Any]]:
        result = await self.db.execute(
            select(AuditQuestion).where(
                AuditQuestion.discovered_page_id == page.id,
                AuditQuestion.status == QuestionStatus.ANSWERED,
            )
        )
        return [
            {"type": q.question_type.value, "response": q.user_response}
            for q in result.scalars().all()
        ]

    async def persist(self, page: DiscoveredPage, analysis: PageAnalysis) -> None:
        page.merge_json("analysis", **analysis.analysis_dict())

        result = await self.db.execute(
            select(PageData).where(PageData.discovered_page_id == page.id)
        )
        page_data = result.scalar_one_or_none()
        if page_data is None:
            page_data = PageData(discovered_page_id=page.id)
            self.db.add(page_data)
        for key, value in analysis.page_data.items():
            setattr(page_data, key, value)
        if not page_data.has_complete_data():
            logger.warning(f"Incomplete page data for {page.url}")

        for test_type, results in analysis.test_results.items():
            self.db.add(AdaptiveTest(
                discovered_page_id=page.id,
                test_type=test_type,
                decision_reason=analysis.decision_reason,
                results=results,
                impact_score=impact_score(test_type),
            ))

        page.data_collection_status = DataCollectionStatus.COMPLETE
        page.testing_status = TestingStatus.COMPLETE
