"""
Unit tests for the adaptive analyzer.

Tests:
- Fallback test selection by page type and owner answers
- Fallback page summaries
- Page analysis end to end against a fake fetcher
- Persistence of page data, adaptive tests and statuses
"""
import pytest
from sqlalchemy import select

from cro_auditor.integrations.fetcher import parse_html
from cro_auditor.models.audit import AuditQuestion, QuestionStatus, QuestionType
from cro_auditor.models.page import (
    AdaptiveTest,
    DataCollectionStatus,
    DiscoveredPage,
    PageData,
    PageType,
    TestingStatus,
)
from cro_auditor.services.adaptive_analyzer import (
    AdaptiveAnalyzer,
    fallback_summary,
    fallback_test_selection,
    parse_ai_tests,
)
from cro_auditor.services.page_metrics import collect_all_metrics

from tests.fixtures.sample_pages import ABOUT_HTML, HOMEPAGE_HTML


def page(page_type: PageType, **metadata) -> DiscoveredPage:
    return DiscoveredPage(url="https://example.com/x", page_type=page_type, crawl_metadata=metadata)


class TestFallbackSelection:
    """Test deterministic test selection."""

    def test_homepage(self):
        assert fallback_test_selection(page(PageType.HOMEPAGE), []) == [
            "contrast_analysis",
            "cta_prominence",
            "trust_signals",
            "layout_density",
        ]

    def test_pricing_with_form(self):
        assert fallback_test_selection(page(PageType.PRICING, form_count=1), []) == [
            "contrast_analysis",
            "cta_prominence",
            "form_friction",
            "trust_signals",
        ]

    def test_checkout_without_form(self):
        assert fallback_test_selection(page(PageType.CHECKOUT, form_count=0), []) == [
            "contrast_analysis",
            "cta_prominence",
            "trust_signals",
        ]

    def test_product(self):
        assert fallback_test_selection(page(PageType.PRODUCT), [])[-1] == "mobile_usability"

    def test_other_page_gets_baseline(self):
        assert fallback_test_selection(page(PageType.ABOUT), []) == ["contrast_analysis", "cta_prominence"]

    def test_competing_ctas_from_owner(self):
        context = [{"type": QuestionType.COMPETING_ACTIONS.value, "response": "yes, the banners compete"}]
        assert fallback_test_selection(page(PageType.ABOUT), context)[-1] == "cta_conflict_analysis"

    def test_parse_ai_tests_deduplicates(self):
        assert parse_ai_tests({"tests": ["trust_signals", "trust_signals", "", "form_friction"]}) == [
            "trust_signals",
            "form_friction",
        ]
        assert parse_ai_tests({"tests": "trust_signals"}) == []
        assert parse_ai_tests(None) == []


class TestFallbackSummary:
    """Test the template summary used without AI."""

    def test_prefers_meta_description(self):
        document = parse_html(HOMEPAGE_HTML)
        summary = fallback_summary(page(PageType.HOMEPAGE), document, collect_all_metrics(document, "https://example.com/"))

        assert summary.startswith(
            "This main landing page (Acme Analytics gives growing teams live dashboards.) contains "
        )
        assert summary.endswith("Primary calls-to-action include: Get started today.")

    def test_falls_back_to_title(self):
        document = parse_html(ABOUT_HTML)
        metrics = collect_all_metrics(document, "https://example.com/about")
        summary = fallback_summary(page(PageType.ABOUT), document, metrics)

        words = metrics["content_metrics"]["word_count"]
        assert summary == f"This page (About us - Acme Analytics) contains {words} words."

    def test_untitled(self):
        document = parse_html("<html><body><form></form><form></form></body></html>")
        summary = fallback_summary(page(PageType.CONTACT), document, collect_all_metrics(document, "https://example.com/c"))

        assert summary == "This contact page (Untitled) contains 0 words and includes 2 forms for user input."


class TestAdaptiveAnalyzer:
    """Test page analysis and persistence."""

    @pytest.mark.asyncio
    async def test_analyze_pages_persists_results(
        self, db_session, advisor, audit, make_page, site_fetcher, screenshots
    ):
        home = await make_page(audit, "https://example.com/", PageType.HOMEPAGE, 100, True)
        analyzer = AdaptiveAnalyzer(db_session, advisor, fetcher=site_fetcher, screenshots=screenshots)

        analyses = await analyzer.analyze_pages([home])

        assert len(analyses) == 1
        assert home.data_collection_status == DataCollectionStatus.COMPLETE
        assert home.testing_status == TestingStatus.COMPLETE
        assert set(home.analysis) == {
            "comprehensive_metrics",
            "simple_tests",
            "ai_summary",
            "adaptive_tests",
            "collected_at",
        }
        assert len(home.analysis["simple_tests"]) == 10

        tests = (await db_session.execute(
            select(AdaptiveTest).where(AdaptiveTest.discovered_page_id == home.id)
        )).scalars().all()
        assert sorted(t.test_type for t in tests) == [
            "contrast_analysis",
            "cta_prominence",
            "layout_density",
            "trust_signals",
        ]
        assert {t.decision_reason for t in tests} == {"Selected based on homepage analysis and user context"}
        assert {t.test_type: t.impact_score for t in tests}["cta_prominence"] == 95

        page_data = (await db_session.execute(
            select(PageData).where(PageData.discovered_page_id == home.id)
        )).scalar_one()
        assert page_data.meta_title == "Acme Analytics - Dashboards for growing teams"
        assert page_data.headings["h1"] == ["Dashboards your team will actually use"]
        assert page_data.performance_metrics["load_time_ms"] == 120
        assert page_data.total_page_weight_bytes == len(HOMEPAGE_HTML.encode())
        assert set(page_data.screenshots) == {"desktop", "mobile"}
        assert page_data.screenshots["mobile"]["placeholder"] is True
        assert "collected_at" in page_data.page_metadata
        assert page_data.has_complete_data()
        assert "Dashboards your team will actually use" in page_data.all_content()
        assert page_data.total_assets_count >= 1

    @pytest.mark.asyncio
    async def test_failed_fetch_marks_page_failed(
        self, db_session, advisor, audit, make_page, site_fetcher, screenshots
    ):
        gone = await make_page(audit, "https://example.com/gone")
        home = await make_page(audit, "https://example.com/", PageType.HOMEPAGE, 100, True)
        analyzer = AdaptiveAnalyzer(db_session, advisor, fetcher=site_fetcher, screenshots=screenshots)

        analyses = await analyzer.analyze_pages([gone, home])

        assert [a.url for a in analyses] == [home.url]
        assert gone.data_collection_status == DataCollectionStatus.FAILED
        assert gone.testing_status == TestingStatus.FAILED
        page_data = (await db_session.execute(
            select(PageData).where(PageData.discovered_page_id == gone.id)
        )).scalar_one_or_none()
        assert page_data is None

    @pytest.mark.asyncio
    async def test_owner_answers_feed_selection(
        self, db_session, advisor, audit, make_page, site_fetcher, screenshots
    ):
        about = await make_page(audit, "https://example.com/about", PageType.ABOUT)
        db_session.add(AuditQuestion(
            audit_id=audit.id,
            discovered_page_id=about.id,
            question_type=QuestionType.COMPETING_ACTIONS,
            question_text="Are there competing actions on this page?",
            user_response="The two banners compete",
            status=QuestionStatus.ANSWERED,
        ))
        await db_session.flush()
        analyzer = AdaptiveAnalyzer(db_session, advisor, fetcher=site_fetcher, screenshots=screenshots)

        context = await analyzer.gather_user_context(about)
        analysis = await analyzer.analyze_page(about, context)

        assert context == [{"type": "competing_actions", "response": "The two banners compete"}]
        assert "cta_conflict_analysis" in analysis.test_results
        assert analysis.test_results["cta_conflict_analysis"] == {
            "note": "Test cta_conflict_analysis not yet implemented"
        }

    @pytest.mark.asyncio
    async def test_ai_choices_are_used(
        self, db_session, mock_advisor, audit, make_page, site_fetcher, screenshots
    ):
        mock_advisor.chat.return_value = "  The homepage introduces Acme Analytics.  "
        mock_advisor.analyze_with_json.return_value = {
            "tests": ["trust_signals", "typography_scan"],
            "reasoning": "Trust matters here",
        }
        home = await make_page(audit, "https://example.com/", PageType.HOMEPAGE, 100, True)
        analyzer = AdaptiveAnalyzer(db_session, mock_advisor, fetcher=site_fetcher, screenshots=screenshots)

        analysis = await analyzer.analyze_page(home)

        assert analysis.ai_summary == "The homepage introduces Acme Analytics."
        assert sorted(analysis.test_results) == ["trust_signals", "typography_scan"]
        assert analysis.test_results["trust_signals"]["trust_signal_count"] == 0


class TestPageDataHelpers:
    """Test derived PageData values."""

    def test_incomplete_without_screenshots(self):
        page_data = PageData(html_content="<html></html>", performance_metrics={"load_time_ms": 10})
        assert page_data.has_complete_data() is False

    def test_weight_and_assets(self):
        page_data = PageData(
            total_page_weight_bytes=3_145_728,
            images=[{"src": "/a.png"}, {"src": "/b.png"}],
            scripts=["/app.js"],
            stylesheets=None,
            fonts=["Inter"],
        )

        assert page_data.page_weight_mb == 3.0
        assert page_data.total_assets_count == 4
        assert PageData().page_weight_mb == 0

    def test_all_content(self):
        page_data = PageData(
            page_content="Body copy",
            headings={"h1": ["Title"], "h2": ["Sub"]},
            links=[{"href": "/pricing", "text": "Pricing"}, {"href": "/x", "text": ""}],
            meta_title="Meta",
        )
        assert page_data.all_content() == "Body copy Title Sub Pricing Meta"
