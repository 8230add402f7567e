"""
Unit tests for the results synthesizer.

Tests:
- Rule-based insights per adaptive test type
- Overall score deductions
- Executive summary fallbacks
- Report assembly over persisted pages
"""
import uuid
from datetime import datetime, timezone

import pytest

from cro_auditor.models.page import AdaptiveTest, PageData, PageType, TestingStatus
from cro_auditor.services.synthesizer import (
    Insight,
    ResultsSynthesizer,
    calculate_overall_score,
    fallback_executive_summary,
    fallback_insights,
    normalize_priority,
    parse_ai_insights,
)


def adaptive(test_type: str, **results) -> AdaptiveTest:
    return AdaptiveTest(test_type=test_type, results=results, impact_score=50)


def report(*priorities: str) -> list[dict]:
    return [{"insights": [{"issue": f"issue {i}", "priority": p} for i, p in enumerate(priorities)]}]


class TestFallbackInsights:
    """Test threshold rules."""

    def test_contrast(self):
        [insight] = fallback_insights([adaptive("contrast_analysis", low_contrast_count=3)])

        assert insight.issue == "3 buttons/CTAs have poor contrast ratios"
        assert insight.priority == "high"

    def test_good_contrast_has_no_insight(self):
        assert fallback_insights([adaptive("contrast_analysis", low_contrast_count=0)]) == []

    def test_missing_prominent_cta_is_critical(self):
        [insight] = fallback_insights([adaptive("cta_prominence", has_prominent=False, competing=True)])

        assert insight.issue == "No prominent call-to-action detected above the fold"
        assert insight.priority == "critical"

    def test_competing_ctas(self):
        [insight] = fallback_insights([adaptive("cta_prominence", has_prominent=True, competing=True, above_fold=4)])

        assert insight.issue == "4 competing CTAs above the fold"
        assert insight.priority == "high"

    def test_trust_priority_depends_on_phone(self):
        [no_phone] = fallback_insights([adaptive("trust_signals", phone_visible=False, email_visible=True)])
        [has_phone] = fallback_insights([adaptive("trust_signals", phone_visible=True)])

        assert no_phone.priority == "high"
        assert no_phone.issue == (
            "Missing key trust signals: phone number, security badges, payment logos, customer reviews"
        )
        assert has_phone.priority == "medium"
        assert has_phone.recommendation.startswith("Add: Email address, Security badges")

    def test_all_trust_signals_present(self):
        results = dict(phone_visible=True, email_visible=True, ssl_badge=True, payment_badges=True, review_elements=True)
        assert fallback_insights([adaptive("trust_signals", **results)]) == []

    def test_density_and_forms(self):
        insights = fallback_insights([
            adaptive("layout_density", excessive_density=True, elements_above_fold=812),
            adaptive("form_friction", high_friction=True, max_fields=9),
        ])

        assert [i.issue for i in insights] == [
            "Page is overcrowded with 812 elements above fold",
            "Longest form asks for 9 fields",
        ]

    def test_unknown_types_are_ignored(self):
        assert fallback_insights([adaptive("typography_scan", note="Test typography_scan not yet implemented")]) == []

    def test_sorted_and_capped_at_five(self):
        tests = [adaptive("layout_density", excessive_density=True, elements_above_fold=600)] * 3
        tests += [adaptive("contrast_analysis", low_contrast_count=2)] * 3
        tests.append(adaptive("cta_prominence", has_prominent=False))

        insights = fallback_insights(tests)

        assert len(insights) == 5
        assert [i.priority for i in insights] == ["critical", "high", "high", "high", "medium"]


class TestParseAiInsights:
    """Test AI insight validation."""

    def test_list_and_wrapped_forms(self):
        item = {"issue": "Gray CTA", "impact": "Low visibility", "recommendation": "Use #0066CC", "priority": "HIGH"}

        assert parse_ai_insights([item]) == [Insight("Gray CTA", "Low visibility", "Use #0066CC", "high")]
        assert parse_ai_insights({"insights": [item]})[0].priority == "high"

    def test_drops_items_without_issue(self):
        assert parse_ai_insights([{"impact": "x"}, "text", {"issue": "Real"}]) == [Insight("Real", "", "", "medium")]

    @pytest.mark.parametrize("value,expected", [("critical", "critical"), ("Medium", "medium"), ("low", "medium"), (None, "medium")])
    def test_normalize_priority(self, value, expected):
        assert normalize_priority(value) == expected


class TestOverallScore:
    """Test score deductions."""

    def test_no_insights_is_perfect(self):
        assert calculate_overall_score([]) == 100
        assert calculate_overall_score([{"insights": []}]) == 100

    def test_deductions(self):
        assert calculate_overall_score(report("critical", "high")) == 70
        assert calculate_overall_score(report("high", "medium", "medium")) == 80

    def test_floor_at_zero(self):
        assert calculate_overall_score(report(*["critical"] * 8)) == 0


class TestExecutiveSummary:
    """Test the template summary."""

    def test_no_issues(self):
        summary = fallback_executive_summary([{"insights": []}, {"insights": []}])
        assert summary.startswith("Analyzed 2 high-priority pages and found no critical or high-priority")

    def test_with_issues(self):
        summary = fallback_executive_summary(report("medium", "critical", "high", "high"))

        assert summary.startswith(
            "Analyzed 1 high-priority pages and found 1 critical and 2 high-priority conversion issues."
        )
        assert "Key issues: issue 1; issue 2; issue 3." in summary


class TestResultsSynthesizer:
    """Test report assembly from the database."""

    @pytest.mark.asyncio
    async def test_synthesize(self, db_session, advisor, audit, make_page):
        home = await make_page(audit, "https://example.com/", PageType.HOMEPAGE, 100, True)
        tested = await make_page(audit, "https://example.com/about", PageType.ABOUT, 40, False)
        tested.testing_status = TestingStatus.COMPLETE
        await make_page(audit, "https://example.com/blog", PageType.BLOG, 30, False)

        db_session.add_all([
            AdaptiveTest(discovered_page_id=home.id, test_type="cta_prominence", results={"has_prominent": False}),
            AdaptiveTest(discovered_page_id=home.id, test_type="contrast_analysis", results={"low_contrast_count": 1}),
            PageData(
                discovered_page_id=home.id,
                screenshots={"desktop": {"device_type": "desktop", "screenshot_url": "/s/home.png",
                                         "viewport_width": 1920, "viewport_height": 1080}},
            ),
        ])
        await db_session.flush()

        result = await ResultsSynthesizer(db_session, advisor).synthesize(audit)

        assert [p["page_url"] for p in result.page_insights] == [
            "https://example.com/",
            "https://example.com/about",
        ]
        home_report = result.page_insights[0]
        assert [i["priority"] for i in home_report["insights"]] == ["critical", "high"]
        assert home_report["screenshots"] == [{
            "device_type": "desktop",
            "url": "/s/home.png",
            "viewport_width": 1920,
            "viewport_height": 1080,
        }]
        assert result.page_insights[1]["insights"] == []
        assert home_report["page_weight_mb"] == 0
        assert result.page_insights[1]["screenshots"] == []
        assert result.score == 70
        assert "found 1 critical and 1 high-priority conversion issues" in result.summary

    @pytest.mark.asyncio
    async def test_tests_with_equal_timestamps_have_stable_order(self, db_session, advisor, audit, make_page):
        page = await make_page(audit, "https://example.com/", PageType.HOMEPAGE, 100, True)
        stamp = datetime(2026, 1, 1, tzinfo=timezone.utc)
        db_session.add_all([
            AdaptiveTest(id=uuid.UUID(int=2), discovered_page_id=page.id, test_type="trust_signals", created_at=stamp),
            AdaptiveTest(id=uuid.UUID(int=1), discovered_page_id=page.id, test_type="cta_prominence", created_at=stamp),
        ])
        await db_session.flush()

        tests = await ResultsSynthesizer(db_session, advisor)._tests_for(page)

        assert [t.test_type for t in tests] == ["cta_prominence", "trust_signals"]
