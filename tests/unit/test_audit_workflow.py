"""
Unit tests for the audit workflow.

Tests:
- Phase order and the question gate before analysis
- Running to completion after the owner answers
- Failure recording and resume from the failed phase
- Single-page mode
- Cascading deletes of an audit's data
"""
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from cro_auditor.agents.workflows.audit_workflow import (
    AuditWorkflow,
    next_phase_after,
    route_phase,
    select_analysis_pages,
)
from cro_auditor.core.exceptions import AuditPhaseError, ConflictError, PhaseTransitionError
from cro_auditor.models.audit import Audit, AuditMode, AuditQuestion, AuditStatus, QuestionStatus, WorkflowPhase
from cro_auditor.models.page import AdaptiveTest, DiscoveredPage, PageData, PageType, TestingStatus
from cro_auditor.services.audit_service import AuditQuestionService, AuditService
from cro_auditor.services.prioritizer import PriorityScorer


@pytest.fixture
def make_workflow(db_session, advisor, screenshots, site_fetcher):
    def _make_workflow(audit, fetcher=None, workflow_advisor=None):
        return AuditWorkflow(
            db_session,
            audit,
            advisor=workflow_advisor or advisor,
            fetcher=fetcher or site_fetcher,
            screenshots=screenshots,
        )
    return _make_workflow


async def answer_all(db_session, audit, response="Primary button (largest/most prominent)"):
    service = AuditQuestionService(db_session)
    for question in await service.list_questions(audit.id, QuestionStatus.PENDING):
        await service.answer(audit, question, response)
    await db_session.commit()


async def count(db_session, model) -> int:
    return await db_session.scalar(select(func.count(model.id)))


class TestRouting:
    """Test graph routing helpers."""

    def test_next_phase(self):
        assert next_phase_after(WorkflowPhase.CRAWLING) == WorkflowPhase.PRIORITIZING
        assert next_phase_after(WorkflowPhase.SYNTHESIZING) is None

    def test_route_stops_before_analysis_with_pending_questions(self):
        state = {"audit_id": "a", "next_phase": "analyzing", "pending_questions": 2, "phases_run": []}
        assert route_phase(state) == "end"
        assert route_phase({**state, "pending_questions": 0}) == "analyzing"

    def test_route_ends_when_complete(self):
        assert route_phase({"audit_id": "a", "next_phase": None, "pending_questions": 0, "phases_run": []}) == "end"

    def test_pending_questions_do_not_block_earlier_phases(self):
        state = {"audit_id": "a", "next_phase": "questioning", "pending_questions": 3, "phases_run": []}
        assert route_phase(state) == "questioning"

    def test_analysis_pages(self):
        def page(url, page_type=PageType.OTHER, inbound=0, score=0):
            return DiscoveredPage(
                url=url,
                page_type=page_type,
                priority_score=score,
                crawl_metadata={"inbound_links_count": inbound},
            )

        home = page("https://example.com/", PageType.HOMEPAGE)
        pages = [
            page("https://example.com/a", inbound=1, score=90),
            page("https://example.com/b", inbound=5, score=10),
            home,
            page("https://example.com/c", inbound=1, score=95),
            page("https://example.com/d", inbound=0, score=99),
        ]

        selected = select_analysis_pages(pages, extra=3)

        assert [p.url for p in selected] == [
            "https://example.com/",
            "https://example.com/b",
            "https://example.com/c",
            "https://example.com/a",
        ]

    def test_analysis_pages_without_homepage(self):
        pages = [DiscoveredPage(url="https://example.com/x", page_type=PageType.BLOG, crawl_metadata={})]
        assert select_analysis_pages(pages, extra=4) == pages


class TestAuditWorkflow:
    """Test the phase state machine."""

    @pytest.mark.asyncio
    async def test_start_stops_at_question_gate(self, db_session, audit, make_workflow):
        state = await make_workflow(audit).start()

        assert state["phases_run"] == ["crawling", "prioritizing", "questioning"]
        assert state["pending_questions"] == 2
        assert audit.status == AuditStatus.COLLECTING
        assert audit.current_phase == WorkflowPhase.ANALYZING
        assert audit.last_completed_phase == WorkflowPhase.QUESTIONING
        assert audit.started_at is not None
        assert audit.discovered_pages_count == 3
        assert audit.priority_pages_count == 2
        assert audit.questions_generated == 2
        assert audit.ai_decisions["prioritization"]["summary"].startswith(
            "Based on site structure and conversion potential, 2 high-impact pages identified."
        )

        pages = {
            p.url: p for p in (await db_session.execute(select(DiscoveredPage))).scalars().all()
        }
        assert pages["https://example.com/pricing"].inbound_links_count == 1
        assert pages["https://example.com/"].inbound_links_count == 0
        assert pages["https://example.com/"].priority_score == 100

    @pytest.mark.asyncio
    async def test_analysis_refused_while_questions_pending(self, db_session, audit, make_workflow):
        workflow = make_workflow(audit)
        await workflow.start()

        with pytest.raises(PhaseTransitionError, match="2 questions still pending"):
            await workflow.run_phase(WorkflowPhase.ANALYZING)

        state = await workflow.advance()
        assert state["phases_run"] == []
        assert audit.current_phase == WorkflowPhase.ANALYZING
        assert await count(db_session, AdaptiveTest) == 0

    @pytest.mark.asyncio
    async def test_completes_after_answers(self, db_session, audit, make_workflow):
        workflow = make_workflow(audit)
        await workflow.start()
        await answer_all(db_session, audit)
        assert audit.questions_answered == 2

        state = await workflow.advance()

        assert state["phases_run"] == ["analyzing", "synthesizing"]
        assert audit.status == AuditStatus.COMPLETE
        assert audit.last_completed_phase == WorkflowPhase.SYNTHESIZING
        assert audit.completed_at is not None
        assert audit.ai_decisions["analyzed_pages"] == [
            "https://example.com/",
            "https://example.com/pricing",
            "https://example.com/about",
        ]

        # homepage: low-contrast button and no phone; pricing: no phone; about: no CTA at all
        assert audit.overall_score == 50
        assert audit.summary.startswith(
            "Analyzed 3 high-priority pages and found 1 critical and 3 high-priority conversion issues."
        )
        page_insights = audit.raw_results["page_insights"]
        assert [p["page_url"] for p in page_insights] == [
            "https://example.com/",
            "https://example.com/pricing",
            "https://example.com/about",
        ]
        assert page_insights[2]["insights"][0]["priority"] == "critical"
        assert {s["device_type"] for s in page_insights[0]["screenshots"]} == {"desktop", "mobile"}

        pages = (await db_session.execute(select(DiscoveredPage))).scalars().all()
        assert {p.testing_status for p in pages} == {TestingStatus.COMPLETE}
        assert await count(db_session, PageData) == 3

    @pytest.mark.asyncio
    async def test_skipped_questions_also_open_the_gate(self, db_session, audit, make_workflow):
        workflow = make_workflow(audit)
        await workflow.start()
        service = AuditQuestionService(db_session)
        for question in await service.list_questions(audit.id):
            await service.skip(audit, question)
        await db_session.commit()

        await workflow.run_phase(WorkflowPhase.ANALYZING)

        assert audit.current_phase == WorkflowPhase.SYNTHESIZING
        assert audit.status == AuditStatus.TESTING
        assert audit.questions_answered == 0

    @pytest.mark.asyncio
    async def test_phases_run_in_order(self, audit, make_workflow):
        workflow = make_workflow(audit)

        with pytest.raises(PhaseTransitionError, match="phases run in order"):
            await workflow.run_phase(WorkflowPhase.PRIORITIZING)

        state = await workflow.run_phase(WorkflowPhase.CRAWLING)

        assert state["next_phase"] == "prioritizing"
        assert audit.current_phase == WorkflowPhase.PRIORITIZING
        assert audit.last_completed_phase == WorkflowPhase.CRAWLING

    @pytest.mark.asyncio
    async def test_start_twice_is_refused(self, audit, make_workflow):
        workflow = make_workflow(audit)
        await workflow.start()

        with pytest.raises(PhaseTransitionError, match="already started"):
            await workflow.start()

    @pytest.mark.asyncio
    async def test_no_priority_pages_runs_straight_through(self, db_session, make_workflow, make_fetcher):
        audit = Audit(url="https://example.com/blog/post", mode=AuditMode.SINGLE_PAGE)
        db_session.add(audit)
        await db_session.commit()
        fetcher = make_fetcher({"https://example.com/blog/post": "<html><body><p>Post</p></body></html>"})

        state = await make_workflow(audit, fetcher=fetcher).start()

        assert state["phases_run"] == ["crawling", "prioritizing", "questioning", "analyzing", "synthesizing"]
        assert audit.status == AuditStatus.COMPLETE
        assert audit.discovered_pages_count == 1
        assert audit.questions_generated == 0

    @pytest.mark.asyncio
    async def test_single_page_mode(self, db_session, make_workflow, site_fetcher):
        audit = Audit(url="example.com", mode=AuditMode.SINGLE_PAGE)
        db_session.add(audit)
        await db_session.commit()

        await make_workflow(audit).start()

        assert audit.discovered_pages_count == 1
        assert site_fetcher.requests == ["https://example.com/"]

    @pytest.mark.asyncio
    async def test_advance_on_complete_audit_is_a_no_op(self, db_session, audit, make_workflow):
        workflow = make_workflow(audit)
        await workflow.start()
        await answer_all(db_session, audit)
        await workflow.advance()

        state = await workflow.advance()

        assert state["phases_run"] == []
        assert audit.status == AuditStatus.COMPLETE
        with pytest.raises(PhaseTransitionError):
            await workflow.run_phase(WorkflowPhase.SYNTHESIZING)


class TestFailureAndResume:
    """Test failure recording and resuming."""

    @pytest.mark.asyncio
    async def test_crawl_failure_is_recorded(self, db_session, audit, make_workflow, broken_fetcher, site_fetcher):
        workflow = make_workflow(audit, fetcher=broken_fetcher)

        with pytest.raises(AuditPhaseError):
            await workflow.start()

        assert audit.status == AuditStatus.FAILED
        assert audit.failed_phase == WorkflowPhase.CRAWLING
        assert audit.current_phase == WorkflowPhase.CRAWLING
        assert "fetcher exploded" in audit.error_message

        workflow.fetcher = site_fetcher
        state = await workflow.resume()

        assert state["phases_run"] == ["crawling", "prioritizing", "questioning"]
        assert audit.failed_phase is None
        assert audit.error_message is None
        assert audit.status == AuditStatus.COLLECTING

    @pytest.mark.asyncio
    async def test_resume_starts_at_failed_phase(self, db_session, audit, make_workflow):
        workflow = make_workflow(audit)

        failing = AsyncMock(side_effect=RuntimeError("scores table locked"))
        with patch.object(PriorityScorer, "score_pages", failing), pytest.raises(AuditPhaseError):
            await workflow.start()

        assert audit.failed_phase == WorkflowPhase.PRIORITIZING
        assert audit.last_completed_phase == WorkflowPhase.CRAWLING
        assert await count(db_session, DiscoveredPage) == 3

        state = await workflow.resume()

        assert state["phases_run"] == ["prioritizing", "questioning"]
        assert audit.status == AuditStatus.COLLECTING

    @pytest.mark.asyncio
    async def test_failed_audit_does_not_advance(self, audit, make_workflow, broken_fetcher):
        workflow = make_workflow(audit, fetcher=broken_fetcher)
        with pytest.raises(AuditPhaseError):
            await workflow.start()

        state = await workflow.advance()

        assert state["phases_run"] == []
        assert audit.status == AuditStatus.FAILED

    @pytest.mark.asyncio
    async def test_only_failed_audits_resume(self, audit, make_workflow):
        with pytest.raises(PhaseTransitionError, match="only failed audits can be resumed"):
            await make_workflow(audit).resume()


class TestAuditServices:
    """Test answering and deletion."""

    @pytest.mark.asyncio
    async def test_question_can_only_be_resolved_once(self, db_session, audit, make_workflow):
        await make_workflow(audit).start()
        service = AuditQuestionService(db_session)
        question = (await service.list_questions(audit.id))[0]

        await service.answer(audit, question, "Get started today")

        assert question.status == QuestionStatus.ANSWERED
        assert question.user_response == "Get started today"
        with pytest.raises(ConflictError):
            await service.skip(audit, question)
        assert await service.pending_count(audit.id) == 1

    @pytest.mark.asyncio
    async def test_delete_cascades(self, db_session, audit, make_workflow):
        workflow = make_workflow(audit)
        await workflow.start()
        await answer_all(db_session, audit)
        await workflow.advance()

        await AuditService(db_session).delete(audit)
        await db_session.commit()

        assert await count(db_session, Audit) == 0
        assert await count(db_session, DiscoveredPage) == 0
        assert await count(db_session, AuditQuestion) == 0
        assert await count(db_session, PageData) == 0
        assert await count(db_session, AdaptiveTest) == 0
