"""
Audit Workflow

LangGraph state machine that drives one CRO audit through its phases.

Flow:
1. crawling      - discover pages, count backlinks
2. prioritizing  - score pages, pick priority pages
3. questioning   - ask the owner about priority pages, then wait
4. analyzing     - homepage plus top pages by backlinks
5. synthesizing  - insights, score and executive summary

Each phase commits before the next starts. The graph stops after
questioning while any question is pending; answering the last one and
calling advance() picks up at analyzing. A phase that raises marks the
audit failed and is never retried automatically.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, TypedDict

from langgraph.graph import END, StateGraph
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cro_auditor.config import settings
from cro_auditor.core.exceptions import AuditPhaseError, PhaseTransitionError
from cro_auditor.integrations.ai_advisor import AIAdvisor
from cro_auditor.integrations.fetcher import DocumentFetcher
from cro_auditor.integrations.screenshots import ScreenshotService
from cro_auditor.models.audit import (
    PHASE_STATUS,
    PHASES,
    Audit,
    AuditQuestion,
    AuditStatus,
    QuestionStatus,
    WorkflowPhase,
)
from cro_auditor.models.page import DiscoveredPage, PageType
from cro_auditor.services.adaptive_analyzer import AdaptiveAnalyzer
from cro_auditor.services.crawler import CrawlConfig, Fetcher, SiteCrawler
from cro_auditor.services.prioritizer import PriorityScorer
from cro_auditor.services.question_generator import QuestionGenerator
from cro_auditor.services.synthesizer import ResultsSynthesizer

logger = logging.getLogger(__name__)


class AuditState(TypedDict):
    """State for the audit workflow graph."""
    audit_id: str
    # Phase the graph will run next; None once the audit is complete
    next_phase: Optional[str]
    pending_questions: int
    phases_run: list


def next_phase_after(phase: WorkflowPhase) -> Optional[WorkflowPhase]:
    index = PHASES.index(phase)
    return PHASES[index + 1] if index + 1 < len(PHASES) else None


def route_phase(state: AuditState) -> str:
    """Pick the node for state["next_phase"], or end the run."""
    phase = state.get("next_phase")
    if phase is None:
        return "end"
    if phase == WorkflowPhase.ANALYZING.value and state.get("pending_questions", 0) > 0:
        return "end"
    return phase


def select_analysis_pages(pages: list[DiscoveredPage], extra: int) -> list[DiscoveredPage]:
    """Homepage first, then the best-linked other pages."""
    homepage = next((p for p in pages if p.page_type == PageType.HOMEPAGE), None)
    others = sorted(
        (p for p in pages if p is not homepage),
        key=lambda p: (-p.inbound_links_count, -(p.priority_score or 0), p.url),
    )
    selected = [homepage] if homepage is not None else []
    return selected + others[:extra]


class AuditWorkflow:
    """Phase state machine for one audit, bound to a database session."""

    def __init__(
        self,
        db: AsyncSession,
        audit: Audit,
        advisor: Optional[AIAdvisor] = None,
        fetcher: Optional[Fetcher] = None,
        screenshots: Optional[ScreenshotService] = None,
    ):
        self.db = db
        self.audit = audit
        self.advisor = advisor or AIAdvisor()
        self.fetcher = fetcher
        self.screenshots = screenshots
        self.graph = self._build_graph()

    def _build_graph(self) -> StateGraph:
        workflow = StateGraph(AuditState)

        workflow.add_node(WorkflowPhase.CRAWLING.value, self._node(WorkflowPhase.CRAWLING, self.crawl))
        workflow.add_node(WorkflowPhase.PRIORITIZING.value, self._node(WorkflowPhase.PRIORITIZING, self.prioritize))
        workflow.add_node(WorkflowPhase.QUESTIONING.value, self._node(WorkflowPhase.QUESTIONING, self.question))
        workflow.add_node(WorkflowPhase.ANALYZING.value, self._node(WorkflowPhase.ANALYZING, self.analyze))
        workflow.add_node(WorkflowPhase.SYNTHESIZING.value, self._node(WorkflowPhase.SYNTHESIZING, self.synthesize))

        routes = {phase.value: phase.value for phase in PHASES}
        routes["end"] = END

        workflow.set_conditional_entry_point(route_phase, routes)
        for phase in PHASES:
            workflow.add_conditional_edges(phase.value, route_phase, routes)

        return workflow.compile()

    def _node(
        self,
        phase: WorkflowPhase,
        handler: Callable[[], Awaitable[Dict[str, Any]]],
    ) -> Callable[[AuditState], Awaitable[Dict[str, Any]]]:
        async def node(state: AuditState) -> Dict[str, Any]:
            updates = await self._execute_phase(phase, handler)
            following = next_phase_after(phase)
            return {
                "next_phase": following.value if following else None,
                "phases_run": [*state.get("phases_run", []), phase.value],
                **updates,
            }
        return node

    async def _execute_phase(
        self,
        phase: WorkflowPhase,
        handler: Callable[[], Awaitable[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        audit = self.audit
        logger.info(f"Audit {audit.id}: starting phase {phase.value}")
        audit.current_phase = phase
        audit.status = PHASE_STATUS[phase]
        await self.db.commit()

        try:
            updates = await handler()
        except Exception as e:
            await self._fail(phase, e)
            raise AuditPhaseError(audit.id, phase.value, e) from e

        audit.last_completed_phase = phase
        following = next_phase_after(phase)
        if following is None:
            audit.status = AuditStatus.COMPLETE
            audit.completed_at = datetime.now(timezone.utc)
        else:
            audit.current_phase = following
        await self.db.commit()

        logger.info(f"Audit {audit.id}: completed phase {phase.value}")
        return updates or {}

    async def _fail(self, phase: WorkflowPhase, error: Exception) -> None:
        logger.exception(f"Audit {self.audit.id} failed during {phase.value}: {error}")
        await self.db.rollback()
        await self.db.refresh(self.audit)
        self.audit.status = AuditStatus.FAILED
        self.audit.current_phase = phase
        self.audit.failed_phase = phase
        self.audit.error_message = str(error)[:2000]
        await self.db.commit()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def start(self) -> AuditState:
        """Run from crawling on a fresh audit."""
        if self.audit.current_phase is not None:
            raise PhaseTransitionError(
                WorkflowPhase.CRAWLING.value,
                self.audit.current_phase.value,
                "audit has already started",
            )
        self.audit.started_at = datetime.now(timezone.utc)
        return await self._invoke(WorkflowPhase.CRAWLING)

    async def advance(self) -> AuditState:
        """Continue from the audit's current phase as far as possible."""
        if self.audit.status in (AuditStatus.COMPLETE, AuditStatus.FAILED):
            logger.info(f"Audit {self.audit.id} is {self.audit.status.value}; nothing to advance")
            return await self._state(None)
        if self.audit.current_phase is None:
            return await self.start()
        return await self._invoke(WorkflowPhase(self.audit.current_phase))

    async def run_phase(self, phase: WorkflowPhase) -> AuditState:
        """Run exactly one phase; it must be the audit's current phase."""
        phase = WorkflowPhase(phase)
        current = self.audit.current_phase or WorkflowPhase.CRAWLING
        if self.audit.status in (AuditStatus.COMPLETE, AuditStatus.FAILED):
            raise PhaseTransitionError(phase.value, current.value, f"audit is {self.audit.status.value}")
        if phase != current:
            raise PhaseTransitionError(phase.value, current.value, "phases run in order")

        pending = await self.pending_questions()
        if phase == WorkflowPhase.ANALYZING and pending > 0:
            raise PhaseTransitionError(phase.value, current.value, f"{pending} questions still pending")

        if self.audit.started_at is None:
            self.audit.started_at = datetime.now(timezone.utc)
        handlers = {
            WorkflowPhase.CRAWLING: self.crawl,
            WorkflowPhase.PRIORITIZING: self.prioritize,
            WorkflowPhase.QUESTIONING: self.question,
            WorkflowPhase.ANALYZING: self.analyze,
            WorkflowPhase.SYNTHESIZING: self.synthesize,
        }
        await self._execute_phase(phase, handlers[phase])

        if self.audit.status == AuditStatus.COMPLETE:
            return await self._state(None)
        return await self._state(WorkflowPhase(self.audit.current_phase))

    async def resume(self) -> AuditState:
        """Restart a failed audit at the phase that failed."""
        audit = self.audit
        if audit.status != AuditStatus.FAILED or audit.failed_phase is None:
            raise PhaseTransitionError(
                "resume",
                audit.current_phase.value if audit.current_phase else None,
                "only failed audits can be resumed",
            )
        phase = WorkflowPhase(audit.failed_phase)
        logger.info(f"Resuming audit {audit.id} at {phase.value}")
        audit.failed_phase = None
        audit.error_message = None
        audit.current_phase = phase
        audit.status = PHASE_STATUS[phase]
        await self.db.commit()
        return await self._invoke(phase)

    async def _invoke(self, phase: WorkflowPhase) -> AuditState:
        return await self.graph.ainvoke(await self._state(phase))

    async def _state(self, phase: Optional[WorkflowPhase]) -> AuditState:
        return {
            "audit_id": str(self.audit.id),
            "next_phase": phase.value if phase else None,
            "pending_questions": await self.pending_questions(),
            "phases_run": [],
        }

    async def pending_questions(self) -> int:
        result = await self.db.execute(
            select(func.count(AuditQuestion.id)).where(
                AuditQuestion.audit_id == self.audit.id,
                AuditQuestion.status == QuestionStatus.PENDING,
            )
        )
        return result.scalar() or 0

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def crawl(self) -> Dict[str, Any]:
        audit = self.audit
        if audit.is_single_page:
            max_depth, max_pages = 0, 1
        else:
            max_depth, max_pages = settings.CRAWL_MAX_DEPTH, settings.CRAWL_MAX_PAGES

        crawler = SiteCrawler(
            audit.url,
            fetcher=self.fetcher,
            config=CrawlConfig(
                max_depth=max_depth,
                max_pages=max_pages,
                concurrent_requests=settings.CRAWL_CONCURRENCY,
            ),
        )
        discovered = await crawler.discover()
        backlinks = await crawler.calculate_backlinks(
            [p.url for p in discovered],
            refetch=not settings.BACKLINKS_REUSE_DISCOVERY,
        )

        # A resumed crawl starts from an empty page set
        await self.db.execute(delete(DiscoveredPage).where(DiscoveredPage.audit_id == audit.id))
        for data in discovered:
            self.db.add(DiscoveredPage(
                audit_id=audit.id,
                url=data.url,
                page_type=data.page_type,
                crawl_metadata={**data.metadata, "inbound_links_count": backlinks.get(data.url, 0)},
            ))
        audit.discovered_pages_count = len(discovered)
        await self.db.flush()

        logger.info(f"Audit {audit.id}: discovered {len(discovered)} pages")
        return {}

    async def prioritize(self) -> Dict[str, Any]:
        audit = self.audit
        scorer = PriorityScorer(self.db, self.advisor)
        result = await scorer.score_pages(audit)

        audit.priority_pages_count = await self._count_pages(DiscoveredPage.is_priority_page.is_(True))
        audit.merge_json("ai_decisions", prioritization=result.to_dict())
        return {}

    async def question(self) -> Dict[str, Any]:
        generator = QuestionGenerator(self.db, self.advisor)
        created = await generator.create_contextual_questions(self.audit)
        self.audit.questions_generated = (self.audit.questions_generated or 0) + len(created)
        return {"pending_questions": await self.pending_questions()}

    async def analyze(self) -> Dict[str, Any]:
        result = await self.db.execute(
            select(DiscoveredPage).where(DiscoveredPage.audit_id == self.audit.id)
        )
        pages = select_analysis_pages(list(result.scalars().all()), settings.ANALYSIS_EXTRA_PAGES)

        analyzer = AdaptiveAnalyzer(
            self.db,
            self.advisor,
            fetcher=self.fetcher,
            screenshots=self.screenshots,
        )
        analyses = await analyzer.analyze_pages(pages)
        self.audit.merge_json("ai_decisions", analyzed_pages=[a.url for a in analyses])
        return {}

    async def synthesize(self) -> Dict[str, Any]:
        report = await ResultsSynthesizer(self.db, self.advisor).synthesize(self.audit)
        self.audit.summary = report.summary
        self.audit.overall_score = report.score
        self.audit.raw_results = {"page_insights": report.page_insights}
        return {}

    async def _count_pages(self, *criteria) -> int:
        result = await self.db.execute(
            select(func.count(DiscoveredPage.id)).where(DiscoveredPage.audit_id == self.audit.id, *criteria)
        )
        return result.scalar() or 0


async def run_audit_workflow(
    db: AsyncSession,
    audit: Audit,
    advisor: Optional[AIAdvisor] = None,
) -> Dict[str, Any]:
    """
    Convenience function to drive an audit as far as it can go.

    Starts a fresh audit or advances one that is waiting on questions.

    Returns:
        Audit status summary after the run
    """
    async with DocumentFetcher() as fetcher:
        workflow = AuditWorkflow(db, audit, advisor=advisor, fetcher=fetcher)
        state = await workflow.advance()
    return {
        "audit_id": str(audit.id),
        "status": audit.status.value,
        "current_phase": audit.current_phase.value if audit.current_phase else None,
        "phases_run": state.get("phases_run", []),
        "pending_questions": state.get("pending_questions", 0),
    }
