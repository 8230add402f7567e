"""
Clarifying questions for high-priority pages.

The AI advisor proposes 2-3 contextual questions per page; without an
answer a static CTA question (plus a purpose question for ambiguous pages)
is used instead.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cro_auditor.integrations.ai_advisor import AIAdvisor
from cro_auditor.models.audit import Audit, AuditQuestion, QuestionType
from cro_auditor.models.page import DiscoveredPage, PageType
from cro_auditor.core.urls import url_path

logger = logging.getLogger(__name__)

MIN_AI_QUESTIONS_PER_PAGE = 2
MAX_QUESTIONS_PER_PAGE = 3

PAGE_PURPOSE_OPTIONS = ["Sell product", "Capture leads", "Educate visitors", "Provide support", "Other"]

QUESTIONS_PROMPT = """You are a CRO expert auditing a website. Generate 2-3 smart questions to ask the site owner
that will help you understand conversion optimization opportunities.

Questions should be:
- Specific to the page type and context
- Focused on conversion elements (CTAs, goals, friction points)
- Answerable by someone who knows their business

Respond with JSON:
{"questions": [
  {
    "type": "cta_identification",
    "question": "Which button should visitors click first?",
    "options": ["Get Started", "Learn More", "Contact Us", "Other"]
  }
]}

Question types: cta_identification, page_purpose, competing_actions, target_audience, conversion_goal, clarity_check"""


def cta_options(metadata: dict[str, Any]) -> list[str]:
    options = ["Enter CSS selector manually"]
    if (metadata.get("button_count") or 0) > 0:
        options.append("Primary button (largest/most prominent)")
        options.append("Form submit button")
    options.append("Text link")
    options.append("No clear CTA")
    return options


def has_ambiguous_purpose(page: DiscoveredPage) -> bool:
    return page.page_type == PageType.OTHER or (
        page.page_type == PageType.PRODUCT and (page.metadata_dict.get("form_count") or 0) == 0
    )


def truncate_path(url: str) -> str:
    path = url_path(url)
    return f"{path[:38]}..." if len(path) > 40 else path


def static_questions(page: DiscoveredPage) -> list[dict[str, Any]]:
    questions = [{
        "type": QuestionType.CTA_IDENTIFICATION,
        "question": (
            f"On {page.page_type.value} ({truncate_path(page.url)}), "
            "which element is the primary call-to-action?"
        ),
        "options": cta_options(page.metadata_dict),
    }]
    if has_ambiguous_purpose(page):
        questions.append({
            "type": QuestionType.PAGE_PURPOSE,
            "question": "What is the primary purpose of this page?",
            "options": PAGE_PURPOSE_OPTIONS,
        })
    return questions


def parse_ai_questions(result: Any) -> list[dict[str, Any]]:
    """Keep well-formed questions of known types, at most three."""
    if isinstance(result, dict):
        result = result.get("questions")
    if not isinstance(result, list):
        return []

    questions = []
    for item in result:
        if not isinstance(item, dict) or not item.get("question"):
            continue
        try:
            question_type = QuestionType(item.get("type"))
        except ValueError:
            continue
        options = item.get("options")
        questions.append({
            "type": question_type,
            "question": str(item["question"]),
            "options": [str(o) for o in options] if isinstance(options, list) else None,
        })
        if len(questions) >= MAX_QUESTIONS_PER_PAGE:
            break
    return questions


class QuestionGenerator:
    """Creates owner questions for an audit's priority pages."""

    def __init__(self, db: AsyncSession, advisor: AIAdvisor):
        self.db = db
        self.advisor = advisor

    async def create_contextual_questions(self, audit: Audit) -> list[AuditQuestion]:
        result = await self.db.execute(
            select(DiscoveredPage)
            .where(
                DiscoveredPage.audit_id == audit.id,
                DiscoveredPage.is_priority_page.is_(True),
            )
            .order_by(DiscoveredPage.priority_score.desc())
        )
        pages = list(result.scalars().all())

        created: list[AuditQuestion] = []
        for page in pages:
            created.extend(await self.generate_page_questions(audit, page))

        await self.db.flush()
        logger.info(f"Created {len(created)} questions for {len(pages)} priority pages")
        return created

    async def generate_page_questions(self, audit: Audit, page: DiscoveredPage) -> list[AuditQuestion]:
        proposals = parse_ai_questions(await self._ask_ai(page))
        if len(proposals) < MIN_AI_QUESTIONS_PER_PAGE:
            logger.info(f"Using static questions for {page.url} ({len(proposals)} usable AI questions)")
            proposals = static_questions(page)

        existing = await self.db.execute(
            select(AuditQuestion.question_type).where(
                AuditQuestion.audit_id == audit.id,
                AuditQuestion.discovered_page_id == page.id,
            )
        )
        seen_types = set(existing.scalars().all())

        questions = []
        for proposal in proposals:
            if proposal["type"] in seen_types:
                continue
            seen_types.add(proposal["type"])
            question = AuditQuestion(
                audit_id=audit.id,
                discovered_page_id=page.id,
                question_type=proposal["type"],
                question_text=proposal["question"],
                options={"choices": proposal["options"]} if proposal["options"] else None,
            )
            self.db.add(question)
            questions.append(question)
        return questions

    async def _ask_ai(self, page: DiscoveredPage) -> Optional[Any]:
        metadata = page.metadata_dict
        user_prompt = f"""Generate questions for this page:

URL: {page.url}
Page Type: {page.page_type.value}
Title: {metadata.get('title')}
Has Forms: {(metadata.get('form_count') or 0) > 0}
Button Count: {metadata.get('button_count')}
Word Count: {metadata.get('word_count')}

What should I ask the site owner to better understand this page's conversion strategy?"""

        return await self.advisor.analyze_with_json(QUESTIONS_PROMPT, user_prompt)
