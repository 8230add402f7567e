"""
External collaborators: page fetching, the LLM and screenshot capture.
"""

from cro_auditor.integrations.ai_advisor import AIAdvisor
from cro_auditor.integrations.fetcher import DocumentFetcher, FetchResult, parse_html
from cro_auditor.integrations.llm import LLMClient, LLMConfig
from cro_auditor.integrations.screenshots import ScreenshotService

__all__ = [
    "AIAdvisor",
    "DocumentFetcher",
    "FetchResult",
    "parse_html",
    "LLMClient",
    "LLMConfig",
    "ScreenshotService",
]
