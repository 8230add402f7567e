"""
LangGraph Agent Workflows

The audit phase state machine, built on a LangGraph StateGraph.
"""

from cro_auditor.agents.workflows.audit_workflow import (
    AuditState,
    AuditWorkflow,
    route_phase,
    run_audit_workflow,
    select_analysis_pages,
)

__all__ = [
    "AuditState",
    "AuditWorkflow",
    "route_phase",
    "run_audit_workflow",
    "select_analysis_pages",
]
