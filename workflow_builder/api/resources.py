"""Read-only resources: workflows, executions, execution statistics and nodes."""
from datetime import datetime
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException

from workflow_builder.api.tools import ToolContext, get_tool_context
from workflow_builder.models.api import ExecutionListOptions, ExecutionStats, NodeInfo, NodeListResponse
from workflow_builder.n8n.client import N8NClientError

logger = structlog.get_logger()

router = APIRouter(prefix="/resources")

STATS_SAMPLE_SIZE = 100


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def compute_execution_stats(executions: list[dict[str, Any]]) -> ExecutionStats:
    """Summarize a page of executions.

    An execution counts as failed when its mode is "error", as succeeded when
    it finished otherwise, and as waiting while unfinished.
    """
    total_ms = 0.0
    timed = 0
    for execution in executions:
        if not execution.get("finished"):
            continue
        started = _parse_timestamp(execution.get("startedAt"))
        stopped = _parse_timestamp(execution.get("stoppedAt"))
        if started and stopped:
            total_ms += (stopped - started).total_seconds() * 1000
            timed += 1

    avg_ms = total_ms / timed if timed else 0
    return ExecutionStats(
        total=len(executions),
        succeeded=sum(1 for e in executions if e.get("finished") and e.get("mode") != "error"),
        failed=sum(1 for e in executions if e.get("mode") == "error"),
        waiting=sum(1 for e in executions if not e.get("finished")),
        avgExecutionTime=f"{avg_ms / 1000:.2f}s",
    )


def _raise_upstream(e: N8NClientError) -> None:
    raise HTTPException(status_code=e.status_code or 502, detail=str(e)) from e


@router.get("/workflows")
async def workflows_resource(ctx: ToolContext = Depends(get_tool_context)) -> Any:
    try:
        return await ctx.n8n.list_workflows()
    except N8NClientError as e:
        _raise_upstream(e)


@router.get("/workflows/{workflow_id}")
async def workflow_resource(workflow_id: str, ctx: ToolContext = Depends(get_tool_context)) -> Any:
    try:
        return await ctx.n8n.get_workflow(workflow_id)
    except N8NClientError as e:
        _raise_upstream(e)


@router.get("/executions/{execution_id}")
async def execution_resource(execution_id: str, ctx: ToolContext = Depends(get_tool_context)) -> Any:
    try:
        return await ctx.n8n.get_execution(execution_id)
    except N8NClientError as e:
        _raise_upstream(e)


@router.get("/execution-stats", response_model=ExecutionStats, response_model_exclude_none=True)
async def execution_stats_resource(ctx: ToolContext = Depends(get_tool_context)) -> ExecutionStats:
    """Statistics over the most recent executions; zeros when n8n cannot be reached."""
    try:
        page = await ctx.n8n.list_executions(ExecutionListOptions(limit=STATS_SAMPLE_SIZE))
    except N8NClientError as e:
        logger.error("execution_stats_error", error=str(e))
        return ExecutionStats(error="Failed to retrieve execution statistics")
    return compute_execution_stats(page.get("data", []))


@router.get("/nodes", response_model=NodeListResponse, response_model_exclude_none=True)
async def nodes_resource(ctx: ToolContext = Depends(get_tool_context)) -> NodeListResponse:
    try:
        return await ctx.catalog.list_nodes()
    except N8NClientError as e:
        _raise_upstream(e)


@router.get("/nodes/{node_name}", response_model=NodeInfo, response_model_exclude_none=True)
async def node_resource(node_name: str, ctx: ToolContext = Depends(get_tool_context)) -> NodeInfo:
    try:
        return await ctx.catalog.get_node_info(node_name)
    except N8NClientError as e:
        _raise_upstream(e)
