"""Tool-call endpoints exposing n8n workflow operations.

`GET /tools` lists the available tools with their JSON input schemas and
`POST /tools/{name}` invokes one with a JSON object of arguments. Results are
returned as text content blocks holding pretty-printed JSON.
"""
import json
from functools import cached_property
from typing import Any, Awaitable, Callable, Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError

from workflow_builder.config import get_settings
from workflow_builder.models.api import ExecutionListOptions
from workflow_builder.n8n.builder import build_workflow
from workflow_builder.n8n.client import N8NClient, N8NClientError
from workflow_builder.n8n.errors import InvalidInputError, NodeNotFoundError
from workflow_builder.n8n.node_catalog import NodeCatalogClient
from workflow_builder.n8n.normalizer import normalize_with_diagnostics

logger = structlog.get_logger()

router = APIRouter()


class TextContent(BaseModel):
    type: str = "text"
    text: str


class ToolCallResponse(BaseModel):
    """Result of a tool call."""

    content: list[TextContent]
    isError: bool = False


class ToolDefinition(BaseModel):
    name: str
    description: str
    inputSchema: dict = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ToolContext:
    """Lazily created collaborators for a tool call.

    Clients are only constructed when a tool needs them, so node catalog tools
    keep working when n8n itself is not configured.
    """

    def __init__(
        self,
        n8n_factory: Callable[[], N8NClient] = N8NClient,
        catalog_factory: Callable[[], NodeCatalogClient] = NodeCatalogClient,
        infer_connection_source: Optional[bool] = None,
    ):
        self._n8n_factory = n8n_factory
        self._catalog_factory = catalog_factory
        if infer_connection_source is None:
            infer_connection_source = get_settings().infer_connection_source
        self.infer_connection_source = infer_connection_source

    @cached_property
    def n8n(self) -> N8NClient:
        try:
            return self._n8n_factory()
        except ValueError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e

    @cached_property
    def catalog(self) -> NodeCatalogClient:
        return self._catalog_factory()


def get_tool_context() -> ToolContext:
    return ToolContext()


# =============================================================================
# Tool definitions
# =============================================================================

_ID_SCHEMA = {
    "type": "object",
    "properties": {"id": {"type": "string"}},
    "required": ["id"],
}

TOOL_DEFINITIONS: list[ToolDefinition] = [
    ToolDefinition(name="list_workflows", description="List all workflows from n8n"),
    ToolDefinition(
        name="create_workflow",
        description=(
            "Create a new workflow in n8n. Node types must include the full prefix "
            '(e.g. "n8n-nodes-base.webhook", not just "webhook"). Do not include '
            '"tags" or "active" properties as they are read-only.'
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "nodes": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {
                                "type": "string",
                                "description": 'Full node type identifier including namespace (e.g. "n8n-nodes-base.webhook")',
                            },
                            "name": {"type": "string"},
                            "parameters": {"type": "object"},
                            "position": {
                                "type": "array",
                                "items": {"type": "number"},
                                "description": "Node position as [x, y] coordinates",
                            },
                        },
                        "required": ["type", "name"],
                    },
                },
                "connections": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "source": {"type": "string"},
                            "target": {"type": "string"},
                            "sourceOutput": {"type": "number", "default": 0},
                            "targetInput": {"type": "number", "default": 0},
                        },
                        "required": ["source", "target"],
                    },
                },
                "settings": {
                    "type": "object",
                    "properties": {
                        "saveExecutionProgress": {"type": "boolean"},
                        "saveManualExecutions": {"type": "boolean"},
                    },
                },
            },
            "required": ["nodes"],
        },
    ),
    ToolDefinition(name="get_workflow", description="Get a workflow by ID", inputSchema=_ID_SCHEMA),
    ToolDefinition(
        name="update_workflow",
        description="Update an existing workflow",
        inputSchema={
            "type": "object",
            "properties": {
                "id": {"type": "string"},
                "name": {"type": "string"},
                "nodes": {"type": "array"},
                "connections": {"type": ["array", "object"]},
                "settings": {"type": "object"},
            },
            "required": ["id", "nodes"],
        },
    ),
    ToolDefinition(name="delete_workflow", description="Delete a workflow by ID", inputSchema=_ID_SCHEMA),
    ToolDefinition(name="activate_workflow", description="Activate a workflow by ID", inputSchema=_ID_SCHEMA),
    ToolDefinition(name="deactivate_workflow", description="Deactivate a workflow by ID", inputSchema=_ID_SCHEMA),
    ToolDefinition(name="list_nodes", description="List all available n8n nodes from GitHub"),
    ToolDefinition(
        name="get_node_info",
        description="Get detailed information and documentation for a specific n8n node",
        inputSchema={
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "required": ["name"],
        },
    ),
    ToolDefinition(
        name="list_executions",
        description="List all executions from n8n with optional filters",
        inputSchema={
            "type": "object",
            "properties": {
                "includeData": {"type": "boolean"},
                "status": {"type": "string", "enum": ["error", "success", "waiting"]},
                "workflowId": {"type": "string"},
                "projectId": {"type": "string"},
                "limit": {"type": "number"},
                "cursor": {"type": "string"},
            },
        },
    ),
    ToolDefinition(
        name="get_execution",
        description="Get details of a specific execution by ID",
        inputSchema={
            "type": "object",
            "properties": {"id": {"type": "number"}, "includeData": {"type": "boolean"}},
            "required": ["id"],
        },
    ),
    ToolDefinition(
        name="delete_execution",
        description="Delete an execution by ID",
        inputSchema={
            "type": "object",
            "properties": {"id": {"type": "number"}},
            "required": ["id"],
        },
    ),
]


# =============================================================================
# Handlers
# =============================================================================


def _text(payload: Any) -> TextContent:
    return TextContent(text=json.dumps(payload, indent=2, default=str))


def _require(args: dict, key: str, label: str) -> Any:
    value = args.get(key)
    if value is None or value == "":
        raise HTTPException(status_code=400, detail=f"{label} is required")
    return value


async def _list_workflows(args: dict, ctx: ToolContext) -> list[TextContent]:
    return [_text(await ctx.n8n.list_workflows())]


async def _create_workflow(args: dict, ctx: ToolContext) -> list[TextContent]:
    workflow = build_workflow(
        nodes=args.get("nodes"),
        connections=args.get("connections"),
        name=args.get("name"),
        settings=args.get("settings"),
    )
    logger.info("create_workflow_tool", workflow_name=workflow.name, node_count=len(workflow.nodes))
    return [_text(await ctx.n8n.create_workflow(workflow))]


async def _update_workflow(args: dict, ctx: ToolContext) -> list[TextContent]:
    workflow_id = _require(args, "id", "Workflow ID")
    raw = {
        "nodes": args.get("nodes"),
        "connections": args.get("connections") or [],
        "name": args.get("name"),
        "settings": args.get("settings"),
    }
    if not raw["name"]:
        # PUT replaces the workflow, so keep its current name
        existing = await ctx.n8n.get_workflow(workflow_id)
        raw["name"] = existing.get("name")

    result = normalize_with_diagnostics(raw, infer_source=ctx.infer_connection_source)
    content = [_text(await ctx.n8n.update_workflow(workflow_id, result.workflow))]
    if result.diagnostics:
        content.append(_text({"warnings": [d.model_dump(mode="json") for d in result.diagnostics]}))
    return content


async def _get_workflow(args: dict, ctx: ToolContext) -> list[TextContent]:
    return [_text(await ctx.n8n.get_workflow(_require(args, "id", "Workflow ID")))]


async def _delete_workflow(args: dict, ctx: ToolContext) -> list[TextContent]:
    return [_text(await ctx.n8n.delete_workflow(_require(args, "id", "Workflow ID")))]


async def _activate_workflow(args: dict, ctx: ToolContext) -> list[TextContent]:
    return [_text(await ctx.n8n.activate_workflow(_require(args, "id", "Workflow ID")))]


async def _deactivate_workflow(args: dict, ctx: ToolContext) -> list[TextContent]:
    return [_text(await ctx.n8n.deactivate_workflow(_require(args, "id", "Workflow ID")))]


async def _list_executions(args: dict, ctx: ToolContext) -> list[TextContent]:
    try:
        options = ExecutionListOptions.model_validate(args)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid execution filters: {e}") from e
    return [_text(await ctx.n8n.list_executions(options))]


async def _get_execution(args: dict, ctx: ToolContext) -> list[TextContent]:
    execution_id = _require(args, "id", "Execution ID")
    return [_text(await ctx.n8n.get_execution(execution_id, bool(args.get("includeData"))))]


async def _delete_execution(args: dict, ctx: ToolContext) -> list[TextContent]:
    return [_text(await ctx.n8n.delete_execution(_require(args, "id", "Execution ID")))]


async def _list_nodes(args: dict, ctx: ToolContext) -> list[TextContent]:
    nodes = await ctx.catalog.list_nodes()
    return [_text(nodes.model_dump(exclude_none=True))]


async def _get_node_info(args: dict, ctx: ToolContext) -> list[TextContent]:
    info = await ctx.catalog.get_node_info(_require(args, "name", "Node name"))
    return [_text(info.model_dump(exclude_none=True))]


ToolHandler = Callable[[dict, ToolContext], Awaitable[list[TextContent]]]

TOOL_HANDLERS: dict[str, ToolHandler] = {
    "list_workflows": _list_workflows,
    "create_workflow": _create_workflow,
    "get_workflow": _get_workflow,
    "update_workflow": _update_workflow,
    "delete_workflow": _delete_workflow,
    "activate_workflow": _activate_workflow,
    "deactivate_workflow": _deactivate_workflow,
    "list_executions": _list_executions,
    "get_execution": _get_execution,
    "delete_execution": _delete_execution,
    "list_nodes": _list_nodes,
    "get_node_info": _get_node_info,
}


# =============================================================================
# Routes
# =============================================================================


@router.get("/tools", response_model=list[ToolDefinition])
async def list_tools() -> list[ToolDefinition]:
    """List available tools and their input schemas."""
    return TOOL_DEFINITIONS


@router.post("/tools/{name}", response_model=ToolCallResponse)
async def call_tool(
    name: str,
    arguments: Optional[dict] = Body(None),
    ctx: ToolContext = Depends(get_tool_context),
) -> ToolCallResponse:
    """
    Invoke a tool by name.

    Malformed arguments fail the request (400, or 404 for unknown nodes);
    errors reported by n8n or GitHub are returned in-band with isError set.
    """
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")

    args = arguments or {}
    logger.info("tool_call", tool=name, argument_keys=list(args.keys()))

    try:
        content = await handler(args, ctx)
    except InvalidInputError as e:
        logger.warning("tool_invalid_input", tool=name, error=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except NodeNotFoundError as e:
        logger.warning("tool_node_not_found", tool=name, node_id=e.node_id)
        raise HTTPException(status_code=404, detail=str(e))
    except N8NClientError as e:
        error_detail = str(e)
        if e.response_body:
            error_detail = f"{e}: {e.response_body}"
        logger.error("tool_call_failed", tool=name, error=str(e), status_code=e.status_code)
        return ToolCallResponse(content=[TextContent(text=f"Error: {error_detail}")], isError=True)

    return ToolCallResponse(content=content)
