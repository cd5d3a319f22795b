"""n8n integration modules."""
from workflow_builder.n8n.builder import WorkflowBuilder, WorkflowDraft, build_workflow
from workflow_builder.n8n.client import N8NClient, N8NClientError
from workflow_builder.n8n.errors import InvalidInputError, NodeNotFoundError, WorkflowSpecError
from workflow_builder.n8n.node_catalog import NodeCatalogClient, NodeCatalogError
from workflow_builder.n8n.normalizer import normalize_with_diagnostics, normalize_workflow

__all__ = [
    "WorkflowBuilder",
    "WorkflowDraft",
    "build_workflow",
    "N8NClient",
    "N8NClientError",
    "InvalidInputError",
    "NodeNotFoundError",
    "WorkflowSpecError",
    "NodeCatalogClient",
    "NodeCatalogError",
    "normalize_with_diagnostics",
    "normalize_workflow",
]
