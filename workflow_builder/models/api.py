"""Request and response models for the n8n and GitHub collaborators."""
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ExecutionListOptions(BaseModel):
    """Filters accepted by GET /executions."""

    includeData: Optional[bool] = None
    status: Optional[Literal["error", "success", "waiting"]] = None
    workflowId: Optional[str] = None
    projectId: Optional[str] = None
    limit: Optional[int] = Field(None, ge=1, le=250)
    cursor: Optional[str] = None

    def to_params(self) -> dict[str, str]:
        """Query parameters for the set options only."""
        params = {}
        for key, value in self.model_dump(exclude_none=True).items():
            params[key] = str(value).lower() if isinstance(value, bool) else str(value)
        return params


class NodeInfo(BaseModel):
    """Documentation summary of an n8n node package."""

    name: str
    displayName: str
    description: str
    documentationUrl: str
    readmePath: Optional[str] = None
    readmeContent: Optional[str] = None
    readmeHtml: Optional[str] = None


class NodeListResponse(BaseModel):
    nodes: list[NodeInfo] = Field(default_factory=list)


class ExecutionStats(BaseModel):
    """Summary over a page of recent executions."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    waiting: int = 0
    avgExecutionTime: str = "0s"
    error: Optional[str] = None
