"""n8n REST API client for workflow and execution management.

Handles:
- Creating, updating, reading and deleting workflows
- Activating and deactivating workflows
- Listing, reading and deleting executions
"""
from typing import Any, Optional, Union

import httpx
import structlog

from workflow_builder.config import get_settings
from workflow_builder.models.api import ExecutionListOptions
from workflow_builder.models.workflow import WorkflowSpec

logger = structlog.get_logger()


class N8NClientError(Exception):
    """Exception for n8n (and GitHub) API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


def read_error_body(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"message": response.text}


class N8NClient:
    """Client for the n8n public REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.n8n_host).rstrip("/")
        self.api_key = api_key or settings.n8n_api_key
        self.timeout = timeout or settings.request_timeout
        self._transport = transport

        if not self.base_url:
            raise ValueError("n8n host not configured")
        if not self.api_key:
            raise ValueError("n8n API key not configured")

        self.headers = {
            "X-N8N-API-KEY": self.api_key,
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Make an HTTP request to the n8n API."""

        url = f"{self.base_url}{endpoint}"

        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self.headers,
                    json=json,
                    params=params,
                    timeout=self.timeout,
                )
            except httpx.HTTPError as e:
                logger.error("n8n_api_error", method=method, endpoint=endpoint, error=str(e))
                raise N8NClientError(f"HTTP error: {str(e)}") from e

        # Log request (without sensitive data)
        logger.debug(
            "n8n_api_request",
            method=method,
            endpoint=endpoint,
            status_code=response.status_code,
        )

        if response.status_code >= 400:
            error_body = read_error_body(response)
            logger.error(
                "n8n_api_error",
                method=method,
                endpoint=endpoint,
                status_code=response.status_code,
                response_body=error_body,
            )
            raise N8NClientError(
                f"n8n API error: {response.status_code}",
                status_code=response.status_code,
                response_body=error_body,
            )

        return response.json() if response.content else {}

    # -------------------------------------------------------------------------
    # Workflows
    # -------------------------------------------------------------------------

    async def create_workflow(self, workflow: Union[WorkflowSpec, dict]) -> dict:
        """Create a new workflow in n8n.

        Args:
            workflow: The canonical workflow (or its n8n JSON)

        Returns:
            The created workflow data including the assigned ID
        """
        body = workflow.to_n8n() if isinstance(workflow, WorkflowSpec) else workflow
        logger.info("create_workflow", name=body.get("name"), node_count=len(body.get("nodes", [])))

        result = await self._request(method="POST", endpoint="/workflows", json=body)

        logger.info("workflow_created", workflow_id=result.get("id"), name=result.get("name"))
        return result

    async def update_workflow(self, workflow_id: str, workflow: Union[WorkflowSpec, dict]) -> dict:
        """Replace an existing workflow."""
        body = workflow.to_n8n() if isinstance(workflow, WorkflowSpec) else workflow
        logger.info("update_workflow", workflow_id=workflow_id)

        result = await self._request(method="PUT", endpoint=f"/workflows/{workflow_id}", json=body)

        logger.info("workflow_updated", workflow_id=workflow_id)
        return result

    async def get_workflow(self, workflow_id: str) -> dict:
        logger.debug("get_workflow", workflow_id=workflow_id)
        return await self._request(method="GET", endpoint=f"/workflows/{workflow_id}")

    async def list_workflows(self) -> dict:
        """List all workflows (paginated n8n response with `data` and `nextCursor`)."""
        return await self._request(method="GET", endpoint="/workflows")

    async def delete_workflow(self, workflow_id: str) -> dict:
        logger.info("delete_workflow", workflow_id=workflow_id)
        return await self._request(method="DELETE", endpoint=f"/workflows/{workflow_id}")

    async def activate_workflow(self, workflow_id: str) -> dict:
        """Activate a workflow (enable triggers)."""
        logger.info("activate_workflow", workflow_id=workflow_id)
        return await self._request(method="POST", endpoint=f"/workflows/{workflow_id}/activate")

    async def deactivate_workflow(self, workflow_id: str) -> dict:
        """Deactivate a workflow (disable triggers)."""
        logger.info("deactivate_workflow", workflow_id=workflow_id)
        return await self._request(method="POST", endpoint=f"/workflows/{workflow_id}/deactivate")

    # -------------------------------------------------------------------------
    # Executions
    # -------------------------------------------------------------------------

    async def list_executions(self, options: Optional[ExecutionListOptions] = None) -> dict:
        """List executions with optional filters.

        The endpoint is cursor-paginated: pass the returned `nextCursor` as
        `cursor` to fetch the next page, until no `nextCursor` comes back.
        """
        params = (options or ExecutionListOptions()).to_params()
        logger.debug("list_executions", params=params)
        return await self._request(method="GET", endpoint="/executions", params=params or None)

    async def get_execution(self, execution_id: Union[int, str], include_data: bool = False) -> dict:
        """Get a specific execution by ID.

        Args:
            execution_id: The execution ID
            include_data: Whether to include full execution data (node outputs)
        """
        params = {"includeData": "true"} if include_data else None
        logger.debug("get_execution", execution_id=execution_id, include_data=include_data)
        return await self._request(method="GET", endpoint=f"/executions/{execution_id}", params=params)

    async def delete_execution(self, execution_id: Union[int, str]) -> dict:
        logger.info("delete_execution", execution_id=execution_id)
        return await self._request(method="DELETE", endpoint=f"/executions/{execution_id}")
