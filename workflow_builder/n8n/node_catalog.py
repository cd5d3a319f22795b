"""Catalog of n8n nodes read from the n8n GitHub repository.

Node documentation lives next to each node implementation under
`packages/nodes-base/nodes/<NodeName>/` in the n8n monorepo. The catalog lists
those directories and reads a node's README on demand.
"""
import base64
import binascii
import re
from typing import Any, Optional

import httpx
import markdown
import structlog

from workflow_builder.config import get_settings
from workflow_builder.models.api import NodeInfo, NodeListResponse
from workflow_builder.n8n.client import N8NClientError, read_error_body

logger = structlog.get_logger()

NODES_PATH = "packages/nodes-base/nodes"


class NodeCatalogError(N8NClientError):
    """Exception for GitHub API errors while reading the node catalog."""


def display_name(node_name: str) -> str:
    """Turn a node directory name into a label: HttpRequest -> Http Request."""
    label = node_name.replace("-", " ")
    label = re.sub(r"([A-Z])", r" \1", label)
    label = re.sub(r"\s+", " ", label).strip()
    return label[:1].upper() + label[1:]


def extract_description(readme: Optional[str]) -> Optional[str]:
    """First paragraph of a README, skipping headings and blank lines."""
    if not readme:
        return None

    lines = readme.split("\n")
    i = 0
    while i < len(lines) and (lines[i].startswith("#") or lines[i].strip() == ""):
        i += 1

    paragraph = []
    while i < len(lines) and lines[i].strip() != "":
        paragraph.append(lines[i].strip())
        i += 1

    return " ".join(paragraph) or None


def decode_readme(content: str, node_name: str) -> str:
    """Decode README content as returned by the GitHub contents API.

    GitHub sends file content base64 encoded and wrapped at 60 characters.

    Raises:
        NodeCatalogError: if the content is not base64 encoded UTF-8 text
    """
    try:
        return base64.b64decode(content).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        logger.error("node_readme_undecodable", node_name=node_name, error=str(e))
        raise NodeCatalogError(f"README for node {node_name} could not be decoded") from e


def render_readme(readme: Optional[str]) -> Optional[str]:
    """Render README markdown to HTML for display."""
    if not readme:
        return None
    return markdown.markdown(readme)


class NodeCatalogClient:
    """Client for the GitHub contents API of the n8n repository."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        repository: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.github_api_url).rstrip("/")
        self.repository = repository or settings.n8n_repository
        self.timeout = timeout or settings.request_timeout
        self._transport = transport

        token = token or settings.github_token
        self.headers = {"Accept": "application/vnd.github.v3+json"}
        if token:
            self.headers["Authorization"] = f"token {token}"

    def documentation_url(self, node_name: str) -> str:
        return f"https://github.com/{self.repository}/tree/master/{NODES_PATH}/{node_name}"

    async def _get_contents(self, path: str) -> Any:
        url = f"{self.base_url}/repos/{self.repository}/contents/{path}"

        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                response = await client.get(url, headers=self.headers, timeout=self.timeout)
            except httpx.HTTPError as e:
                logger.error("github_api_error", path=path, error=str(e))
                raise NodeCatalogError(f"HTTP error: {str(e)}") from e

        logger.debug("github_api_request", path=path, status_code=response.status_code)

        if response.status_code >= 400:
            raise NodeCatalogError(
                f"GitHub API error: {response.status_code}",
                status_code=response.status_code,
                response_body=read_error_body(response),
            )
        return response.json()

    async def list_node_directories(self) -> list[str]:
        """Names of all node directories in nodes-base."""
        entries = await self._get_contents(NODES_PATH)
        return [entry["name"] for entry in entries if entry.get("type") == "dir"]

    async def list_nodes(self) -> NodeListResponse:
        """Basic information for every node, without README content."""
        directories = await self.list_node_directories()
        logger.info("list_nodes", count=len(directories))

        return NodeListResponse(nodes=[
            NodeInfo(
                name=directory,
                displayName=display_name(directory),
                description=f"n8n node for {directory}",
                documentationUrl=self.documentation_url(directory),
            )
            for directory in directories
        ])

    async def get_node_info(self, node_name: str) -> NodeInfo:
        """Node information including its README, when the node has one."""
        node_path = f"{NODES_PATH}/{node_name}"

        readme_content = None
        readme_path = None
        try:
            readme = await self._get_contents(f"{node_path}/README.md")
        except NodeCatalogError as e:
            if e.status_code != 404:
                raise
            logger.warning("node_readme_missing", node_name=node_name)
        else:
            readme_path = readme.get("path")
            readme_content = decode_readme(readme.get("content", ""), node_name)

        return NodeInfo(
            name=node_name,
            displayName=display_name(node_name),
            description=extract_description(readme_content) or f"n8n node for {node_name}",
            documentationUrl=self.documentation_url(node_name),
            readmePath=readme_path,
            readmeContent=readme_content,
            readmeHtml=render_readme(readme_content),
        )
