"""API route modules."""
from workflow_builder.api import resources, tools

__all__ = ["resources", "tools"]
