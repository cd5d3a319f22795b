"""Errors raised while normalizing or building workflows."""


class WorkflowSpecError(Exception):
    """Base class for workflow construction errors."""


class InvalidInputError(WorkflowSpecError, ValueError):
    """The workflow description is malformed (bad top-level shape, missing node fields)."""


class NodeNotFoundError(WorkflowSpecError, LookupError):
    """A builder operation referenced a node id that does not exist."""

    def __init__(self, message: str, node_id: str):
        super().__init__(message)
        self.node_id = node_id
