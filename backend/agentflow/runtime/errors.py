"""Flow execution error taxonomy.

Every failure a run can end with maps to exactly one :class:`ErrorKind`.
Executors raise the matching :class:`FlowError` subclass; the coordinator
catches it and turns it into a failed ``RunResult``.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    MALFORMED_GRAPH = "MalformedGraph"
    CYCLIC_GRAPH = "CyclicGraph"
    MISSING_REQUIRED_INPUT = "MissingRequiredInput"
    PROVIDER_ERROR = "ProviderError"
    CONDITION_EVAL_ERROR = "ConditionEvalError"
    EXTERNAL_CALL_ERROR = "ExternalCallError"
    NO_OUTPUT_REACHED = "NoOutputReached"
    CANCELLED = "Cancelled"
    TIMEOUT = "Timeout"


class FlowError(Exception):
    """Base class for every error a flow run can terminate with."""

    kind: ErrorKind = ErrorKind.MALFORMED_GRAPH

    def __init__(self, message: str, node_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.node_id = node_id

    def __str__(self) -> str:
        if self.node_id:
            return f"Node '{self.node_id}': {self.message}"
        return self.message


class MalformedGraphError(FlowError):
    kind = ErrorKind.MALFORMED_GRAPH

    def __init__(self, message: str, node_id: str | None = None, errors: list[str] | None = None):
        super().__init__(message, node_id)
        self.errors = errors or [message]


class CyclicGraphError(FlowError):
    kind = ErrorKind.CYCLIC_GRAPH

    def __init__(self, message: str, cycle_nodes: list[str] | None = None):
        super().__init__(message)
        self.cycle_nodes = cycle_nodes or []


class MissingRequiredInputError(FlowError):
    kind = ErrorKind.MISSING_REQUIRED_INPUT


class ProviderError(FlowError):
    kind = ErrorKind.PROVIDER_ERROR


class ConditionEvalError(FlowError):
    kind = ErrorKind.CONDITION_EVAL_ERROR


class ExternalCallError(FlowError):
    kind = ErrorKind.EXTERNAL_CALL_ERROR

    def __init__(self, message: str, node_id: str | None = None, status_code: int | None = None):
        super().__init__(message, node_id)
        self.status_code = status_code


class NoOutputReachedError(FlowError):
    kind = ErrorKind.NO_OUTPUT_REACHED


class RunCancelledError(FlowError):
    kind = ErrorKind.CANCELLED


class RunTimeoutError(FlowError):
    kind = ErrorKind.TIMEOUT
