"""
Error taxonomy and classification.

Raw failures coming out of provider clients, tool clients or the graph
builder are mapped onto a small set of error kinds. The kind decides whether
a failure is retried and which recovery hints the user sees.
"""

from typing import Any, Dict, List, Optional
from enum import Enum
import asyncio

import anthropic
import httpx
import openai
from pydantic import BaseModel, Field, ValidationError
from pydantic.alias_generators import to_camel

from nodeflow.engine.state import utc_now


class WorkflowValidationError(ValueError):
    """Invalid definition, configuration or input."""


class GraphBuildError(WorkflowValidationError):
    """The workflow definition cannot be turned into a runnable graph."""


class MissingUserIdError(WorkflowValidationError):
    """A tool node was asked to run without an authenticated user."""


class UnsupportedProviderError(WorkflowValidationError):
    """An LLM node names a provider outside the supported set."""


class ProviderConfigurationError(RuntimeError):
    """A client could not be built, e.g. its API key is missing."""


class ToolExecutionError(RuntimeError):
    """The tool service ran the action but reported a failure."""


class ExecutionCancelled(Exception):
    """The consumer abandoned the run while work was in flight."""


class ErrorKind(str, Enum):
    NETWORK = "network"
    VALIDATION = "validation"
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    AUTH = "auth"
    UNKNOWN = "unknown"


class WorkflowError(BaseModel):
    """A classified failure."""

    kind: ErrorKind
    message: str
    node_id: Optional[str] = None
    node_type: Optional[str] = None
    recoverable: bool = False
    retryable: bool = False
    details: Optional[str] = None
    timestamp: str = Field(default_factory=utc_now)

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ErrorReport(BaseModel):
    """Everything the user needs to understand and act on a failure."""

    error: WorkflowError
    context: Dict[str, Any] = Field(default_factory=dict)
    recovery_actions: List[str] = Field(default_factory=list)
    user_message: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


_RECOVERY_ACTIONS: Dict[ErrorKind, List[str]] = {
    ErrorKind.NETWORK: [
        "Check your internet connection",
        "Try again in a few moments",
        "Check if the service is experiencing downtime",
    ],
    ErrorKind.AUTH: [
        "Verify your API keys are correct",
        "Check if your API keys have the required permissions",
        "Ensure your API keys haven't expired",
    ],
    ErrorKind.VALIDATION: [
        "Review your input data and node configurations",
        "Check that all required fields are filled",
        "Verify data formats match expected schemas",
    ],
    ErrorKind.TIMEOUT: [
        "Try reducing the complexity of your workflow",
        "Check if external services are responding slowly",
        "Consider breaking large workflows into smaller parts",
    ],
    ErrorKind.EXECUTION: [
        "Check the service status page",
        "Try again after a short delay",
        "Reduce the load on your requests",
    ],
    ErrorKind.UNKNOWN: [
        "Review the error details for more information",
        "Try simplifying your workflow to isolate the issue",
        "Contact support if the problem persists",
    ],
}


# SDK timeouts subclass their SDK's connection error; they classify as timeouts
_TIMEOUT_ERRORS = (
    httpx.TimeoutException,
    TimeoutError,
    asyncio.TimeoutError,
    openai.APITimeoutError,
    anthropic.APITimeoutError,
)

_NETWORK_ERRORS = (
    httpx.NetworkError,
    httpx.ProtocolError,
    ConnectionError,
    openai.APIConnectionError,
    anthropic.APIConnectionError,
)


def _status_code(error: BaseException) -> Optional[int]:
    """Extract an HTTP status from the error, if it carries one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_error(
    error: BaseException,
    node_id: Optional[str] = None,
    node_type: Optional[str] = None,
) -> WorkflowError:
    """
    Map a raw exception onto the error taxonomy.

    Checks run in a fixed order and the first match wins, since several of
    them overlap (an HTTP 401 whose body mentions "API key", a timeout that is
    also a transport error, ...).

    Args:
        error: The exception to classify
        node_id: Node the failure happened in, if any
        node_type: Kind of that node, if any

    Returns:
        The classified WorkflowError
    """
    text = str(error)
    lowered = text.lower()
    status = _status_code(error)

    def build(kind: ErrorKind, message: str, recoverable: bool, retryable: bool) -> WorkflowError:
        return WorkflowError(
            kind=kind,
            message=message,
            node_id=node_id,
            node_type=node_type,
            recoverable=recoverable,
            retryable=retryable,
            details=f"{type(error).__name__}: {text}" if text else type(error).__name__,
        )

    if isinstance(error, _NETWORK_ERRORS) and not isinstance(error, _TIMEOUT_ERRORS):
        return build(
            ErrorKind.NETWORK,
            "Network connection failed. Please check your internet connection.",
            True, True,
        )

    if status is not None:
        if status in (401, 403):
            return build(
                ErrorKind.AUTH,
                "Authentication failed. Please check your API keys.",
                True, False,
            )
        if status == 429:
            return build(
                ErrorKind.EXECUTION,
                "Rate limit exceeded. Please wait before retrying.",
                True, True,
            )
        if status >= 500:
            return build(
                ErrorKind.EXECUTION,
                "Server error occurred. This may be temporary.",
                True, True,
            )

    if isinstance(error, _TIMEOUT_ERRORS) or "timeout" in lowered:
        return build(
            ErrorKind.TIMEOUT,
            "Operation timed out. The request took too long to complete.",
            True, True,
        )

    if isinstance(error, (WorkflowValidationError, ValidationError)) or "validation" in lowered:
        return build(
            ErrorKind.VALIDATION,
            "Invalid input or configuration. Please check your settings.",
            True, False,
        )

    if "api key" in lowered or "unauthorized" in lowered or "credential" in lowered:
        return build(
            ErrorKind.AUTH,
            "API key is missing or invalid. Please check your configuration.",
            True, False,
        )

    return build(ErrorKind.UNKNOWN, text or "An unexpected error occurred.", False, False)


def recovery_actions(error: WorkflowError) -> List[str]:
    """Suggested next steps for the user; diagnostics only."""
    return list(_RECOVERY_ACTIONS.get(error.kind, _RECOVERY_ACTIONS[ErrorKind.UNKNOWN]))


def format_error_for_user(error: WorkflowError) -> str:
    message = error.message
    if error.node_id:
        message = f'Node "{error.node_id}" ({error.node_type}): {message}'
    if error.recoverable:
        message += "\n\nThis error may be recoverable. Try the suggested actions below."
    return message


def create_error_report(error: WorkflowError, context: Optional[Dict[str, Any]] = None) -> ErrorReport:
    """Bundle a classified error with context and recovery hints."""
    return ErrorReport(
        error=error,
        context=context or {},
        recovery_actions=recovery_actions(error),
        user_message=format_error_for_user(error),
    )
